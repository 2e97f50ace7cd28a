"""
Shared module to hold constant values for the library
"""

# Presence of this annotation opts a Deployment or CronJob into image sync. The
# value is ignored.
SYNC_ENABLED_ANNOTATION_NAME = "jobsync.k8s.io/enabled"

# JSON object of the form {"jobs": ["name1", "name2"]} naming the CronJobs
# that should track a Deployment's image
SYNC_JOBS_ANNOTATION_NAME = "jobsync.k8s.io/jobs"

# Key inside the jobs annotation payload
SYNC_JOBS_KEY = "jobs"

# Kinds handled by the controller
DEPLOYMENT_KIND = "Deployment"
CRON_JOB_KIND = "CronJob"

# Condition status value that marks a Deployment as available
CONDITION_STATUS_TRUE = "true"

# Field manager name used for updates
FIELD_MANAGER = "jobsync"
