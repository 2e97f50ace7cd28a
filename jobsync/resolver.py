"""
Build the job name to image mapping for an annotated Deployment
"""

# Standard
from typing import Dict

# First Party
import alog

# Local
from .annotations import decode_targets
from .snapshot import WorkloadSnapshot

log = alog.use_channel("RSLVR")

ImageAssignment = Dict[str, str]


def build_assignment(snapshot: WorkloadSnapshot) -> ImageAssignment:
    """Map every CronJob named in the jobs annotation to the Deployment's image.
    Names are expected to be unique; a repeated name keeps the last entry in
    annotation order.
    """
    assignment = {}
    for job_name in decode_targets(snapshot.annotations):
        assignment[job_name] = snapshot.image
    log.debug2("Built assignment for %s: %s", snapshot, assignment)
    return assignment
