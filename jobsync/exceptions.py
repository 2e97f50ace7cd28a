"""
This module implements custom exceptions
"""

## Base Error ##################################################################


class JobSyncError(Exception):
    """Base class for all jobsync exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should terminate the
        process
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class JobSyncFatalError(JobSyncError):
    """A JobSyncFatalError is one that prevents the controller from starting.
    These are only raised before the watch loop begins.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(JobSyncFatalError):
    """Exception caused by missing or invalid configuration"""


class ClusterError(JobSyncFatalError):
    """Exception caused when credentials cannot be resolved or the cluster
    client cannot be constructed
    """


## Expected Errors #############################################################


class JobSyncExpectedError(JobSyncError):
    """A JobSyncExpectedError is one that aborts the current reconciliation
    pass, but is expected to resolve on a subsequent event.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class ListError(JobSyncExpectedError):
    """Exception raised when the CronJobs in the target namespace cannot be
    listed. Nothing from a failed listing is acted on.
    """


## Assertions ##################################################################


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError"""
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation needed to start the controller fails.
    """
    if not condition:
        raise ClusterError(message)


def assert_listed(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ListError"""
    if not condition:
        raise ListError(message)
