"""
Custom logging formats that add resource and reconciliation details to the
json logs
"""

# First Party
from alog import AlogJsonFormatter


class JobSyncJsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter with the identifiers of
    the resource being handled, the reconciliationId of the current pass, and
    thread information. The resource is read from the `resource` extra on the
    log record, which may be a manifest dict or any object exposing `get` (a
    ManagedObject).
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "process",
        "thread",
        "threadName",
        "kind",
        "apiVersion",
        "resourceVersion",
        "resourceName",
        "resourceNamespace",
        "reconciliationId",
    ]

    def format(self, record):
        if resource := getattr(record, "resource", None):
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")

            metadata = resource.get("metadata", {}) or {}
            record.resourceVersion = metadata.get("resourceVersion")
            record.resourceName = metadata.get("name")
            record.resourceNamespace = metadata.get("namespace")

        return super().format(record)
