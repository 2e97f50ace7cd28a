"""
The SyncEngine applies an image assignment to the CronJobs in a namespace.

A pass lists every CronJob in the namespace once, then walks the listing in
order. CronJobs that are not opted in or that are not named in the assignment
are skipped. Every other CronJob gets its first container's image replaced
and is written back with the resourceVersion from the listing, so a CronJob
that changed since it was listed is rejected by the server rather than
overwritten.

Update failures are independent: a failed CronJob is logged and recorded in
the SyncReport, and the pass moves on to the next CronJob. Nothing is retried
or rolled back. A failed listing aborts the whole pass with a ListError.
"""

# Standard
from dataclasses import dataclass, field
from typing import Dict, List

# First Party
import alog

# Local
from .constants import CRON_JOB_KIND
from .deploy_manager import DeployManagerBase
from .exceptions import ListError, assert_listed
from .snapshot import ScheduledJob

log = alog.use_channel("SYNC")


@dataclass(frozen=True)
class SyncFailure:
    """A single CronJob update that was rejected"""

    name: str
    image: str
    error: str


@dataclass
class SyncReport:
    """Outcome of a single pass of the SyncEngine"""

    namespace: str
    dry_run: bool = False
    updated: List[str] = field(default_factory=list)
    would_update: Dict[str, str] = field(default_factory=dict)
    skipped_disabled: List[str] = field(default_factory=list)
    skipped_unassigned: List[str] = field(default_factory=list)
    failed: List[SyncFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return (
            f"updated={len(self.updated)} would_update={len(self.would_update)} "
            f"failed={len(self.failed)} skipped={len(self.skipped_disabled)}"
            f"/{len(self.skipped_unassigned)}"
        )


class SyncEngine:
    """Applies ImageAssignments to CronJobs through a DeployManager"""

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        dry_run: bool = False,
        api_version: str = "batch/v1",
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The client used to list and update CronJobs
            dry_run:  bool
                If true, CronJobs are never updated. The updates that would
                have been made are recorded in the report instead.
            api_version:  str
                The apiVersion of the CronJob kind
        """
        self.deploy_manager = deploy_manager
        self.dry_run = dry_run
        self.api_version = api_version

    def apply(self, assignment: Dict[str, str], namespace: str) -> SyncReport:
        """Apply the assignment to the CronJobs in the namespace

        Args:
            assignment:  Dict[str, str]
                Map from CronJob name to the image it should run
            namespace:  str
                The namespace holding the CronJobs

        Returns:
            report:  SyncReport
                What was updated, skipped, and failed

        Raises:
            ListError: the CronJobs could not be listed
        """
        report = SyncReport(namespace=namespace, dry_run=self.dry_run)
        if not assignment:
            log.debug("Nothing to sync in %s for an empty assignment", namespace)
            return report

        for cron_job in self._list_cron_jobs(namespace):
            log.debug2("CronJob %s enabled: %s", cron_job.name, cron_job.enabled)
            if not cron_job.enabled:
                report.skipped_disabled.append(cron_job.name)
                continue
            image = assignment.get(cron_job.name)
            if image is None:
                report.skipped_unassigned.append(cron_job.name)
                continue
            self._sync_cron_job(cron_job, image, report)

        log.debug("Sync pass in %s finished: %s", namespace, report.summary())
        return report

    ## Implementation Details ##################################################

    def _list_cron_jobs(self, namespace: str) -> List[ScheduledJob]:
        try:
            success, manifests = self.deploy_manager.filter_objects_current_state(
                kind=CRON_JOB_KIND,
                namespace=namespace,
                api_version=self.api_version,
            )
        except Exception as err:  # pylint: disable=broad-except
            raise ListError(f"Failed to list CronJobs in {namespace}: {err}") from err
        assert_listed(success, f"Failed to list CronJobs in {namespace}")
        return [ScheduledJob.from_manifest(manifest) for manifest in manifests]

    def _sync_cron_job(self, cron_job: ScheduledJob, image: str, report: SyncReport):
        if self.dry_run:
            log.info(
                "DRY RUN would update CronJob %s from %s to %s",
                cron_job.name,
                cron_job.image,
                image,
                extra={"resource": cron_job.definition},
            )
            report.would_update[cron_job.name] = image
            return

        try:
            self.deploy_manager.update_object(cron_job.with_image(image))
        except Exception as err:  # pylint: disable=broad-except
            log.warning(
                "Failed to update CronJob %s to image %s: %s",
                cron_job.name,
                image,
                err,
                extra={"resource": cron_job.definition},
            )
            report.failed.append(SyncFailure(cron_job.name, image, str(err)))
            return

        log.info(
            "Updated CronJob %s to image %s",
            cron_job.name,
            image,
            extra={"resource": cron_job.definition},
        )
        report.updated.append(cron_job.name)
