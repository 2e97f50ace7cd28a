"""
The JobSyncController ties the pieces of a reconciliation together. It receives
Deployment notifications from a WatchThread and runs each one through the
availability gate, the target resolver and the sync engine on the thread that
delivered it. It also owns the lifecycle of the watch.
"""

# Standard
from enum import Enum
from typing import Optional
import threading
import uuid

# First Party
import alog

# Local
from .deploy_manager import DeployManagerBase
from .exceptions import JobSyncExpectedError, assert_config
from .gate import AvailabilityGate
from .resolver import build_assignment
from .snapshot import WorkloadSnapshot
from .sync_engine import SyncEngine, SyncReport
from .watch import DeploymentEventHandler, WatchThread

log = alog.use_channel("CTRLR")


class ControllerState(Enum):
    """Lifecycle states of a JobSyncController"""

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"


class JobSyncController(DeploymentEventHandler):
    """Propagates Deployment images to the CronJobs named in their
    annotations
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        deploy_manager: DeployManagerBase,
        namespace: str,
        dry_run: bool = False,
        gate: Optional[AvailabilityGate] = None,
        engine: Optional[SyncEngine] = None,
        deployment_api_version: str = "apps/v1",
        cron_job_api_version: str = "batch/v1",
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The client used for watching, listing, and updating
            namespace:  str
                The namespace holding both the Deployments and the CronJobs
            dry_run:  bool
                If true, CronJobs are never updated
            gate:  Optional[AvailabilityGate]
                Override for the default gate
            engine:  Optional[SyncEngine]
                Override for the default engine
            deployment_api_version:  str
                The apiVersion of the watched Deployments
            cron_job_api_version:  str
                The apiVersion of the updated CronJobs
        """
        assert_config(namespace, "Namespace is not defined or empty")
        self.deploy_manager = deploy_manager
        self.namespace = namespace
        self.dry_run = dry_run
        self.deployment_api_version = deployment_api_version
        self.gate = gate or AvailabilityGate()
        self.engine = engine or SyncEngine(
            deploy_manager, dry_run=dry_run, api_version=cron_job_api_version
        )

        self._state = ControllerState.CREATED
        self._state_changed = threading.Condition()
        self._watch_thread: Optional[WatchThread] = None

    def __str__(self):
        return f"JobSyncController({self.namespace})"

    ## Lifecycle ###############################################################

    @property
    def state(self) -> ControllerState:
        with self._state_changed:
            return self._state

    def start(self, retry_count: int = 5, retry_delay: float = 5) -> bool:
        """Subscribe to Deployment notifications

        Returns:
            started:  bool
                False if the controller was already started or stopped
        """
        with self._state_changed:
            if self._state != ControllerState.CREATED:
                log.warning("Cannot start %s in state %s", self, self._state.name)
                return False
            self._watch_thread = WatchThread(
                handler=self,
                deploy_manager=self.deploy_manager,
                namespace=self.namespace,
                api_version=self.deployment_api_version,
                retry_count=retry_count,
                retry_delay=retry_delay,
            )
            self._set_state(ControllerState.RUNNING)

        log.info("Listening for changes in %s", self.namespace)
        self._watch_thread.start_thread()
        return True

    def stop(self, timeout: Optional[float] = None):
        """Stop accepting notifications and wait for the pass in flight, if
        any, to finish
        """
        with self._state_changed:
            if self._state in [ControllerState.STOPPING, ControllerState.STOPPED]:
                return
            if self._state == ControllerState.CREATED:
                self._set_state(ControllerState.STOPPED)
                return
            self._set_state(ControllerState.STOPPING)

        log.info("Stopping %s", self)
        self._watch_thread.stop_thread()
        if self._watch_thread is not threading.current_thread():
            self._watch_thread.join(timeout)
        if self._watch_thread.is_alive():
            log.warning("Watch thread for %s did not exit in time", self)
            return

        with self._state_changed:
            self._set_state(ControllerState.STOPPED)
        log.info("Stopped %s", self)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the controller is stopped

        Returns:
            stopped:  bool
                False if the timeout expired first
        """
        with self._state_changed:
            return self._state_changed.wait_for(
                lambda: self._state == ControllerState.STOPPED, timeout
            )

    ## DeploymentEventHandler ##################################################

    def on_add(self, current: WorkloadSnapshot):
        if self._accepting(current):
            self.reconcile(current)

    def on_update(self, previous: WorkloadSnapshot, current: WorkloadSnapshot):
        if not self._accepting(current):
            return
        if previous.gate_fields() == current.gate_fields():
            log.debug3("No material change for %s", current)
            return
        self.reconcile(current)

    ## Reconciliation ##########################################################

    def reconcile(self, snapshot: WorkloadSnapshot) -> Optional[SyncReport]:
        """Run a single reconciliation pass for the snapshot

        Returns:
            report:  Optional[SyncReport]
                The engine's report, or None if the gate dropped the snapshot
                or the pass failed
        """
        reconciliation_id = str(uuid.uuid4())
        log_extra = {"resource": snapshot, "reconciliationId": reconciliation_id}
        if not self.gate.test(snapshot):
            return None

        log.info(
            "Found Deployment %s with sync annotation", snapshot.name, extra=log_extra
        )
        try:
            assignment = build_assignment(snapshot)
            report = self.engine.apply(assignment, self.namespace)
        except JobSyncExpectedError as err:
            log.warning("Sync for %s aborted: %s", snapshot, err, extra=log_extra)
            return None
        except Exception as err:  # pylint: disable=broad-except
            log.error(
                "Unexpected error syncing %s: %s",
                snapshot,
                err,
                exc_info=True,
                extra=log_extra,
            )
            return None

        if report.success:
            log.info(
                "Synced Deployment %s in %s: %s",
                snapshot.name,
                self.namespace,
                report.summary(),
                extra=log_extra,
            )
        else:
            log.warning(
                "Synced Deployment %s in %s with failures %s: %s",
                snapshot.name,
                self.namespace,
                [failure.name for failure in report.failed],
                report.summary(),
                extra=log_extra,
            )
        return report

    ## Implementation Details ##################################################

    def _set_state(self, state: ControllerState):
        log.debug("%s: %s -> %s", self, self._state.name, state.name)
        self._state = state
        self._state_changed.notify_all()

    def _accepting(self, snapshot: WorkloadSnapshot) -> bool:
        if self.state != ControllerState.RUNNING:
            log.debug("Ignoring %s while %s", snapshot, self.state.name)
            return False
        return True
