"""
Tests for the JobSyncController lifecycle and reconciliation
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import time

# Third Party
import pytest

# First Party
import alog

# Local
from jobsync.controller import ControllerState, JobSyncController
from jobsync.deploy_manager import DryRunDeployManager
from jobsync.exceptions import ConfigError, ListError
from jobsync.sync_engine import SyncEngine
from jobsync.test_helpers.helpers import (
    OLD_IMAGE,
    TEST_IMAGE,
    TEST_NAMESPACE,
    UNAVAILABLE_CONDITIONS,
    FailingDeployManager,
    get_cron_job_image,
    make_cron_job,
    make_deployment,
    make_snapshot,
)

log = alog.use_channel("TEST")

## Helpers #####################################################################


@contextmanager
def running_controller(controller: JobSyncController):
    """Run the controller for the duration of the context"""
    assert controller.start(retry_count=0, retry_delay=0)
    try:
        yield controller
    finally:
        controller.stop(timeout=5)


def wait_for_image(deploy_manager, name, image, timeout=5):
    """Poll the in-memory cluster until the CronJob runs the image"""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if get_cron_job_image(deploy_manager, name) == image:
            return True
        time.sleep(0.05)
    return False


## Lifecycle ###################################################################


def test_controller_requires_namespace():
    """An empty namespace is a configuration error"""
    with pytest.raises(ConfigError):
        JobSyncController(DryRunDeployManager(), namespace="")


def test_controller_lifecycle():
    """The controller moves through CREATED, RUNNING and STOPPED and cannot be
    restarted
    """
    controller = JobSyncController(DryRunDeployManager(), namespace=TEST_NAMESPACE)
    assert controller.state == ControllerState.CREATED
    assert controller.start(retry_count=0, retry_delay=0)
    assert controller.state == ControllerState.RUNNING
    assert not controller.start()

    controller.stop(timeout=5)
    assert controller.state == ControllerState.STOPPED
    assert controller.wait(timeout=1)
    assert not controller.start()

    # Stopping twice is a no-op
    controller.stop()
    assert controller.state == ControllerState.STOPPED


def test_controller_stop_before_start():
    """A controller that was never started stops immediately"""
    controller = JobSyncController(DryRunDeployManager(), namespace=TEST_NAMESPACE)
    controller.stop()
    assert controller.state == ControllerState.STOPPED
    assert controller.wait(timeout=0)


def test_controller_wait_times_out():
    """Waiting on a running controller returns False after the timeout"""
    controller = JobSyncController(DryRunDeployManager(), namespace=TEST_NAMESPACE)
    with running_controller(controller):
        assert not controller.wait(timeout=0.1)
    assert controller.wait(timeout=1)


## Notifications ###############################################################


def test_controller_ignores_events_when_not_running():
    """Notifications before start and after stop never reach the engine"""
    engine = mock.MagicMock()
    controller = JobSyncController(
        DryRunDeployManager(), namespace=TEST_NAMESPACE, engine=engine
    )
    snapshot = make_snapshot(jobs=["job-a"])
    controller.on_add(snapshot)

    with running_controller(controller):
        pass
    controller.on_add(snapshot)
    controller.on_update(make_snapshot(), snapshot)
    engine.apply.assert_not_called()


def test_controller_on_update_without_material_change():
    """An update that leaves the gated fields equal does nothing"""
    engine = mock.MagicMock()
    controller = JobSyncController(
        DryRunDeployManager(), namespace=TEST_NAMESPACE, engine=engine
    )
    previous = make_snapshot(jobs=["job-a"])
    current = make_snapshot(jobs=["job-a"])
    with running_controller(controller):
        controller.on_update(previous, current)
        engine.apply.assert_not_called()

        # A generation bump is a material change
        controller.on_update(previous, make_snapshot(jobs=["job-a"], generation=3))
        engine.apply.assert_called_once()


## Reconcile ###################################################################


def test_reconcile_updates_assigned_cron_job():
    """A qualifying Deployment has its image pushed to its CronJobs"""
    dm = DryRunDeployManager(
        resources=[make_cron_job("job-a"), make_cron_job("job-b")]
    )
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE)
    report = controller.reconcile(make_snapshot(jobs=["job-a"]))
    assert report is not None
    assert report.updated == ["job-a"]
    assert get_cron_job_image(dm, "job-a") == TEST_IMAGE
    assert get_cron_job_image(dm, "job-b") == OLD_IMAGE


def test_reconcile_gate_rejects():
    """A Deployment that has not finished rolling out is dropped"""
    engine = mock.MagicMock()
    controller = JobSyncController(
        DryRunDeployManager(), namespace=TEST_NAMESPACE, engine=engine
    )
    assert (
        controller.reconcile(
            make_snapshot(jobs=["job-a"], conditions=UNAVAILABLE_CONDITIONS)
        )
        is None
    )
    engine.apply.assert_not_called()


def test_reconcile_dry_run():
    """A dry run controller reports but never updates"""
    dm = FailingDeployManager(resources=[make_cron_job("job-a")])
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE, dry_run=True)
    report = controller.reconcile(make_snapshot(jobs=["job-a"]))
    assert report.would_update == {"job-a": TEST_IMAGE}
    assert dm.update_calls == []
    assert get_cron_job_image(dm, "job-a") == OLD_IMAGE


def test_reconcile_list_failure():
    """A failed listing aborts the pass without raising"""
    dm = FailingDeployManager(resources=[make_cron_job("job-a")], fail_list=True)
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE)
    assert controller.reconcile(make_snapshot(jobs=["job-a"])) is None
    assert dm.update_calls == []


def test_reconcile_unexpected_error():
    """An unexpected engine error is logged and the pass is dropped"""
    engine = mock.MagicMock(spec=SyncEngine)
    engine.apply.side_effect = RuntimeError("unexpected")
    controller = JobSyncController(
        DryRunDeployManager(), namespace=TEST_NAMESPACE, engine=engine
    )
    assert controller.reconcile(make_snapshot(jobs=["job-a"])) is None


def test_reconcile_expected_error_from_engine():
    """ListErrors raised by a custom engine are handled as well"""
    engine = mock.MagicMock(spec=SyncEngine)
    engine.apply.side_effect = ListError("nope")
    controller = JobSyncController(
        DryRunDeployManager(), namespace=TEST_NAMESPACE, engine=engine
    )
    assert controller.reconcile(make_snapshot(jobs=["job-a"])) is None


def test_reconcile_partial_failure_report():
    """A failed target is reported and the rest are still updated"""
    dm = FailingDeployManager(
        resources=[make_cron_job("job-a"), make_cron_job("job-b")],
        fail_updates=["job-b"],
    )
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE)
    report = controller.reconcile(make_snapshot(jobs=["job-a", "job-b"]))
    assert not report.success
    assert report.updated == ["job-a"]
    assert [failure.name for failure in report.failed] == ["job-b"]


## End to End ##################################################################


def test_controller_end_to_end():
    """A Deployment that finishes rolling out while the controller is running
    gets its image propagated
    """
    dm = DryRunDeployManager(
        resources=[
            make_cron_job("job-a"),
            make_cron_job("job-b"),
            make_deployment(
                jobs=["job-a"],
                image=OLD_IMAGE,
                generation=1,
                observed_generation=1,
                uid="app-uid",
            ),
        ]
    )
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE)
    with running_controller(controller):
        # Nothing to do for the initial state
        time.sleep(0.2)
        assert get_cron_job_image(dm, "job-a") == OLD_IMAGE

        # Roll out a new image
        dm.deploy(
            make_deployment(
                jobs=["job-a"], image=TEST_IMAGE, generation=2, observed_generation=1
            )
        )
        assert wait_for_image(dm, "job-a", TEST_IMAGE)
        assert get_cron_job_image(dm, "job-b") == OLD_IMAGE

    assert controller.state == ControllerState.STOPPED


## Malformed Annotations #######################################################

DEEPLY_NESTED = "[" * 100000


def test_reconcile_deeply_nested_jobs_annotation():
    """A jobs annotation that cannot be parsed leaves nothing to sync"""
    dm = FailingDeployManager(resources=[make_cron_job("job-a")])
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE)
    report = controller.reconcile(make_snapshot(jobs_annotation=DEEPLY_NESTED))
    assert report.success
    assert report.updated == []
    assert dm.update_calls == []


def test_reconcile_resolver_error():
    """An error building the assignment only drops the pass"""
    engine = mock.MagicMock(spec=SyncEngine)
    controller = JobSyncController(
        DryRunDeployManager(), namespace=TEST_NAMESPACE, engine=engine
    )
    with mock.patch(
        "jobsync.controller.build_assignment", side_effect=RuntimeError("bad")
    ):
        assert controller.reconcile(make_snapshot(jobs=["job-a"])) is None
    engine.apply.assert_not_called()


def test_controller_survives_malformed_deployment():
    """A Deployment with an unusable annotation does not use up watch retries
    and later Deployments are still synced
    """
    dm = DryRunDeployManager(
        resources=[
            make_cron_job("job-a"),
            make_deployment(name="broken", jobs_annotation=DEEPLY_NESTED),
        ]
    )
    controller = JobSyncController(dm, namespace=TEST_NAMESPACE)
    with mock.patch("jobsync.watch.os._exit") as exit_mock:
        with running_controller(controller):
            dm.deploy(make_deployment(jobs=["job-a"]))
            assert wait_for_image(dm, "job-a", TEST_IMAGE)
    exit_mock.assert_not_called()
    assert controller.state == ControllerState.STOPPED
