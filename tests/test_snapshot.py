"""
Tests for the snapshot views over Deployments and CronJobs
"""

# Third Party
import pytest

# Local
from jobsync.snapshot import Condition, ScheduledJob, WorkloadSnapshot
from jobsync.test_helpers.helpers import (
    TEST_NAMESPACE,
    make_cron_job,
    make_deployment,
    make_snapshot,
)

######################
## WorkloadSnapshot ##
######################


def test_snapshot_from_manifest():
    """All fields are read from the manifest"""
    snapshot = make_snapshot(
        name="web", image="repo/web:v9", generation=4, observed_generation=3, uid="u1"
    )
    assert snapshot.name == "web"
    assert snapshot.namespace == TEST_NAMESPACE
    assert snapshot.generation == 4
    assert snapshot.observed_generation == 3
    assert snapshot.image == "repo/web:v9"
    assert snapshot.uid == "u1"
    assert snapshot.conditions == (
        Condition("Available", "True", "MinimumReplicasAvailable"),
    )


def test_snapshot_uses_first_container():
    """The sidecar image is never picked"""
    assert make_snapshot(image="repo/main:v1").image == "repo/main:v1"


def test_snapshot_requires_container():
    """A Deployment without containers is rejected"""
    manifest = make_deployment()
    manifest["spec"]["template"]["spec"]["containers"] = []
    with pytest.raises(AssertionError):
        WorkloadSnapshot.from_manifest(manifest)


def test_snapshot_is_immutable():
    """Changing the source manifest does not change the snapshot"""
    manifest = make_deployment(image="repo/app:v1")
    snapshot = WorkloadSnapshot.from_manifest(manifest)
    manifest["spec"]["template"]["spec"]["containers"][0]["image"] = "repo/app:v2"
    manifest["metadata"]["annotations"]["new"] = "value"
    assert snapshot.image == "repo/app:v1"
    assert "new" not in snapshot.annotations
    with pytest.raises(AttributeError):
        snapshot.image = "repo/app:v2"


def test_snapshot_gate_fields():
    """Only the gate's fields matter for change detection"""
    base = make_deployment()
    same = make_deployment()
    same["metadata"]["resourceVersion"] = "99"
    same["metadata"]["labels"] = {"unrelated": "change"}
    assert (
        WorkloadSnapshot.from_manifest(base).gate_fields()
        == WorkloadSnapshot.from_manifest(same).gate_fields()
    )
    assert (
        make_snapshot(image="repo/app:v1").gate_fields()
        != make_snapshot(image="repo/app:v2").gate_fields()
    )
    assert (
        make_snapshot(conditions=[]).gate_fields() != make_snapshot().gate_fields()
    )
    assert make_snapshot(jobs=["a"]).gate_fields() != make_snapshot().gate_fields()


##################
## ScheduledJob ##
##################


def test_scheduled_job_from_manifest():
    """Name, enabled flag and image are read from the CronJob"""
    manifest = make_cron_job("job-a", image="repo/app:v1")
    manifest["metadata"]["resourceVersion"] = "7"
    job = ScheduledJob.from_manifest(manifest)
    assert job.name == "job-a"
    assert job.enabled
    assert job.image == "repo/app:v1"
    assert job.resource_version == "7"
    assert not ScheduledJob.from_manifest(make_cron_job("b", enabled=False)).enabled


def test_scheduled_job_with_image():
    """The updated manifest is a copy that keeps the resourceVersion"""
    manifest = make_cron_job("job-a", image="repo/app:v1")
    manifest["metadata"]["resourceVersion"] = "7"
    job = ScheduledJob.from_manifest(manifest)
    updated = job.with_image("repo/app:v2")
    assert ScheduledJob.from_manifest(updated).image == "repo/app:v2"
    assert updated["metadata"]["resourceVersion"] == "7"
    assert job.image == "repo/app:v1"
    assert ScheduledJob.from_manifest(manifest).image == "repo/app:v1"
