"""Tests for the DryRunDeployManager

NOTE: The majority of the functionality is thoroughly exercised by all of the
    other unit tests, so the tests here only test elements that are particularly
    delicate and/or not covered elsewhere.
"""
# Standard
from threading import Thread
from unittest.mock import Mock
import time

# Third Party
from kubernetes import watch
from kubernetes.client.exceptions import ApiException
import pytest

# Local
from jobsync.deploy_manager import DryRunDeployManager, KubeEventType
from jobsync.test_helpers.helpers import (
    SOME_OTHER_NAMESPACE,
    TEST_NAMESPACE,
    make_cron_job,
    make_deployment,
)

## Helpers #####################################################################


def labeled_cron_job(name, **labels):
    manifest = make_cron_job(name)
    manifest["metadata"]["labels"] = labels
    return manifest


## Tests #######################################################################


def test_deploy_sets_uid_and_resource_version():
    """Deploying a new object assigns a uid and a resourceVersion, and a
    replacement keeps the uid and bumps the version
    """
    dm = DryRunDeployManager()
    created = dm.deploy(make_cron_job("job-a"))
    assert created["metadata"]["uid"]
    assert created["metadata"]["resourceVersion"] == "1"

    replaced = dm.deploy(make_cron_job("job-a"))
    assert replaced["metadata"]["uid"] == created["metadata"]["uid"]
    assert replaced["metadata"]["resourceVersion"] == "2"


def test_deploy_keeps_given_uid():
    """A uid given on creation is kept"""
    dm = DryRunDeployManager(resources=[make_deployment(uid="app-uid")])
    _, content = dm.get_object_current_state("Deployment", "app", TEST_NAMESPACE)
    assert content["metadata"]["uid"] == "app-uid"


def test_deploy_requires_identifiers():
    """Objects without a name cannot be stored"""
    manifest = make_cron_job("job-a")
    del manifest["metadata"]["name"]
    with pytest.raises(AssertionError):
        DryRunDeployManager().deploy(manifest)


def test_watches_triggered():
    """Test that registered watches are triggered when a resource of the right
    kind and namespace is deployed
    """
    dm = DryRunDeployManager()
    mock1 = Mock()
    mock2 = Mock()
    other_ns = Mock()
    dm.register_watch(dm._watch_key("batch/v1", "CronJob", TEST_NAMESPACE), mock1)
    dm.register_watch(dm._watch_key(kind="CronJob"), mock2)
    dm.register_watch(
        dm._watch_key("batch/v1", "CronJob", SOME_OTHER_NAMESPACE), other_ns
    )

    dm.deploy(make_cron_job("job-a"))
    mock1.assert_called_once()
    mock2.assert_called_once()
    other_ns.assert_not_called()
    assert mock1.call_args[0][0] == KubeEventType.ADDED

    dm.deploy(make_cron_job("job-a"))
    assert mock1.call_args[0][0] == KubeEventType.MODIFIED

    dm.unregister_watch(dm._watch_key("batch/v1", "CronJob", TEST_NAMESPACE), mock1)
    dm.deploy(make_cron_job("job-a"))
    assert mock1.call_count == 2
    assert mock2.call_count == 3


def test_get_object_current_state_copies():
    """Mutating a returned object does not change the cluster"""
    dm = DryRunDeployManager(resources=[make_cron_job("job-a")])
    success, content = dm.get_object_current_state(
        "CronJob", "job-a", TEST_NAMESPACE, "batch/v1"
    )
    assert success
    content["spec"]["schedule"] = "changed"
    _, content = dm.get_object_current_state("CronJob", "job-a", TEST_NAMESPACE)
    assert content["spec"]["schedule"] == "*/5 * * * *"


def test_get_object_current_state_not_present():
    """A missing object is a successful lookup with no content"""
    dm = DryRunDeployManager(resources=[make_cron_job("job-a")])
    assert dm.get_object_current_state("CronJob", "job-b", TEST_NAMESPACE) == (
        True,
        None,
    )
    assert dm.get_object_current_state(
        "CronJob", "job-a", TEST_NAMESPACE, "batch/v1beta1"
    ) == (True, None)


def test_filter_objects_current_state_namespace():
    """Only objects in the given namespace and version are listed"""
    dm = DryRunDeployManager(
        resources=[
            make_cron_job("job-a"),
            make_cron_job("job-b"),
            make_cron_job("job-c", namespace=SOME_OTHER_NAMESPACE),
        ]
    )
    success, content = dm.filter_objects_current_state(
        "CronJob", TEST_NAMESPACE, "batch/v1"
    )
    assert success
    assert sorted(obj["metadata"]["name"] for obj in content) == ["job-a", "job-b"]
    assert dm.filter_objects_current_state("CronJob", "nowhere") == (True, [])


def test_filter_objects_current_state_label_selector():
    """Equality label selectors are honored"""
    dm = DryRunDeployManager(
        resources=[
            labeled_cron_job("job-a", app="foo", tier="web"),
            labeled_cron_job("job-b", app="foo"),
            labeled_cron_job("job-c", app="bar"),
        ]
    )
    _, content = dm.filter_objects_current_state(
        "CronJob", TEST_NAMESPACE, label_selector="app=foo"
    )
    assert sorted(obj["metadata"]["name"] for obj in content) == ["job-a", "job-b"]
    _, content = dm.filter_objects_current_state(
        "CronJob", TEST_NAMESPACE, label_selector="app==foo, tier=web"
    )
    assert [obj["metadata"]["name"] for obj in content] == ["job-a"]


def test_update_object_not_found():
    """Updating an object that does not exist is a 404"""
    with pytest.raises(ApiException) as exc_info:
        DryRunDeployManager().update_object(make_cron_job("job-a"))
    assert exc_info.value.status == 404


def test_update_object_conflict():
    """An update carrying a stale resourceVersion is a 409"""
    dm = DryRunDeployManager(resources=[make_cron_job("job-a")])
    _, content = dm.get_object_current_state("CronJob", "job-a", TEST_NAMESPACE)
    dm.deploy(make_cron_job("job-a"))
    with pytest.raises(ApiException) as exc_info:
        dm.update_object(content)
    assert exc_info.value.status == 409


def test_update_object_not_strict():
    """Version checks can be turned off"""
    dm = DryRunDeployManager(
        resources=[make_cron_job("job-a")], strict_resource_version=False
    )
    _, content = dm.get_object_current_state("CronJob", "job-a", TEST_NAMESPACE)
    dm.deploy(make_cron_job("job-a"))
    updated = dm.update_object(content)
    assert updated["metadata"]["resourceVersion"] == "3"


def test_update_object_current_version():
    """An update at the stored resourceVersion succeeds"""
    dm = DryRunDeployManager(resources=[make_cron_job("job-a")])
    _, content = dm.get_object_current_state("CronJob", "job-a", TEST_NAMESPACE)
    content["spec"]["schedule"] = "0 * * * *"
    updated = dm.update_object(content)
    assert updated["spec"]["schedule"] == "0 * * * *"
    assert updated["metadata"]["uid"] == content["metadata"]["uid"]


def test_watch_objects():
    """Existing objects are delivered as ADDED, later deploys as they happen,
    and the stream ends when the watch is stopped
    """
    dm = DryRunDeployManager(
        resources=[make_deployment(name="existing"), make_cron_job("job-a")]
    )
    watch_manager = watch.Watch()
    events = []

    def consume():
        for event in dm.watch_objects(
            "Deployment",
            "apps/v1",
            namespace=TEST_NAMESPACE,
            watch_manager=watch_manager,
        ):
            events.append(event)

    thread = Thread(target=consume)
    thread.start()
    deadline = time.time() + 5
    while not events and time.time() < deadline:
        time.sleep(0.05)
    dm.deploy(make_deployment(name="new"))
    dm.deploy(make_deployment(name="new"))
    while len(events) < 3 and time.time() < deadline:
        time.sleep(0.05)
    watch_manager.stop()
    thread.join(5)

    assert not thread.is_alive()
    assert [(event.type, event.resource.name) for event in events] == [
        (KubeEventType.ADDED, "existing"),
        (KubeEventType.ADDED, "new"),
        (KubeEventType.MODIFIED, "new"),
    ]

    # The watch is unregistered once the stream ends
    assert dm._get_registered_watches("apps/v1", "Deployment", TEST_NAMESPACE) == []


def test_server_version():
    assert DryRunDeployManager().server_version() == "dry-run"
