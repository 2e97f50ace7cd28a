"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from typing import Iterable, List, Optional
import os
import time

# Third Party
from kubernetes.client.exceptions import ApiException

# First Party
import alog

# Local
from jobsync.annotations import encode_targets
from jobsync.config import library_config as config_detail_dict
from jobsync.constants import SYNC_ENABLED_ANNOTATION_NAME, SYNC_JOBS_ANNOTATION_NAME
from jobsync.deploy_manager import DryRunDeployManager
from jobsync.snapshot import WorkloadSnapshot
from jobsync.watch import DeploymentEventHandler

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_NAMESPACE = "test"
SOME_OTHER_NAMESPACE = "somewhere"
TEST_IMAGE = "repo/app:v2"
OLD_IMAGE = "repo/app:v1"

AVAILABLE_CONDITIONS = [
    {"type": "Available", "status": "True", "reason": "MinimumReplicasAvailable"},
]
UNAVAILABLE_CONDITIONS = [
    {"type": "Available", "status": "False", "reason": "MinimumReplicasUnavailable"},
    {"type": "Progressing", "status": "Unknown", "reason": "NewReplicaSetCreated"},
]


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion
    """
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        config_detail_dict[key] = val

    try:
        yield
    finally:
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


def make_deployment(  # pylint: disable=too-many-arguments
    name: str = "app",
    namespace: str = TEST_NAMESPACE,
    image: str = TEST_IMAGE,
    generation: Optional[int] = 2,
    observed_generation: Optional[int] = 1,
    conditions: Optional[List[dict]] = None,
    enabled: bool = True,
    jobs: Optional[Iterable[str]] = None,
    jobs_annotation: Optional[str] = None,
    uid: Optional[str] = None,
) -> dict:
    """Build a Deployment manifest. The jobs annotation is either encoded from
    the list of jobs or given raw.
    """
    annotations = {}
    if enabled:
        annotations[SYNC_ENABLED_ANNOTATION_NAME] = "true"
    if jobs is not None:
        annotations[SYNC_JOBS_ANNOTATION_NAME] = encode_targets(list(jobs))
    elif jobs_annotation is not None:
        annotations[SYNC_JOBS_ANNOTATION_NAME] = jobs_annotation

    metadata = {"name": name, "namespace": namespace, "annotations": annotations}
    if generation is not None:
        metadata["generation"] = generation
    if uid is not None:
        metadata["uid"] = uid
    status = {
        "conditions": list(
            AVAILABLE_CONDITIONS if conditions is None else conditions
        ),
    }
    if observed_generation is not None:
        status["observedGeneration"] = observed_generation
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": metadata,
        "spec": {
            "template": {
                "spec": {
                    "containers": [
                        {"name": name, "image": image},
                        {"name": "sidecar", "image": "repo/sidecar:v1"},
                    ]
                }
            }
        },
        "status": status,
    }


def make_snapshot(**kwargs) -> WorkloadSnapshot:
    """Build a WorkloadSnapshot from make_deployment args"""
    return WorkloadSnapshot.from_manifest(make_deployment(**kwargs))


def make_cron_job(
    name: str,
    namespace: str = TEST_NAMESPACE,
    image: str = OLD_IMAGE,
    enabled: bool = True,
) -> dict:
    """Build a CronJob manifest"""
    annotations = {SYNC_ENABLED_ANNOTATION_NAME: ""} if enabled else {}
    return {
        "apiVersion": "batch/v1",
        "kind": "CronJob",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "annotations": annotations,
        },
        "spec": {
            "schedule": "*/5 * * * *",
            "jobTemplate": {
                "spec": {
                    "template": {
                        "spec": {
                            "containers": [{"name": name, "image": image}],
                            "restartPolicy": "OnFailure",
                        }
                    }
                }
            },
        },
    }


def get_cron_job_image(
    deploy_manager: DryRunDeployManager, name: str, namespace: str = TEST_NAMESPACE
) -> Optional[str]:
    """Read the first container image of a CronJob in the in-memory cluster"""
    _, content = deploy_manager.get_object_current_state(
        kind="CronJob", name=name, namespace=namespace, api_version="batch/v1"
    )
    if content is None:
        return None
    return content["spec"]["jobTemplate"]["spec"]["template"]["spec"]["containers"][
        0
    ]["image"]


class FailingDeployManager(DryRunDeployManager):
    """In-memory deploy manager that records update calls and can be told to
    fail listings or updates of specific names
    """

    def __init__(
        self,
        *args,
        fail_list: bool = False,
        list_exception: Optional[Exception] = None,
        fail_updates: Optional[Iterable[str]] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.fail_list = fail_list
        self.list_exception = list_exception
        self.fail_updates = set(fail_updates or [])
        self.update_calls = []

    def filter_objects_current_state(self, *args, **kwargs):
        if self.list_exception is not None:
            raise self.list_exception
        if self.fail_list:
            return False, []
        return super().filter_objects_current_state(*args, **kwargs)

    def update_object(self, resource_definition: dict) -> dict:
        name = resource_definition["metadata"]["name"]
        self.update_calls.append(resource_definition)
        if name in self.fail_updates:
            raise ApiException(status=403, reason="Forbidden")
        return super().update_object(resource_definition)


class RecordingHandler(DeploymentEventHandler):
    """Handler that records every notification it receives"""

    def __init__(self):
        self.events = []

    def on_add(self, current: WorkloadSnapshot):
        self.events.append(("add", None, current))

    def on_update(self, previous: WorkloadSnapshot, current: WorkloadSnapshot):
        self.events.append(("update", previous, current))

    def wait_for(self, count: int, timeout: float = 5) -> bool:
        """Wait until at least count events have been received"""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if len(self.events) >= count:
                return True
            time.sleep(0.05)
        return len(self.events) >= count
