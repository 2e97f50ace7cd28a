"""
The DryRunDeployManager implements the DeployManager interface but does not
actually interact with the cluster and instead holds the state of the cluster in
a local map.
"""

# Standard
from functools import partial
from queue import Empty, Queue
from threading import RLock
from typing import Callable, Iterator, List, Optional, Tuple
import copy
import itertools
import uuid

# Third Party
from kubernetes.client.exceptions import ApiException

# First Party
import alog

# Local
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

DRY_RUN_SERVER_VERSION = "dry-run"

# How often the watch stream checks whether it has been stopped
WATCH_POLL_SECONDS = 0.1


class DryRunDeployManager(DeployManagerBase):
    """
    Deploy manager which keeps the cluster in memory
    """

    def __init__(
        self,
        resources: Optional[List[dict]] = None,
        strict_resource_version: bool = True,
    ):
        """
        Args:
            resources:  Optional[List[dict]]
                Manifests that exist in the cluster from the start
            strict_resource_version:  bool
                If true, updates carrying a resourceVersion other than the
                stored one are rejected with a 409 like the real API server
        """
        self.strict_resource_version = strict_resource_version
        self._cluster_content = {}
        self._watches = {}
        self._lock = RLock()
        self._version_counter = itertools.count(1)

        for resource in resources or []:
            self.deploy(resource, call_watches=False)

    ## Interface ###############################################################

    def server_version(self) -> str:
        return DRY_RUN_SERVER_VERSION

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        log.debug(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )
        with self._lock:
            matches = [
                entries[name]
                for api_ver, entries in self._cluster_content.get(namespace, {})
                .get(kind, {})
                .items()
                if name in entries and api_version in [None, api_ver]
            ]
        if len(matches) == 1:
            return True, copy.deepcopy(matches[0])
        return True, None

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        log.debug(
            "DRY RUN filter_objects_current_state of [%s] in [%s]", kind, namespace
        )
        if field_selector is not None:
            log.warning("DRY RUN ignoring field_selector [%s]", field_selector)

        labels = _parse_label_selector(label_selector)
        matches = []
        with self._lock:
            kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
            for api_ver, entries in kind_entries.items():
                if api_version not in [None, api_ver]:
                    continue
                for resource in entries.values():
                    resource_labels = resource.get("metadata", {}).get("labels") or {}
                    if all(
                        resource_labels.get(key) == value
                        for key, value in labels.items()
                    ):
                        matches.append(copy.deepcopy(resource))
        return True, matches

    def update_object(self, resource_definition: dict) -> dict:
        api_version, kind, name, namespace = self._resource_identifiers(
            resource_definition
        )
        log.debug("DRY RUN update [%s/%s/%s/%s]", namespace, kind, api_version, name)
        with self._lock:
            entries = (
                self._cluster_content.get(namespace, {})
                .get(kind, {})
                .get(api_version, {})
            )
            if name not in entries:
                raise ApiException(status=404, reason="Not Found")

            stored_version = entries[name]["metadata"].get("resourceVersion")
            requested_version = resource_definition.get("metadata", {}).get(
                "resourceVersion"
            )
            if (
                self.strict_resource_version
                and requested_version is not None
                and requested_version != stored_version
            ):
                log.debug(
                    "Rejecting update of %s at %s, stored version is %s",
                    name,
                    requested_version,
                    stored_version,
                )
                raise ApiException(status=409, reason="Conflict")

            return self.deploy(resource_definition)

    def watch_objects(  # pylint: disable=too-many-arguments,unused-argument
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        watch_manager=None,
        should_stop: Optional[Callable[[], bool]] = None,
        **_,
    ) -> Iterator[KubeWatchEvent]:
        """Watch the in-memory cluster by registering a deploy callback. The
        stream ends once the given watch_manager has been stopped or
        should_stop returns True.
        """
        event_queue = Queue()
        watch_key = self._watch_key(api_version, kind, namespace)
        callback = partial(_queue_event, event_queue)

        # Register before listing so no deploy is missed in between. An object
        # deployed during the listing may be delivered twice.
        self.register_watch(watch_key, callback)
        try:
            _, manifests = self.filter_objects_current_state(
                kind=kind,
                namespace=namespace,
                api_version=api_version,
                label_selector=label_selector,
            )
            for manifest in manifests:
                if name is None or manifest["metadata"].get("name") == name:
                    yield KubeWatchEvent(KubeEventType.ADDED, ManagedObject(manifest))

            while not _is_stopped(watch_manager, should_stop):
                try:
                    event = event_queue.get(timeout=WATCH_POLL_SECONDS)
                except Empty:
                    continue
                if name is None or event.resource.name == name:
                    log.debug2("Yielding event %s", event)
                    yield event
        finally:
            self.unregister_watch(watch_key, callback)

    ## Dry Run Methods #########################################################

    def deploy(self, resource_definition: dict, call_watches: bool = True) -> dict:
        """Create or fully replace an object without any version checks. This
        is how objects are seeded and how writers other than the controller are
        simulated.
        """
        resource = copy.deepcopy(resource_definition)
        api_version, kind, name, namespace = self._resource_identifiers(resource)
        with self._lock:
            entries = (
                self._cluster_content.setdefault(namespace, {})
                .setdefault(kind, {})
                .setdefault(api_version, {})
            )
            metadata = resource.setdefault("metadata", {})
            event_type = (
                KubeEventType.MODIFIED if name in entries else KubeEventType.ADDED
            )
            current_metadata = entries.get(name, {}).get("metadata", {})
            metadata["uid"] = current_metadata.get("uid") or metadata.get(
                "uid", str(uuid.uuid4())
            )
            metadata["resourceVersion"] = str(next(self._version_counter))
            entries[name] = resource
            stored = copy.deepcopy(resource)

        if call_watches:
            for callback in self._get_registered_watches(api_version, kind, namespace):
                log.debug2("Calling registered watch [%s] for [%s]", callback, name)
                callback(event_type, copy.deepcopy(stored))
        return stored

    def register_watch(
        self, watch_key: str, callback: Callable[[KubeEventType, dict], None]
    ):
        """Register a callback for deploys matching the watch key"""
        log.debug("Registering watch for %s", watch_key)
        with self._lock:
            self._watches.setdefault(watch_key, []).append(callback)

    def unregister_watch(self, watch_key: str, callback: Callable):
        """Remove a previously registered callback"""
        with self._lock:
            callbacks = self._watches.get(watch_key, [])
            if callback in callbacks:
                callbacks.remove(callback)

    ## Implementation Details ##################################################

    @staticmethod
    def _watch_key(api_version=None, kind=None, namespace=None):
        return ":".join([api_version or "", kind or "", namespace or ""])

    def _get_registered_watches(
        self, api_version: str, kind: str, namespace: Optional[str]
    ) -> List[Callable]:
        keys = [
            self._watch_key(api_version, kind, namespace),
            self._watch_key(api_version, kind),
            self._watch_key(kind=kind, namespace=namespace),
            self._watch_key(kind=kind),
        ]
        with self._lock:
            return [
                callback
                for key in dict.fromkeys(keys)
                for callback in self._watches.get(key, [])
            ]

    @staticmethod
    def _resource_identifiers(resource_definition: dict) -> Tuple[str, str, str, str]:
        metadata = resource_definition.get("metadata", {})
        api_version = resource_definition.get("apiVersion")
        kind = resource_definition.get("kind")
        name = metadata.get("name")
        assert None not in [
            api_version,
            kind,
            name,
        ], "Cannot store resource without apiVersion, kind or name"
        return api_version, kind, name, metadata.get("namespace")


def _queue_event(event_queue: Queue, event_type: KubeEventType, manifest: dict):
    event_queue.put(KubeWatchEvent(event_type, ManagedObject(manifest)))


def _is_stopped(watch_manager, should_stop: Optional[Callable[[], bool]]) -> bool:
    if should_stop is not None and should_stop():
        return True
    return watch_manager is not None and getattr(watch_manager, "_stop", False)


def _parse_label_selector(label_selector: Optional[str]) -> dict:
    """Parse an equality based selector such as "app=foo,tier=web" """
    labels = {}
    for part in (label_selector or "").split(","):
        if not part.strip():
            continue
        key, _, value = part.partition("=")
        labels[key.strip()] = value.lstrip("=").strip()
    return labels
