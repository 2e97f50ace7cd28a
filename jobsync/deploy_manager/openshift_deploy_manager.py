"""
This DeployManager is responsible for delegating cluster operations to the
openshift library. It is the one that will be used when the controller is
running in the cluster or outside the cluster making live changes.
"""
# Standard
from typing import Callable, Iterator, List, Optional, Tuple

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic.exceptions import (
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from ..constants import FIELD_MANAGER
from ..exceptions import ClusterError, assert_cluster
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("OSFTD")

## Deploy Manager ##############################################################


# See this document for value reasonings
# https://github.com/kubernetes-client/python/blob/master/examples/watch/timeout-settings.md
SERVER_WATCH_TIMEOUT = 3600
CLIENT_WATCH_TIMEOUT = 30


class OpenshiftDeployManager(DeployManagerBase):
    """This DeployManager uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self, run_outside_cluster: bool = False):
        """
        Args:
            run_outside_cluster:  bool
                If true, credentials are only read from the local kubeconfig.
                Otherwise the in-cluster service account is tried first.
        """
        self.run_outside_cluster = run_outside_cluster

        # Set up the client
        log.debug("Initializing openshift client")
        self._client = None

    @property
    def client(self):
        """Lazy property access to the client"""
        if self._client is None:
            self._client = self._setup_client(self.run_outside_cluster)
        return self._client

    def server_version(self) -> str:
        """Fetch the API server's git version"""
        version_info = client.VersionApi(self.client.client).get_code()
        log.debug("Server version: %s", version_info)
        return version_info.git_version

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return True, None

        try:
            resource = resources.get(name=name, namespace=namespace)
        except ForbiddenError:
            log.debug(
                "Fetching objects of kind [%s] forbidden in namespace [%s]",
                kind,
                namespace,
            )
            return False, None
        except NotFoundError:
            log.debug(
                "No object named [%s/%s] found in namespace [%s]", kind, name, namespace
            )
            return True, None

        return True, resource.to_dict()

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        resources = self._get_resource_handle(kind, api_version)
        if not resources:
            return False, []

        try:
            list_obj = resources.get(
                label_selector=label_selector,
                field_selector=field_selector,
                namespace=namespace,
            )
        except ForbiddenError:
            log.warning(
                "Listing objects of kind [%s] forbidden in namespace [%s]",
                kind,
                namespace,
            )
            return False, []
        except NotFoundError:
            log.debug(
                "No objects of kind [%s] found in namespace [%s]", kind, namespace
            )
            return True, []

        return True, list_obj.to_dict().get("items", [])

    def update_object(self, resource_definition: dict) -> dict:
        """Replace the object with a PUT so that the server enforces the
        resourceVersion carried in the definition
        """
        metadata = resource_definition.get("metadata", {})
        api_version = resource_definition.get("apiVersion")
        kind = resource_definition.get("kind")
        name = metadata.get("name")
        namespace = metadata.get("namespace")

        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle,
            (
                "Failed to fetch resource handle for "
                + f"{namespace}/{api_version}/{kind}"
            ),
        )

        log.debug2(
            "Attempting to replace [%s/%s/%s] in %s at resourceVersion %s",
            api_version,
            kind,
            name,
            namespace,
            metadata.get("resourceVersion"),
        )
        return resource_handle.replace(
            resource_definition,
            name=name,
            namespace=namespace,
            field_manager=FIELD_MANAGER,
        ).to_dict()

    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        watch_manager: Optional[Watch] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        **_,
    ) -> Iterator[KubeWatchEvent]:
        """Stream events until the watch_manager is stopped or should_stop
        returns True. Watch.stream clears the stop flag each time it starts, so
        should_stop is the reliable way to end the stream between restarts.
        """
        watch_manager = watch_manager if watch_manager else Watch()
        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle,
            (
                "Failed to fetch resource handle for "
                + f"{namespace}/{api_version}/{kind}"
            ),
        )

        resource_version = resource_version if resource_version else 0

        while True:
            if _stop_requested(watch_manager, should_stop):
                log.debug(
                    "Stop requested. Stopping deploy manager watch for %s/%s",
                    kind,
                    api_version,
                )
                return

            try:
                for event_obj in watch_manager.stream(
                    resource_handle.get,
                    resource_version=resource_version,
                    namespace=namespace,
                    name=name,
                    label_selector=label_selector,
                    field_selector=field_selector,
                    serialize=False,
                    timeout_seconds=SERVER_WATCH_TIMEOUT,
                    _request_timeout=CLIENT_WATCH_TIMEOUT,
                ):
                    event_type = KubeEventType(event_obj["type"])
                    event_resource = ManagedObject(event_obj["object"])
                    yield KubeWatchEvent(event_type, event_resource)
            except client.exceptions.ApiException as exception:
                if exception.status == 410:
                    log.debug2(
                        "Resource age expired, restarting watch %s/%s",
                        kind,
                        api_version,
                    )
                    resource_version = None
                else:
                    log.info("Unknown ApiException received, re-raising")
                    raise exception
            except urllib3.exceptions.ReadTimeoutError:
                log.debug4(
                    "Watch Socket closed, restarting watch %s/%s", kind, api_version
                )
            except urllib3.exceptions.ProtocolError:
                log.debug2(
                    "Invalid Chunk from server, restarting watch %s/%s",
                    kind,
                    api_version,
                )

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client(run_outside_cluster: bool = False):
        """Create a DynamicClient that will work based on where the controller
        is running
        """
        if not run_outside_cluster:
            try:
                log.debug2("Running with in-cluster config")
                kube_config = kubernetes.client.Configuration()
                kubernetes.config.load_incluster_config(
                    client_configuration=kube_config
                )
                api_client = kubernetes.client.ApiClient(kube_config)
                return DynamicClient(api_client)
            except kubernetes.config.ConfigException:
                log.debug2("No in-cluster config found")

        # Fall back to out-of-cluster config
        try:
            log.debug2("Running with out-of-cluster config")
            return DynamicClient(kubernetes.config.new_client_from_config())
        except (kubernetes.config.ConfigException, OSError) as err:
            raise ClusterError(
                f"Error loading kubernetes configuration: {err}"
            ) from err

    def _get_resource_handle(self, kind: str, api_version: str) -> Optional[Resource]:
        """Get the openshift resource handle for a specified kind and api_version"""
        resources = None
        try:
            resources = self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError):
            log.debug(
                "No objects of kind [%s] found or multiple objects matching request found",
                kind,
            )
        return resources


def _stop_requested(
    watch_manager: Watch, should_stop: Optional[Callable[[], bool]]
) -> bool:
    if should_stop is not None and should_stop():
        return True
    # Hidden attribute, reset by Watch.stream when a new stream starts
    return watch_manager._stop  # pylint: disable=protected-access
