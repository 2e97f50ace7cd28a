"""
This defines the base class for all DeployManager types.
"""

# Standard
from typing import Iterator, List, Optional, Tuple
import abc

# Local
from .kube_event import KubeWatchEvent


class DeployManagerBase(abc.ABC):
    """
    Base class for deploy managers which are responsible for all reads and
    writes against the cluster
    """

    @abc.abstractmethod
    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Fetch the current state of a given object by name

        Args:
            kind:  str
                The kind of the object to fetch
            name:  str
                The full name of the object to fetch
            namespace:  str
                The namespace to search for the object
            api_version:  str
                The api_version of the resource kind to fetch

        Returns:
            success:  bool
                Whether or not the state fetch operation succeeded
            current_state:  dict or None
                The dict representation of the current object's configuration,
                or None if not present
        """

    @abc.abstractmethod
    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        """Fetch the list of objects of a kind that match either/both the
        label or field selector

        Args:
            kind:  str
                The kind of the object to fetch
            namespace:  str
                The namespace to search for the object
            api_version:  str
                The api_version of the resource kind to fetch
            label_selector:  str
                The label_selector to filter the resources
            field_selector:  str
                The field_selector to filter the resources

        Returns:
            success:  bool
                Whether or not the list operation succeeded
            current_state:  List[dict]
                The dict representations of the matching objects in listing
                order, or an empty list if no objects match
        """

    @abc.abstractmethod
    def update_object(self, resource_definition: dict) -> dict:
        """Replace an existing object with the given definition. The
        metadata.resourceVersion of the definition must match the stored
        version or the update is rejected.

        Args:
            resource_definition:  dict
                The full manifest to store

        Returns:
            current_state:  dict
                The stored object after the update

        Raises:
            kubernetes.client.exceptions.ApiException: the update was rejected
                (409 on a resourceVersion conflict)
        """

    @abc.abstractmethod
    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        **kwargs,
    ) -> Iterator[KubeWatchEvent]:
        """Listen for changes in the cluster and return a stream of
        KubeWatchEvents. Existing objects are delivered first as ADDED events.

        Args:
            kind:  str
                The kind of the object to watch
            api_version:  str
                The api_version of the resource kind to watch
            namespace:  str
                The namespace to watch
            name:  str
                The name to search for the object
            label_selector:  str
                The label_selector to filter the resources
            field_selector:  str
                The field_selector to filter the resources
            resource_version:  str
                The resource_version the resource must be newer than
            **kwargs:
                Implementation options. Both implementations accept a
                watch_manager and a should_stop callable that ends the stream
                once it returns True.

        Returns:
            watch_stream: Iterator[KubeWatchEvent]
                A stream of KubeWatchEvents generated while watching
        """

    @abc.abstractmethod
    def server_version(self) -> str:
        """Fetch the version of the cluster's API server. This is used at
        startup to confirm that the credentials work.
        """
