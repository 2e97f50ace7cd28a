"""The WatchThread is responsible for monitoring the cluster for Deployment
events and delivering them to a DeploymentEventHandler
"""
# Standard
from typing import Dict, Optional
import abc
import os
import threading

# Third Party
from kubernetes import watch

# First Party
import alog

# Local
from .constants import DEPLOYMENT_KIND
from .deploy_manager import DeployManagerBase, KubeEventType, KubeWatchEvent
from .snapshot import WorkloadSnapshot

log = alog.use_channel("WATCH")


class DeploymentEventHandler(abc.ABC):
    """Interface for anything that consumes Deployment notifications. Calls
    are made synchronously on the watch thread.
    """

    @abc.abstractmethod
    def on_add(self, current: WorkloadSnapshot):
        """Called the first time a Deployment is seen"""

    @abc.abstractmethod
    def on_update(self, previous: WorkloadSnapshot, current: WorkloadSnapshot):
        """Called for every later notification of a known Deployment"""


class WatchThread(threading.Thread):  # pylint: disable=too-many-instance-attributes
    """The WatchThread streams events for a kind in a single namespace. It keeps
    the last snapshot of every Deployment it has seen so that updates can be
    delivered as (previous, current) pairs. When the watch fails it is restarted
    from scratch after a delay. Once the retries are used up the process exits.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        handler: DeploymentEventHandler,
        deploy_manager: DeployManagerBase,
        namespace: str,
        kind: str = DEPLOYMENT_KIND,
        api_version: str = "apps/v1",
        retry_count: int = 5,
        retry_delay: float = 5,
    ):
        """
        Args:
            handler:  DeploymentEventHandler
                The handler that receives notifications
            deploy_manager:  DeployManagerBase
                The deploy manager to stream events from
            namespace:  str
                The namespace to watch
            kind:  str
                The kind to watch
            api_version:  str
                The api_version to watch
            retry_count:  int
                Number of times to restart a failed watch
            retry_delay:  float
                Seconds to wait before restarting a failed watch
        """
        self.handler = handler
        self.deploy_manager = deploy_manager
        self.namespace = namespace
        self.kind = kind
        self.api_version = api_version
        self.attempts_left = retry_count
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        super().__init__(
            name=f"watch_thread_{api_version}_{kind}_{namespace}",
            daemon=True,
        )

        self.shutdown = threading.Event()
        self.kubernetes_watch = watch.Watch()

        # Last seen snapshot of every live resource keyed by uid
        self.snapshots: Dict[str, WorkloadSnapshot] = {}

    def run(self):
        """Control loop for the thread. Once this function exits the thread
        stops
        """
        list_resource_version = 0
        while not self.should_stop():
            try:
                for event in self.deploy_manager.watch_objects(
                    self.kind,
                    self.api_version,
                    namespace=self.namespace,
                    resource_version=list_resource_version,
                    watch_manager=self.kubernetes_watch,
                    should_stop=self.should_stop,
                ):
                    if self.should_stop():
                        log.debug("Shutdown requested, dropping %s", event)
                        return
                    self._handle_event(event)

                # Update the resource version to only get new events
                list_resource_version = self.kubernetes_watch.resource_version
            except Exception as exc:  # pylint: disable=broad-except
                log.info(
                    "Exception raised when attempting to watch %s",
                    repr(exc),
                    exc_info=exc,
                )
                if self.attempts_left <= 0:
                    log.error(
                        "Unable to start watch within %d attempts", self.retry_count
                    )
                    os._exit(1)

                self.shutdown.wait(self.retry_delay)
                if self.should_stop():
                    log.debug("Shutdown requested during retry")
                    return
                self.attempts_left = self.attempts_left - 1
                list_resource_version = 0
                log.info("Restarting watch with %d attempts left", self.attempts_left)

    ## Thread Control ##########################################################

    def start_thread(self):
        """If the thread is not already alive start it"""
        if not self.is_alive():
            log.info("Starting %s: %s", self.__class__.__name__, self.name)
            self.start()

    def stop_thread(self):
        """Set the shutdown event and stop the kubernetes client's Watch"""
        log.info("Stopping %s: %s", self.__class__.__name__, self.name)
        self.shutdown.set()
        self.kubernetes_watch.stop()

    def should_stop(self) -> bool:
        """Helper to determine if the thread should shutdown"""
        return self.shutdown.is_set()

    ## Implementation Details ##################################################

    def _handle_event(self, event: KubeWatchEvent):
        resource = event.resource
        if event.type == KubeEventType.DELETED:
            log.debug2("Forgetting deleted resource %s", resource)
            self.snapshots.pop(resource.uid, None)
            return

        current = self._make_snapshot(event)
        if current is None:
            return

        previous = self.snapshots.get(resource.uid)
        self.snapshots[resource.uid] = current
        if previous is None:
            log.debug2("Delivering add for %s", resource)
            self.handler.on_add(current)
        else:
            log.debug2("Delivering update for %s", resource)
            self.handler.on_update(previous, current)

    @staticmethod
    def _make_snapshot(event: KubeWatchEvent) -> Optional[WorkloadSnapshot]:
        try:
            return WorkloadSnapshot.from_manifest(event.resource.definition)
        except AssertionError as err:
            log.warning(
                "Skipping malformed %s: %s",
                event.resource,
                err,
                extra={"resource": event.resource},
            )
            return None
