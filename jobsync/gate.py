"""
The availability gate decides whether a Deployment snapshot represents a
change worth syncing. It is stateless: every decision is made from the
snapshot alone.

A snapshot passes only when all of the following hold:

* It carries the sync enabled annotation.
* Its generation is ahead of its observed generation, meaning the control
  plane has not yet finished processing the latest spec change. This keeps
  periodic resyncs of already processed snapshots from triggering work.
* At least one status condition is true. This keeps an image from a
  Deployment that has not rolled out from being copied onto the jobs. A
  snapshot with no conditions never passes.
"""

# Standard
from abc import ABC, abstractmethod
from typing import List, Optional, Type

# First Party
import alog

# Local
from .annotations import is_sync_enabled
from .constants import CONDITION_STATUS_TRUE
from .snapshot import WorkloadSnapshot

log = alog.use_channel("GATE")


## Filters #####################################################################


class Filter(ABC):
    """A single check applied to a snapshot. Filters hold no state."""

    @abstractmethod
    def test(self, snapshot: WorkloadSnapshot) -> bool:
        """Return True if the snapshot passes this filter"""

    def __str__(self):
        return self.__class__.__name__


class SyncEnabledFilter(Filter):
    """Pass Deployments that opted in with the enabled annotation"""

    def test(self, snapshot: WorkloadSnapshot) -> bool:
        return is_sync_enabled(snapshot.annotations)


class StaleGenerationFilter(Filter):
    """Pass Deployments whose generation has not been observed yet"""

    def test(self, snapshot: WorkloadSnapshot) -> bool:
        return snapshot.generation > snapshot.observed_generation


class AvailableFilter(Filter):
    """Pass Deployments with at least one true condition"""

    def test(self, snapshot: WorkloadSnapshot) -> bool:
        for condition in snapshot.conditions:
            log.debug2(
                "Deployment %s condition %s status: %s, reason: %s",
                snapshot.name,
                condition.type,
                condition.status,
                condition.reason,
            )
            if str(condition.status).lower() == CONDITION_STATUS_TRUE:
                return True
        return False


DEFAULT_FILTERS = [SyncEnabledFilter, StaleGenerationFilter, AvailableFilter]


## Gate ########################################################################


class AvailabilityGate(Filter):
    """All of the configured filters must pass for a snapshot to be synced"""

    def __init__(self, filters: Optional[List[Type[Filter]]] = None):
        self.filters = [
            filter_type() for filter_type in (filters or DEFAULT_FILTERS)
        ]

    def test(self, snapshot: WorkloadSnapshot) -> bool:
        for snapshot_filter in self.filters:
            if not snapshot_filter.test(snapshot):
                log.debug(
                    "%s dropped by %s",
                    snapshot,
                    snapshot_filter,
                    extra={"resource": snapshot},
                )
                return False
        return True


_DEFAULT_GATE = AvailabilityGate()


def should_sync(snapshot: WorkloadSnapshot) -> bool:
    """Evaluate the snapshot against the default gate"""
    return _DEFAULT_GATE.test(snapshot)
