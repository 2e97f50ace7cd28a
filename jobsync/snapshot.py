"""
Immutable views over the Deployment and CronJob manifests handled by the
controller
"""

# Standard
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple
import copy

# Local
from .annotations import is_sync_enabled


def _first_container(pod_spec: Optional[dict]) -> Optional[dict]:
    containers = (pod_spec or {}).get("containers") or []
    return containers[0] if containers else None


@dataclass(frozen=True)
class Condition:
    """A single entry from a resource's status.conditions"""

    type: Optional[str]
    status: Optional[str]
    reason: Optional[str] = None

    @classmethod
    def from_dict(cls, condition: Mapping[str, Any]) -> "Condition":
        return cls(
            type=condition.get("type"),
            status=condition.get("status"),
            reason=condition.get("reason"),
        )


@dataclass(frozen=True)
class WorkloadSnapshot:
    """Point in time view of a Deployment. The image is always taken from the
    first container of the pod template.
    """

    name: str
    namespace: Optional[str]
    generation: int
    observed_generation: int
    conditions: Tuple[Condition, ...]
    annotations: Mapping[str, str]
    image: str
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    definition: Mapping[str, Any] = field(
        default_factory=dict, compare=False, repr=False
    )

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "WorkloadSnapshot":
        """Build a snapshot from a Deployment manifest. The platform guarantees
        at least one container, so a manifest without one is a programming
        error.
        """
        metadata = manifest.get("metadata") or {}
        status = manifest.get("status") or {}
        pod_spec = (
            ((manifest.get("spec") or {}).get("template") or {}).get("spec") or {}
        )
        container = _first_container(pod_spec)
        assert container is not None, "Deployment has no containers"
        return cls(
            name=metadata.get("name"),
            namespace=metadata.get("namespace"),
            generation=metadata.get("generation") or 0,
            observed_generation=status.get("observedGeneration") or 0,
            conditions=tuple(
                Condition.from_dict(cond) for cond in status.get("conditions") or []
            ),
            annotations=dict(metadata.get("annotations") or {}),
            image=container.get("image"),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
            definition=copy.deepcopy(dict(manifest)),
        )

    def gate_fields(self) -> tuple:
        """The fields whose change makes an update notification worth
        evaluating
        """
        return (
            self.generation,
            self.observed_generation,
            self.conditions,
            tuple(sorted(self.annotations.items())),
            self.image,
        )

    def get(self, *args, **kwargs):
        """Pass get calls to the source manifest so snapshots can be used as
        the `resource` of a log record
        """
        return self.definition.get(*args, **kwargs)

    def __str__(self):
        return f"Deployment/{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ScheduledJob:
    """View of a CronJob as listed from the cluster"""

    name: str
    namespace: Optional[str]
    resource_version: Optional[str]
    enabled: bool
    image: Optional[str]
    definition: Mapping[str, Any] = field(compare=False, repr=False)

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "ScheduledJob":
        metadata = manifest.get("metadata") or {}
        container = _first_container(cls._pod_spec(manifest))
        return cls(
            name=metadata.get("name"),
            namespace=metadata.get("namespace"),
            resource_version=metadata.get("resourceVersion"),
            enabled=is_sync_enabled(metadata.get("annotations")),
            image=container.get("image") if container else None,
            definition=manifest,
        )

    def with_image(self, image: str) -> dict:
        """Make a copy of the listed manifest with the first job container's
        image replaced. The listed resourceVersion is kept so that the update
        is rejected if the CronJob changed since it was listed.
        """
        updated = copy.deepcopy(dict(self.definition))
        container = _first_container(self._pod_spec(updated))
        assert container is not None, f"CronJob {self.name} has no containers"
        container["image"] = image
        return updated

    @staticmethod
    def _pod_spec(manifest: Mapping[str, Any]) -> dict:
        job_template = (manifest.get("spec") or {}).get("jobTemplate") or {}
        pod_template = (job_template.get("spec") or {}).get("template") or {}
        return pod_template.get("spec") or {}

    def __str__(self):
        return f"CronJob/{self.namespace}/{self.name}"
