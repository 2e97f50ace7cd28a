"""
Parsing for the jobsync annotations found on Deployments and CronJobs.

Two conventions are used:

* A presence marker (SYNC_ENABLED_ANNOTATION_NAME) that opts a resource in.
  Its value is never inspected.
* A JSON object of the form {"jobs": ["name1", "name2"]} stored as a string
  under SYNC_JOBS_ANNOTATION_NAME naming the CronJobs to update.

Decoding never raises. A missing, empty, or malformed jobs annotation decodes
to an empty target list so that a partially configured resource is skipped
rather than aborting the reconciliation pass.
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional
import json

# First Party
import alog

# Local
from .constants import (
    SYNC_ENABLED_ANNOTATION_NAME,
    SYNC_JOBS_ANNOTATION_NAME,
    SYNC_JOBS_KEY,
)

log = alog.use_channel("ANNOT")


class DecodeStatus(Enum):
    """Outcome of decoding the jobs annotation"""

    OK = "OK"
    EMPTY = "EMPTY"


@dataclass(frozen=True)
class TargetDecodeResult:
    """Tagged result of decoding the jobs annotation. The reason is only set
    for EMPTY results and is informational.
    """

    status: DecodeStatus
    targets: List[str] = field(default_factory=list)
    reason: Optional[str] = None

    @classmethod
    def empty(cls, reason: str) -> "TargetDecodeResult":
        return cls(status=DecodeStatus.EMPTY, reason=reason)


@dataclass(frozen=True)
class SyncAnnotation:
    """Decoded form of a resource's jobsync annotations"""

    enabled: bool
    targets: List[str] = field(default_factory=list)


def is_sync_enabled(annotations: Optional[Mapping[str, str]]) -> bool:
    """True iff the enabled marker is present, regardless of its value"""
    return SYNC_ENABLED_ANNOTATION_NAME in (annotations or {})


def decode_target_result(
    annotations: Optional[Mapping[str, str]],
) -> TargetDecodeResult:
    """Decode the jobs annotation into a tagged result

    Args:
        annotations:  Optional[Mapping[str, str]]
            The resource's metadata.annotations

    Returns:
        result:  TargetDecodeResult
            OK with the ordered target names, or EMPTY with the reason the
            annotation could not be used
    """
    raw_value = (annotations or {}).get(SYNC_JOBS_ANNOTATION_NAME)
    if not raw_value:
        return TargetDecodeResult.empty("missing")

    try:
        payload = json.loads(raw_value)
    except (TypeError, ValueError, RecursionError) as err:
        log.debug("Could not parse [%s]: %s", SYNC_JOBS_ANNOTATION_NAME, err)
        return TargetDecodeResult.empty("invalid json")

    if not isinstance(payload, dict):
        return TargetDecodeResult.empty("not an object")
    jobs = payload.get(SYNC_JOBS_KEY)
    if not isinstance(jobs, list) or not all(isinstance(job, str) for job in jobs):
        log.debug2("Unexpected shape for [%s]: %s", SYNC_JOBS_ANNOTATION_NAME, jobs)
        return TargetDecodeResult.empty("wrong shape")

    return TargetDecodeResult(status=DecodeStatus.OK, targets=list(jobs))


def decode_targets(annotations: Optional[Mapping[str, str]]) -> List[str]:
    """Decode the ordered list of target CronJob names. Any problem with the
    annotation yields an empty list.
    """
    return decode_target_result(annotations).targets


def decode_sync_annotation(
    annotations: Optional[Mapping[str, str]],
) -> SyncAnnotation:
    """Decode both annotation conventions at once"""
    return SyncAnnotation(
        enabled=is_sync_enabled(annotations),
        targets=decode_targets(annotations),
    )


def encode_targets(targets: List[str]) -> str:
    """Encode target names in the annotation wire format"""
    return json.dumps({SYNC_JOBS_KEY: list(targets)})
