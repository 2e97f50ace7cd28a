"""
Package exports
"""

# Local
from . import config
from .annotations import (
    decode_sync_annotation,
    decode_targets,
    encode_targets,
    is_sync_enabled,
)
from .controller import ControllerState, JobSyncController
from .deploy_manager import (
    DeployManagerBase,
    DryRunDeployManager,
    OpenshiftDeployManager,
)
from .gate import AvailabilityGate, should_sync
from .resolver import build_assignment
from .snapshot import ScheduledJob, WorkloadSnapshot
from .sync_engine import SyncEngine, SyncReport
from .watch import DeploymentEventHandler, WatchThread
