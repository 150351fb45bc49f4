"""
PUSHIN Daemon
Work out to unlock screen time.

Distracting apps stay blocked until you earn time with push-ups,
squats or a plank. All data stays local in ~/.pushin/.
"""

__version__ = "1.0.0"
__author__ = "PUSHIN"
__license__ = "MIT"

from .plans import PlanTier
from .state_machine import (
    PushinState,
    PushinStateMachine,
    Snapshot,
    WorkoutSession,
    UnlockWindow,
    AppBlockTarget,
    InvalidTransition,
)
from .usage import DailyUsage, DailyUsageLedger
from .emergency import EmergencyUnlockTracker, EmergencyUnlockState, NativeEmergencyStatus
from .history import WorkoutHistory, WorkoutRecord
from .rewards import WorkoutRewardCalculator, WorkoutMode
from .scheduler import TaskScheduler
from .bridge import PlatformBridge, OverlayBridge, HttpBridge, get_bridge
from .controller import PushinController, BlockOverlay, BlockReason
from .local_db import LocalDatabase, get_db_path
from .config import PushinConfig, load_config, get_config_path
from .audit import get_audit_logger, AuditLogger

__all__ = [
    # State machine
    "PushinState",
    "PushinStateMachine",
    "Snapshot",
    "WorkoutSession",
    "UnlockWindow",
    "AppBlockTarget",
    "InvalidTransition",

    # Plans and quotas
    "PlanTier",
    "DailyUsage",
    "DailyUsageLedger",
    "EmergencyUnlockTracker",
    "EmergencyUnlockState",
    "NativeEmergencyStatus",

    # Workouts
    "WorkoutRewardCalculator",
    "WorkoutMode",
    "WorkoutHistory",
    "WorkoutRecord",

    # Orchestration
    "TaskScheduler",
    "PlatformBridge",
    "OverlayBridge",
    "HttpBridge",
    "get_bridge",
    "PushinController",
    "BlockOverlay",
    "BlockReason",

    # Storage and config
    "LocalDatabase",
    "get_db_path",
    "PushinConfig",
    "load_config",
    "get_config_path",
    "get_audit_logger",
    "AuditLogger",
]
