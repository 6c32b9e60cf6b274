"""
Guardian Recovery Kernel

Guardian-set management, threshold recovery of a single owner identity,
and reentrancy-guarded atomic batch execution.
"""

from .core.primitives import (
    # Primitives
    Principal,
    NULL_PRINCIPAL,
    RecoveryRequest,
    RecoveryInfo,
    Notification,
    Call,
    CallOutcome,

    # Factories
    create_principal,
    create_success_outcome,
    create_failure_outcome,
)

from .core.errors import (
    EngineError,
    EngineRefusal,
    Unauthorized,
    InvalidPrincipal,
    AlreadyGuardian,
    NotGuardian,
    OwnerCannotBeGuardian,
    InsufficientGuardians,
    RecoveryAlreadyActive,
    NoActiveRecovery,
    AlreadyApproved,
    InsufficientApprovals,
    ArrayLengthMismatch,
    CallFailed,
    ReentrantCall,
    Paused,
    InvalidAmount,
)

from .core.access_registry import AccessRegistry
from .core.guardian_set import GuardianSet, UnorderedPrincipalSet
from .core.recovery import RecoveryCoordinator, RecoveryState
from .core.reentrancy import ReentrancyGuard
from .core.call_bus import CallBus, CallTarget, CallableTarget, Checkpointable
from .core.batch_executor import BatchExecutor
from .core.notifications import NotificationHub, NotificationLog, Observer
from .core.engine import AuthorizationEngine, create_engine, get_engine

__version__ = "0.1.0"
__all__ = [
    # Primitives
    "Principal",
    "NULL_PRINCIPAL",
    "RecoveryRequest",
    "RecoveryInfo",
    "Notification",
    "Call",
    "CallOutcome",
    # Factories
    "create_principal",
    "create_success_outcome",
    "create_failure_outcome",
    "create_engine",
    # Errors
    "EngineError",
    "EngineRefusal",
    "Unauthorized",
    "InvalidPrincipal",
    "AlreadyGuardian",
    "NotGuardian",
    "OwnerCannotBeGuardian",
    "InsufficientGuardians",
    "RecoveryAlreadyActive",
    "NoActiveRecovery",
    "AlreadyApproved",
    "InsufficientApprovals",
    "ArrayLengthMismatch",
    "CallFailed",
    "ReentrantCall",
    "Paused",
    "InvalidAmount",
    # Components
    "AccessRegistry",
    "GuardianSet",
    "UnorderedPrincipalSet",
    "RecoveryCoordinator",
    "RecoveryState",
    "ReentrancyGuard",
    "CallBus",
    "CallTarget",
    "CallableTarget",
    "Checkpointable",
    "BatchExecutor",
    "NotificationHub",
    "NotificationLog",
    "Observer",
    "AuthorizationEngine",
    # Singleton accessors
    "get_engine",
]
