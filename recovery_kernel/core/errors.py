"""
Engine refusal taxonomy.

Every failure is local and synchronous: it is raised to the caller of the
failing operation and never retried internally. A refusal leaves no partial
state behind.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class EngineRefusal(Enum):
    """Enumeration of every way an engine operation can refuse."""

    UNAUTHORIZED = "Unauthorized"
    INVALID_PRINCIPAL = "InvalidPrincipal"
    ALREADY_GUARDIAN = "AlreadyGuardian"
    NOT_GUARDIAN = "NotGuardian"
    OWNER_CANNOT_BE_GUARDIAN = "OwnerCannotBeGuardian"
    INSUFFICIENT_GUARDIANS = "InsufficientGuardians"
    RECOVERY_ALREADY_ACTIVE = "RecoveryAlreadyActive"
    NO_ACTIVE_RECOVERY = "NoActiveRecovery"
    ALREADY_APPROVED = "AlreadyApproved"
    INSUFFICIENT_APPROVALS = "InsufficientApprovals"
    ARRAY_LENGTH_MISMATCH = "ArrayLengthMismatch"
    CALL_FAILED = "CallFailed"
    REENTRANT_CALL = "ReentrantCall"
    PAUSED = "Paused"
    INVALID_AMOUNT = "InvalidAmount"


class EngineError(Exception):
    """Base engine error. Carries the refusal code and structured details."""

    refusal: EngineRefusal = EngineRefusal.UNAUTHORIZED

    def __init__(self, message: str = "", **details: Any):
        self.details: Dict[str, Any] = details
        super().__init__(message or self.refusal.value)

    @property
    def code(self) -> str:
        return self.refusal.value

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self), **self.details}


class Unauthorized(EngineError):
    refusal = EngineRefusal.UNAUTHORIZED


class InvalidPrincipal(EngineError):
    refusal = EngineRefusal.INVALID_PRINCIPAL


class AlreadyGuardian(EngineError):
    refusal = EngineRefusal.ALREADY_GUARDIAN


class NotGuardian(EngineError):
    refusal = EngineRefusal.NOT_GUARDIAN


class OwnerCannotBeGuardian(EngineError):
    refusal = EngineRefusal.OWNER_CANNOT_BE_GUARDIAN


class InsufficientGuardians(EngineError):
    refusal = EngineRefusal.INSUFFICIENT_GUARDIANS


class RecoveryAlreadyActive(EngineError):
    refusal = EngineRefusal.RECOVERY_ALREADY_ACTIVE


class NoActiveRecovery(EngineError):
    refusal = EngineRefusal.NO_ACTIVE_RECOVERY


class AlreadyApproved(EngineError):
    refusal = EngineRefusal.ALREADY_APPROVED


class InsufficientApprovals(EngineError):
    refusal = EngineRefusal.INSUFFICIENT_APPROVALS


class ArrayLengthMismatch(EngineError):
    refusal = EngineRefusal.ARRAY_LENGTH_MISMATCH


class ReentrantCall(EngineError):
    """
    The reentrancy lock was already held.

    This is a logic error in the calling code, not a transient condition.
    """

    refusal = EngineRefusal.REENTRANT_CALL


class Paused(EngineError):
    refusal = EngineRefusal.PAUSED


class InvalidAmount(EngineError):
    refusal = EngineRefusal.INVALID_AMOUNT


class CallFailed(EngineError):
    """
    A sub-call inside a batch (or a withdrawal) failed.

    `index` is the zero-based position of the failing step; `result` holds
    the opaque bytes the target returned, if any.
    """

    refusal = EngineRefusal.CALL_FAILED

    def __init__(self, index: int, result: bytes = b"", message: Optional[str] = None):
        self.index = index
        self.result = result
        super().__init__(
            message or f"Sub-call at index {index} failed",
            index=index,
            result=result.hex(),
        )
