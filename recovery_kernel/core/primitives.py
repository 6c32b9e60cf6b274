"""
Kernel primitives: Principal, RecoveryRequest, Notification, Call.

Identities are data. Authority comes only from comparing them against
engine-owned state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set, Tuple
import time

from recovery_kernel.core.config import MAX_PRINCIPAL_LENGTH, NULL_ADDRESS


# PRIMITIVE 1: PRINCIPAL (OPAQUE IDENTITY)
@dataclass(frozen=True, order=True)
class Principal:
    """
    Opaque, comparable identity (an address).

    - No hierarchy
    - No inference
    - The null principal is constructible but never valid as an active identity
    """

    address: str

    def __post_init__(self):
        if not isinstance(self.address, str) or not self.address:
            raise ValueError("Principal: address is required")
        if len(self.address) > MAX_PRINCIPAL_LENGTH:
            raise ValueError(
                f"Principal: address too long (max {MAX_PRINCIPAL_LENGTH} chars): {len(self.address)}"
            )

    def is_null(self) -> bool:
        return self.address == NULL_ADDRESS

    def __str__(self) -> str:
        return self.address


NULL_PRINCIPAL = Principal(NULL_ADDRESS)


def create_principal(address: str) -> Principal:
    """Create a principal from its address."""
    return Principal(address=address)


# PRIMITIVE 2: RECOVERY REQUEST (SINGLETON, OVERWRITTEN ON INITIATION)
@dataclass
class RecoveryRequest:
    """
    The single recovery request slot.

    At most one request is active at a time. Initiation overwrites whatever
    the previous (inactive) request held.
    """

    new_owner: Principal = NULL_PRINCIPAL
    approvals: Set[Principal] = field(default_factory=set)
    created_at: float = 0.0
    active: bool = False


@dataclass(frozen=True)
class RecoveryInfo:
    """Immutable snapshot of the recovery slot, returned by queries."""

    new_owner: Principal
    approvals: Tuple[Principal, ...]
    created_at: float
    active: bool
    threshold: int

    @property
    def approval_count(self) -> int:
        return len(self.approvals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "new_owner": str(self.new_owner),
            "approvals": [str(p) for p in self.approvals],
            "approval_count": self.approval_count,
            "created_at": self.created_at,
            "active": self.active,
            "threshold": self.threshold,
        }


# PRIMITIVE 3: NOTIFICATION (PASSIVE)
@dataclass(frozen=True)
class Notification:
    """Event emitted after a successful operation. Observers may read, never control."""

    name: str
    fields: Dict[str, Any] = field(default_factory=dict)
    emitted_at: float = field(default_factory=time.time)


# PRIMITIVE 4: CALL (OPAQUE EXTERNAL INVOCATION)
@dataclass(frozen=True)
class Call:
    """A single external invocation: value plus an opaque byte payload."""

    sender: Principal
    target: Principal
    value: int
    payload: bytes = b""

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Call: value must be >= 0, got {self.value}")
        if not isinstance(self.payload, (bytes, bytearray)):
            raise ValueError("Call: payload must be bytes")


@dataclass(frozen=True)
class CallOutcome:
    """Success/failure of a sub-call plus the opaque result bytes."""

    success: bool
    result: bytes = b""
    error: Optional[BaseException] = None

    def __post_init__(self):
        if not isinstance(self.result, (bytes, bytearray)):
            raise TypeError(
                f"CallOutcome: result must be bytes, got {type(self.result).__name__}"
            )


def create_success_outcome(result: bytes = b"") -> CallOutcome:
    return CallOutcome(success=True, result=result)


def create_failure_outcome(result: bytes = b"", error: Optional[BaseException] = None) -> CallOutcome:
    return CallOutcome(success=False, result=result, error=error)


def sorted_principals(principals: Iterable[Principal]) -> Tuple[Principal, ...]:
    return tuple(sorted(principals))
