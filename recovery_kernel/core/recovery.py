"""
RecoveryCoordinator: threshold-voting state machine that replaces the owner.

States:
    Idle    - no active request
    Pending - one active RecoveryRequest

Transitions:
    initiate  Idle    -> Pending   (any guardian)
    approve   Pending -> Pending   (any guardian, once per request)
    execute   Pending -> Idle      (ANY caller, threshold met)
    cancel    Pending -> Idle      (owner)

The threshold is floor(2 * guardian_count / 3) computed from the guardian
count at the moment of execution, not the count at initiation. Guardian-set
changes while a request is pending therefore move the bar. This is kept as
is; changing it is a policy decision, not a bug fix.

Only the most recent request is retained. Initiation overwrites it.
Approvals are always a subset of the current guardians: a guardian who
leaves the set takes its approval along.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict
import copy
import time

from recovery_kernel.core.access_registry import AccessRegistry
from recovery_kernel.core.config import MIN_GUARDIANS_FOR_RECOVERY, compute_threshold
from recovery_kernel.core.errors import (
    AlreadyApproved,
    InsufficientApprovals,
    InsufficientGuardians,
    InvalidPrincipal,
    NoActiveRecovery,
    RecoveryAlreadyActive,
    Unauthorized,
)
from recovery_kernel.core.guardian_set import GuardianSet
from recovery_kernel.core.notifications import (
    NotificationHub,
    RECOVERY_APPROVED,
    RECOVERY_CANCELLED,
    RECOVERY_EXECUTED,
    RECOVERY_INITIATED,
)
from recovery_kernel.core.observability import get_logger, log_security_event
from recovery_kernel.core.primitives import (
    Principal,
    RecoveryInfo,
    RecoveryRequest,
    sorted_principals,
)

logger = get_logger("recovery")


class RecoveryState(Enum):
    IDLE = "idle"
    PENDING = "pending"


class RecoveryCoordinator:
    def __init__(
        self,
        access: AccessRegistry,
        guardians: GuardianSet,
        hub: NotificationHub,
        clock: Callable[[], float] = time.time,
    ):
        self._access = access
        self._guardians = guardians
        self._hub = hub
        self._clock = clock
        self._request = RecoveryRequest()

    @property
    def state(self) -> RecoveryState:
        return RecoveryState.PENDING if self._request.active else RecoveryState.IDLE

    def current_threshold(self) -> int:
        return compute_threshold(self._guardians.count())

    def _require_guardian(self, caller: Principal, operation: str) -> None:
        if not self._guardians.contains(caller):
            log_security_event(
                "unauthorized",
                severity="WARNING",
                operation=operation,
                principal=str(caller),
            )
            raise Unauthorized(f"{operation} requires a guardian", caller=str(caller))

    def _require_pending(self, operation: str) -> None:
        if not self._request.active:
            raise NoActiveRecovery(f"{operation}: no recovery is pending")

    def initiate(self, caller: Principal, new_owner: Principal) -> RecoveryInfo:
        """Open a recovery request proposing `new_owner`."""
        self._require_guardian(caller, "initiate_recovery")

        if self._request.active:
            raise RecoveryAlreadyActive(
                "A recovery is already pending",
                new_owner=str(self._request.new_owner),
            )
        if new_owner is None or new_owner.is_null():
            raise InvalidPrincipal("New owner must be a non-null principal", new_owner=str(new_owner))

        guardian_count = self._guardians.count()
        if guardian_count < MIN_GUARDIANS_FOR_RECOVERY:
            raise InsufficientGuardians(
                f"Recovery needs at least {MIN_GUARDIANS_FOR_RECOVERY} guardians, have {guardian_count}",
                guardian_count=guardian_count,
                required=MIN_GUARDIANS_FOR_RECOVERY,
            )

        self._request = RecoveryRequest(
            new_owner=new_owner,
            approvals=set(),
            created_at=self._clock(),
            active=True,
        )

        log_security_event(
            "recovery_initiated",
            severity="WARNING",
            initiator=str(caller),
            new_owner=str(new_owner),
        )
        self._hub.emit(RECOVERY_INITIATED, {
            "initiator": str(caller),
            "new_owner": str(new_owner),
            "created_at": self._request.created_at,
        })
        return self.info()

    def approve(self, caller: Principal) -> RecoveryInfo:
        """Record `caller`'s approval. Each guardian counts at most once."""
        self._require_guardian(caller, "approve_recovery")
        self._require_pending("approve_recovery")

        if caller in self._request.approvals:
            raise AlreadyApproved(f"{caller} already approved this recovery", guardian=str(caller))

        self._request.approvals.add(caller)

        approval_count = len(self._request.approvals)
        logger.info(
            f"Recovery approved by {caller} ({approval_count}/{self.current_threshold()})"
        )
        self._hub.emit(RECOVERY_APPROVED, {
            "guardian": str(caller),
            "approval_count": approval_count,
        })
        return self.info()

    def execute(self, caller: Principal) -> Principal:
        """
        Execute the pending recovery. Callable by anyone.

        Returns the new owner.
        """
        self._require_pending("execute_recovery")

        threshold = self.current_threshold()
        approval_count = len(self._request.approvals)
        if approval_count < threshold:
            raise InsufficientApprovals(
                f"Recovery has {approval_count} approval(s), needs {threshold}",
                approval_count=approval_count,
                threshold=threshold,
            )

        new_owner = self._request.new_owner
        # The owner can never be a guardian; a guardian promoted to owner
        # leaves the set.
        self._guardians.demote(new_owner)
        self.forget(new_owner)
        previous = self._access.transfer_ownership(new_owner)
        self._request.active = False

        log_security_event(
            "recovery_executed",
            severity="WARNING",
            executor=str(caller),
            previous_owner=str(previous),
            new_owner=str(new_owner),
            approval_count=approval_count,
            threshold=threshold,
        )
        self._hub.emit(RECOVERY_EXECUTED, {
            "executor": str(caller),
            "previous_owner": str(previous),
            "new_owner": str(new_owner),
            "approval_count": approval_count,
            "threshold": threshold,
        })
        return new_owner

    def cancel(self, caller: Principal) -> None:
        """Cancel the pending recovery without touching ownership. Owner only."""
        if not self._access.is_owner(caller):
            log_security_event(
                "unauthorized",
                severity="WARNING",
                operation="cancel_recovery",
                principal=str(caller),
            )
            raise Unauthorized("cancel_recovery requires the owner", caller=str(caller))
        self._require_pending("cancel_recovery")

        self._request.active = False
        logger.info(f"Recovery to {self._request.new_owner} cancelled by owner")
        self._hub.emit(RECOVERY_CANCELLED, {"new_owner": str(self._request.new_owner)})

    def info(self) -> RecoveryInfo:
        request = self._request
        return RecoveryInfo(
            new_owner=request.new_owner,
            approvals=sorted_principals(request.approvals),
            created_at=request.created_at,
            active=request.active,
            threshold=self.current_threshold(),
        )

    def forget(self, guardian: Principal) -> None:
        """Drop a departed guardian's approval; approvals stay a subset of the guardian set."""
        if guardian in self._request.approvals:
            self._request.approvals.discard(guardian)
            logger.info(
                f"Approval by {guardian} withdrawn with its guardianship "
                f"({len(self._request.approvals)} remaining)"
            )

    def snapshot(self) -> Dict[str, Any]:
        return {"request": copy.deepcopy(self._request)}

    def restore(self, state: Dict[str, Any]) -> None:
        self._request = state["request"]
