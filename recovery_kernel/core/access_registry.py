"""
AccessRegistry: current owner identity and the paused flag.

Leaf component consumed by every other component for authorization checks.
There is deliberately no public "set owner": ownership only moves through a
successful recovery execution.
"""

from __future__ import annotations

from typing import Any, Dict

from recovery_kernel.core.errors import InvalidPrincipal
from recovery_kernel.core.notifications import (
    NotificationHub,
    OWNERSHIP_TRANSFERRED,
    PAUSED,
    UNPAUSED,
)
from recovery_kernel.core.observability import get_logger, log_security_event
from recovery_kernel.core.primitives import Principal

logger = get_logger("access")


class AccessRegistry:
    def __init__(self, owner: Principal, hub: NotificationHub):
        if owner is None or owner.is_null():
            raise InvalidPrincipal("Owner must be a non-null principal", principal=str(owner))
        self._owner = owner
        self._paused = False
        self._hub = hub

    @property
    def owner(self) -> Principal:
        return self._owner

    def is_owner(self, caller: Principal) -> bool:
        return caller == self._owner

    def is_paused(self) -> bool:
        return self._paused

    def transfer_ownership(self, new_owner: Principal) -> Principal:
        """
        Replace the owner. Internal: called only by RecoveryCoordinator.

        Returns the previous owner.
        """
        if new_owner is None or new_owner.is_null():
            raise InvalidPrincipal("New owner must be a non-null principal", principal=str(new_owner))

        previous = self._owner
        self._owner = new_owner
        log_security_event(
            "ownership_transferred",
            severity="WARNING",
            previous_owner=str(previous),
            new_owner=str(new_owner),
        )
        self._hub.emit(OWNERSHIP_TRANSFERRED, {
            "previous_owner": str(previous),
            "new_owner": str(new_owner),
        })
        return previous

    def set_paused(self, paused: bool) -> None:
        """Internal: reached through the engine's owner-only pause/unpause."""
        if self._paused == paused:
            return
        self._paused = paused
        logger.info(f"Account {'paused' if paused else 'unpaused'}")
        self._hub.emit(PAUSED if paused else UNPAUSED, {"owner": str(self._owner)})

    def snapshot(self) -> Dict[str, Any]:
        return {"owner": self._owner, "paused": self._paused}

    def restore(self, state: Dict[str, Any]) -> None:
        self._owner = state["owner"]
        self._paused = state["paused"]
