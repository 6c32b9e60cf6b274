"""
GuardianSet: the principals allowed to initiate and approve recovery.

Invariants:
- No duplicates
- Owner is never a member
- Null principal is never a member
- Membership set always equals the contents of the ordered list
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Set

from recovery_kernel.core.access_registry import AccessRegistry
from recovery_kernel.core.errors import (
    AlreadyGuardian,
    InvalidPrincipal,
    NotGuardian,
    OwnerCannotBeGuardian,
    Unauthorized,
)
from recovery_kernel.core.notifications import GUARDIAN_ADDED, GUARDIAN_REMOVED, NotificationHub
from recovery_kernel.core.observability import get_logger, log_security_event
from recovery_kernel.core.primitives import Principal

logger = get_logger("guardians")


class UnorderedPrincipalSet:
    """
    Set of principals backed by a resizable list.

    O(1) membership via the set, enumeration via the list. Removal moves the
    last element into the vacated slot and truncates, so enumeration order is
    NOT stable across removals.
    """

    def __init__(self):
        self._items: List[Principal] = []
        self._index: Dict[Principal, int] = {}

    def __contains__(self, principal: Principal) -> bool:
        return principal in self._index

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Principal]:
        return iter(list(self._items))

    def add(self, principal: Principal) -> bool:
        if principal in self._index:
            return False
        self._index[principal] = len(self._items)
        self._items.append(principal)
        return True

    def swap_remove(self, principal: Principal) -> bool:
        slot = self._index.pop(principal, None)
        if slot is None:
            return False
        last = self._items.pop()
        if slot < len(self._items):
            self._items[slot] = last
            self._index[last] = slot
        return True

    def as_list(self) -> List[Principal]:
        return list(self._items)

    def as_set(self) -> Set[Principal]:
        return set(self._index)

    def load(self, items: List[Principal]) -> None:
        self._items = list(items)
        self._index = {p: i for i, p in enumerate(self._items)}


class GuardianSet:
    def __init__(self, access: AccessRegistry, hub: NotificationHub):
        self._access = access
        self._hub = hub
        self._members = UnorderedPrincipalSet()

    def _require_owner(self, caller: Principal, operation: str) -> None:
        if not self._access.is_owner(caller):
            log_security_event(
                "unauthorized",
                severity="WARNING",
                operation=operation,
                principal=str(caller),
            )
            raise Unauthorized(f"{operation} requires the owner", caller=str(caller))

    def add(self, caller: Principal, guardian: Principal) -> None:
        """Add a guardian. Owner only."""
        self._require_owner(caller, "add_guardian")

        if guardian is None or guardian.is_null():
            raise InvalidPrincipal("Guardian must be a non-null principal", guardian=str(guardian))
        if guardian in self._members:
            raise AlreadyGuardian(f"{guardian} is already a guardian", guardian=str(guardian))
        if self._access.is_owner(guardian):
            raise OwnerCannotBeGuardian("The owner cannot be a guardian", guardian=str(guardian))

        self._members.add(guardian)
        logger.info(f"Guardian added: {guardian} (count={len(self._members)})")
        self._hub.emit(GUARDIAN_ADDED, {"guardian": str(guardian)})

    def remove(self, caller: Principal, guardian: Principal) -> None:
        """Remove a guardian. Owner only. Enumeration order is not preserved."""
        self._require_owner(caller, "remove_guardian")

        if guardian not in self._members:
            raise NotGuardian(f"{guardian} is not a guardian", guardian=str(guardian))

        self._discard(guardian)

    def demote(self, principal: Principal) -> bool:
        """
        Internal: drop `principal` from the set without an owner check.

        Used when a guardian becomes the owner through recovery.
        """
        if principal not in self._members:
            return False
        self._discard(principal)
        return True

    def _discard(self, guardian: Principal) -> None:
        self._members.swap_remove(guardian)
        logger.info(f"Guardian removed: {guardian} (count={len(self._members)})")
        self._hub.emit(GUARDIAN_REMOVED, {"guardian": str(guardian)})

    def contains(self, principal: Principal) -> bool:
        return principal in self._members

    def list(self) -> List[Principal]:
        return self._members.as_list()

    def count(self) -> int:
        return len(self._members)

    def snapshot(self) -> Dict[str, Any]:
        return {"members": self._members.as_list()}

    def restore(self, state: Dict[str, Any]) -> None:
        self._members.load(state["members"])
