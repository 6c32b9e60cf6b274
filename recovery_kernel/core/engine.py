"""
AuthorizationEngine: the enclosing instance that exclusively owns the
AccessRegistry, the GuardianSet, the singleton RecoveryRequest and the
shared reentrancy lock.

Every public operation resolves its caller once and runs as one indivisible
unit relative to the engine's state. Operations are serialized by the
re-entrant lock of the engine's CallBus, which every engine on that bus
shares. A sub-call that calls back into an engine on the same thread is
not deadlocked; it is refused by the ReentrancyGuard instead where
the operation performs external calls.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence
import threading
import time
import uuid

from recovery_kernel.core.access_registry import AccessRegistry
from recovery_kernel.core.batch_executor import BatchExecutor
from recovery_kernel.core.call_bus import CallBus
from recovery_kernel.core.errors import CallFailed, InvalidAmount, InvalidPrincipal, Paused, Unauthorized
from recovery_kernel.core.guardian_set import GuardianSet
from recovery_kernel.core.notifications import DEPOSITED, WITHDRAWN, NotificationHub, Observer
from recovery_kernel.core.observability import (
    caller_id,
    generate_invocation_id,
    get_logger,
    invocation_id,
    log_security_event,
)
from recovery_kernel.core.primitives import Call, Principal, RecoveryInfo
from recovery_kernel.core.recovery import RecoveryCoordinator, RecoveryState
from recovery_kernel.core.reentrancy import ReentrancyGuard

logger = get_logger("engine")


def generate_account_address() -> Principal:
    return Principal("0x" + (uuid.uuid4().hex + uuid.uuid4().hex)[:40])


class AuthorizationEngine:
    def __init__(
        self,
        owner: Principal,
        account: Optional[Principal] = None,
        bus: Optional[CallBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._account = account or generate_account_address()
        if self._account.is_null():
            raise InvalidPrincipal("Account address must be non-null")

        self._hub = NotificationHub()
        self._access = AccessRegistry(owner, self._hub)
        self._guardians = GuardianSet(self._access, self._hub)
        self._recovery = RecoveryCoordinator(self._access, self._guardians, self._hub, clock=clock)
        self._guard = ReentrancyGuard()
        self._bus = bus or CallBus()
        self._batch = BatchExecutor(self._account, self._access, self._bus, self._guard, self._hub)
        # Engines sharing a bus share one mutex
        self._mutex = self._bus.lock

        self._bus.register_participant(self)
        logger.info(f"Engine {self._account} created for owner {owner}")

    @contextmanager
    def _invocation(self, operation: str, caller: Optional[Principal] = None) -> Iterator[None]:
        with self._mutex:
            inv_token = invocation_id.set(generate_invocation_id())
            caller_token = caller_id.set(str(caller) if caller is not None else None)
            try:
                logger.debug(f"Invocation {operation}")
                yield
            finally:
                caller_id.reset(caller_token)
                invocation_id.reset(inv_token)

    # ---- Identity & queries ----

    @property
    def account(self) -> Principal:
        return self._account

    @property
    def bus(self) -> CallBus:
        return self._bus

    @property
    def reentrancy_guard(self) -> ReentrancyGuard:
        return self._guard

    def owner(self) -> Principal:
        return self._access.owner

    def is_owner(self, caller: Principal) -> bool:
        return self._access.is_owner(caller)

    def is_paused(self) -> bool:
        return self._access.is_paused()

    def is_guardian(self, principal: Principal) -> bool:
        return self._guardians.contains(principal)

    def get_guardians(self) -> List[Principal]:
        with self._mutex:
            return self._guardians.list()

    def guardian_count(self) -> int:
        return self._guardians.count()

    def get_recovery_info(self) -> RecoveryInfo:
        with self._mutex:
            return self._recovery.info()

    def recovery_state(self) -> RecoveryState:
        return self._recovery.state

    def balance(self) -> int:
        return self._bus.balance_of(self._account)

    def status(self) -> Dict[str, Any]:
        with self._mutex:
            return {
                "account": str(self._account),
                "owner": str(self._access.owner),
                "paused": self._access.is_paused(),
                "guardian_count": self._guardians.count(),
                "recovery_state": self._recovery.state.value,
                "balance": self.balance(),
                "reentrancy_locked": self._guard.held,
            }

    def subscribe(self, observer: Observer) -> None:
        self._hub.register(observer)

    # ---- Guardian management ----

    def add_guardian(self, caller: Principal, guardian: Principal) -> None:
        with self._invocation("add_guardian", caller):
            self._guardians.add(caller, guardian)

    def remove_guardian(self, caller: Principal, guardian: Principal) -> None:
        with self._invocation("remove_guardian", caller):
            self._guardians.remove(caller, guardian)
            self._recovery.forget(guardian)

    # ---- Recovery ----

    def initiate_recovery(self, caller: Principal, new_owner: Principal) -> RecoveryInfo:
        with self._invocation("initiate_recovery", caller):
            return self._recovery.initiate(caller, new_owner)

    def approve_recovery(self, caller: Principal) -> RecoveryInfo:
        with self._invocation("approve_recovery", caller):
            return self._recovery.approve(caller)

    def execute_recovery(self, caller: Principal) -> Principal:
        with self._invocation("execute_recovery", caller):
            return self._recovery.execute(caller)

    def cancel_recovery(self, caller: Principal) -> None:
        with self._invocation("cancel_recovery", caller):
            self._recovery.cancel(caller)

    # ---- Privileged execution ----

    def execute_batch(
        self,
        caller: Principal,
        targets: Sequence[Principal],
        values: Sequence[int],
        payloads: Sequence[bytes],
    ) -> List[bytes]:
        with self._invocation("execute_batch", caller):
            return self._batch.execute_batch(caller, targets, values, payloads)

    def pause(self, caller: Principal) -> None:
        with self._invocation("pause", caller):
            self._require_owner(caller, "pause")
            self._access.set_paused(True)

    def unpause(self, caller: Principal) -> None:
        with self._invocation("unpause", caller):
            self._require_owner(caller, "unpause")
            self._access.set_paused(False)

    def deposit(self, sender: Principal, amount: int) -> int:
        """Move `amount` of native value from `sender` into the account. Anyone may deposit."""
        with self._invocation("deposit", sender):
            if amount <= 0:
                raise InvalidAmount("Deposit amount must be > 0", amount=amount)
            outcome = self._bus.call(Call(sender=sender, target=self._account, value=amount))
            if not outcome.success:
                raise InvalidAmount(
                    f"{sender} cannot cover a deposit of {amount}",
                    amount=amount,
                ) from outcome.error
            self._hub.emit(DEPOSITED, {"sender": str(sender), "amount": amount})
            return self.balance()

    def withdraw(self, caller: Principal, recipient: Principal, amount: int) -> int:
        """Send `amount` of native value to `recipient`. Owner only, behind the reentrancy lock."""
        with self._invocation("withdraw", caller):
            self._require_owner(caller, "withdraw")
            if self._access.is_paused():
                raise Paused("Account is paused")
            if recipient is None or recipient.is_null():
                raise InvalidPrincipal("Recipient must be a non-null principal", recipient=str(recipient))
            if amount <= 0:
                raise InvalidAmount("Withdrawal amount must be > 0", amount=amount)
            if amount > self.balance():
                raise InvalidAmount(
                    f"Withdrawal of {amount} exceeds balance {self.balance()}",
                    amount=amount,
                    balance=self.balance(),
                )

            with self._guard.hold("withdraw"):
                with self._hub.buffered(), self._bus.transaction():
                    outcome = self._bus.call(Call(sender=self._account, target=recipient, value=amount))
                    if not outcome.success:
                        raise CallFailed(0, outcome.result) from outcome.error
                    self._hub.emit(WITHDRAWN, {"recipient": str(recipient), "amount": amount})
            return self.balance()

    def _require_owner(self, caller: Principal, operation: str) -> None:
        if not self._access.is_owner(caller):
            log_security_event(
                "unauthorized",
                severity="WARNING",
                operation=operation,
                principal=str(caller),
            )
            raise Unauthorized(f"{operation} requires the owner", caller=str(caller))

    # ---- Rollback participation ----

    def checkpoint(self) -> Dict[str, Any]:
        return {
            "access": self._access.snapshot(),
            "guardians": self._guardians.snapshot(),
            "recovery": self._recovery.snapshot(),
            "notifications": self._hub.checkpoint(),
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._access.restore(state["access"])
        self._guardians.restore(state["guardians"])
        self._recovery.restore(state["recovery"])
        self._hub.restore(state["notifications"])


def create_engine(
    owner: Principal,
    guardians: Iterable[Principal] = (),
    account: Optional[Principal] = None,
    bus: Optional[CallBus] = None,
    clock: Callable[[], float] = time.time,
) -> AuthorizationEngine:
    """
    Create an engine and seed its guardian set as the owner.

    Parameters:
    - owner: Initial owner (non-null)
    - guardians: Initial guardians, added in order
    - account: The account's own address on the bus (generated if omitted)
    - bus: Shared CallBus (a private one is created if omitted)
    - clock: Timestamp source for recovery requests
    """
    engine = AuthorizationEngine(owner, account=account, bus=bus, clock=clock)
    for guardian in guardians:
        engine.add_guardian(owner, guardian)
    return engine


# GLOBAL ENGINE INSTANCE (HTTP service)
_engine: Optional[AuthorizationEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> AuthorizationEngine:
    """Get the process-wide engine served over HTTP, built from DEFAULT_OWNER."""
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                from recovery_kernel.core.config import DEFAULT_OWNER
                _engine = AuthorizationEngine(Principal(DEFAULT_OWNER))
    return _engine
