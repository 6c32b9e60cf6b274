"""
CallBus: generic dispatch to heterogeneous external targets.

A target is anything that can be invoked with an opaque byte payload and
answers success/failure plus opaque result bytes. The bus also keeps the
native-value ledger so a call can carry value.

Atomicity:
- Every call runs in its own checkpoint; a failed call leaves no effects.
- Engines on one bus serialize on the bus lock, so a target may call into
  any engine on the bus without lock-ordering hazards.
- `transaction()` wraps a sequence of calls; any exception escaping the
  block restores every balance, every checkpointable target and every
  registered participant to the state at entry.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, runtime_checkable
import threading

from recovery_kernel.core.observability import get_logger
from recovery_kernel.core.primitives import (
    Call,
    CallOutcome,
    Principal,
    create_failure_outcome,
    create_success_outcome,
)

logger = get_logger("call_bus")


class CallTarget(Protocol):
    """Anything that accepts an opaque invocation."""

    def invoke(self, call: Call) -> CallOutcome:
        ...


@runtime_checkable
class Checkpointable(Protocol):
    """State that can be captured and put back."""

    def checkpoint(self) -> Any:
        ...

    def restore(self, state: Any) -> None:
        ...


class CallableTarget:
    """
    Adapt a plain function into a stateless target.

    The function receives the Call and returns result bytes; raising marks
    the call as failed.
    """

    def __init__(self, fn: Callable[[Call], Optional[bytes]]):
        self._fn = fn

    def invoke(self, call: Call) -> CallOutcome:
        return create_success_outcome(self._fn(call) or b"")


class InsufficientBalance(RuntimeError):
    """Raised inside the bus when a sender cannot cover a call's value."""
    pass


class CallBus:
    def __init__(self):
        self._balances: Dict[Principal, int] = {}
        self._targets: Dict[Principal, CallTarget] = {}
        self._participants: List[Checkpointable] = []
        self._lock = threading.RLock()

    # ---- Registration ----

    def register_target(self, address: Principal, target: CallTarget) -> None:
        with self._lock:
            if address in self._targets:
                raise ValueError(f"Target {address} already registered")
            self._targets[address] = target

    def register_participant(self, participant: Checkpointable) -> None:
        """Register extra state (e.g. an engine) that transactions must roll back."""
        with self._lock:
            self._participants.append(participant)

    @property
    def lock(self):
        """Re-entrant lock shared by every engine on this bus."""
        return self._lock

    # ---- Native value ----

    def balance_of(self, principal: Principal) -> int:
        with self._lock:
            return self._balances.get(principal, 0)

    def credit(self, principal: Principal, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"credit amount must be >= 0, got {amount}")
        with self._lock:
            self._balances[principal] = self._balances.get(principal, 0) + amount

    def _move(self, sender: Principal, recipient: Principal, amount: int) -> None:
        if amount == 0:
            return
        available = self._balances.get(sender, 0)
        if available < amount:
            raise InsufficientBalance(
                f"{sender} holds {available}, cannot send {amount}"
            )
        self._balances[sender] = available - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

    # ---- Dispatch ----

    def call(self, call: Call) -> CallOutcome:
        """
        Invoke `call.target`, moving `call.value` from sender to target first.

        A target with no registered handler is a plain value recipient.
        Exceptions raised by a target become failed outcomes carrying the
        exception; the call's own effects are undone.
        """
        with self._lock:
            state = self._checkpoint()
            try:
                self._move(call.sender, call.target, call.value)
                target = self._targets.get(call.target)
                if target is None:
                    outcome = create_success_outcome()
                else:
                    outcome = target.invoke(call)
                    if not isinstance(outcome, CallOutcome):
                        raise TypeError(
                            f"Target {call.target} answered {type(outcome).__name__}, not a CallOutcome"
                        )
            except Exception as e:
                logger.warning(f"Call to {call.target} raised {type(e).__name__}: {e}")
                outcome = create_failure_outcome(error=e)

            if not outcome.success:
                self._restore(state)
            return outcome

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            state = self._checkpoint()
            try:
                yield
            except BaseException:
                self._restore(state)
                logger.info("Transaction rolled back")
                raise

    # ---- Checkpointing ----

    def _checkpoint(self) -> Dict[str, Any]:
        return {
            "balances": dict(self._balances),
            "targets": {
                address: target.checkpoint()
                for address, target in self._targets.items()
                if isinstance(target, Checkpointable)
            },
            "participants": [p.checkpoint() for p in self._participants],
        }

    def _restore(self, state: Dict[str, Any]) -> None:
        self._balances = dict(state["balances"])
        for address, target_state in state["targets"].items():
            self._targets[address].restore(target_state)
        for participant, participant_state in zip(self._participants, state["participants"]):
            participant.restore(participant_state)
