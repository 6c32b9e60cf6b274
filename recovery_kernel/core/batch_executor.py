"""
BatchExecutor: ordered, all-or-nothing external actions under one
owner-authorized invocation.

Rules:
    - Owner only, account not paused, equal-length inputs
    - Shared reentrancy lock held for the whole batch
    - Steps run strictly in input order
    - First failing step halts the batch and rolls back every effect
    - No retries, no partial success
"""

from __future__ import annotations

from typing import List, Sequence

from recovery_kernel.core.access_registry import AccessRegistry
from recovery_kernel.core.call_bus import CallBus
from recovery_kernel.core.errors import (
    ArrayLengthMismatch,
    CallFailed,
    InvalidAmount,
    Paused,
    Unauthorized,
)
from recovery_kernel.core.notifications import NotificationHub
from recovery_kernel.core.observability import get_logger, log_security_event
from recovery_kernel.core.primitives import Call, Principal
from recovery_kernel.core.reentrancy import ReentrancyGuard

logger = get_logger("batch")


class BatchExecutor:
    def __init__(
        self,
        account: Principal,
        access: AccessRegistry,
        bus: CallBus,
        guard: ReentrancyGuard,
        hub: NotificationHub,
    ):
        self._account = account
        self._access = access
        self._bus = bus
        self._guard = guard
        self._hub = hub

    def execute_batch(
        self,
        caller: Principal,
        targets: Sequence[Principal],
        values: Sequence[int],
        payloads: Sequence[bytes],
    ) -> List[bytes]:
        """
        Execute every (target, value, payload) triple in order.

        Returns the result bytes of each step. On failure raises
        CallFailed(index) after rolling back the whole batch.
        """
        if not self._access.is_owner(caller):
            log_security_event(
                "unauthorized",
                severity="WARNING",
                operation="execute_batch",
                principal=str(caller),
            )
            raise Unauthorized("execute_batch requires the owner", caller=str(caller))
        if self._access.is_paused():
            raise Paused("Account is paused")
        if not (len(targets) == len(values) == len(payloads)):
            raise ArrayLengthMismatch(
                "targets, values and payloads must have equal length",
                targets=len(targets),
                values=len(values),
                payloads=len(payloads),
            )
        for index, value in enumerate(values):
            if value < 0:
                raise InvalidAmount(f"Value at index {index} is negative", index=index, value=value)

        with self._guard.hold("execute_batch"):
            logger.info(f"Executing batch of {len(targets)} step(s)")
            with self._hub.buffered(), self._bus.transaction():
                results: List[bytes] = []
                for index, (target, value, payload) in enumerate(zip(targets, values, payloads)):
                    outcome = self._bus.call(Call(
                        sender=self._account,
                        target=target,
                        value=value,
                        payload=bytes(payload),
                    ))
                    if not outcome.success:
                        logger.warning(f"Batch halted at step {index} (target={target})")
                        raise CallFailed(index, outcome.result) from outcome.error
                    results.append(outcome.result)

        logger.info(f"Batch of {len(results)} step(s) committed")
        return results
