"""
engine_router.py

HTTP surface for the authorization engine.
The caller identity is resolved once per request from the X-Principal header.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, field_validator

from recovery_kernel.core.config import API_PREFIX, PRINCIPAL_HEADER
from recovery_kernel.core.engine import AuthorizationEngine, get_engine
from recovery_kernel.core.errors import EngineError, EngineRefusal
from recovery_kernel.core.observability import get_logger
from recovery_kernel.core.primitives import Principal

logger = get_logger("router")

router = APIRouter(prefix=API_PREFIX)

_STATUS_BY_REFUSAL = {
    EngineRefusal.UNAUTHORIZED: 403,
    EngineRefusal.INVALID_PRINCIPAL: 422,
    EngineRefusal.INVALID_AMOUNT: 422,
    EngineRefusal.ARRAY_LENGTH_MISMATCH: 422,
    EngineRefusal.PAUSED: 423,
}


# =========================
# API models
# =========================

class GuardianRequest(BaseModel):
    guardian: str


class InitiateRecoveryRequest(BaseModel):
    new_owner: str


class BatchRequest(BaseModel):
    targets: List[str]
    values: List[int]
    payloads: List[str]  # hex, with or without 0x prefix

    @field_validator("payloads")
    @classmethod
    def payloads_are_hex(cls, v: List[str]) -> List[str]:
        for item in v:
            _decode_hex(item)
        return v


class DepositRequest(BaseModel):
    amount: int


class WithdrawRequest(BaseModel):
    recipient: str
    amount: int


def _decode_hex(value: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise ValueError(f"payload is not valid hex: {value!r}")


def _principal(value: str, field: str) -> Principal:
    try:
        return Principal(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": "InvalidPrincipal", "field": field, "message": str(e)})


def resolve_caller(x_principal: Optional[str] = Header(None, alias=PRINCIPAL_HEADER)) -> Principal:
    if not x_principal:
        raise HTTPException(status_code=401, detail={"error": "MissingPrincipal", "header": PRINCIPAL_HEADER})
    return _principal(x_principal, PRINCIPAL_HEADER)


def _refuse(e: EngineError) -> HTTPException:
    status = _STATUS_BY_REFUSAL.get(e.refusal, 409)
    logger.warning(f"Refused with {e.code} ({status}): {e}")
    return HTTPException(status_code=status, detail=e.to_dict())


# =========================
# Queries
# =========================

@router.get("/owner")
def get_owner(engine: AuthorizationEngine = Depends(get_engine)) -> Dict[str, Any]:
    return {"owner": str(engine.owner())}


@router.get("/guardians")
def list_guardians(engine: AuthorizationEngine = Depends(get_engine)) -> Dict[str, Any]:
    guardians = engine.get_guardians()
    return {"guardians": [str(g) for g in guardians], "count": len(guardians)}


@router.get("/recovery")
def get_recovery(engine: AuthorizationEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.get_recovery_info().to_dict()


@router.get("/status")
def get_status(engine: AuthorizationEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.status()


# =========================
# Guardian management
# =========================

@router.post("/guardians")
def add_guardian(
    request: GuardianRequest,
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    guardian = _principal(request.guardian, "guardian")
    try:
        engine.add_guardian(caller, guardian)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "added", "guardian": str(guardian), "count": engine.guardian_count()}


@router.delete("/guardians/{guardian}")
def remove_guardian(
    guardian: str,
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    target = _principal(guardian, "guardian")
    try:
        engine.remove_guardian(caller, target)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "removed", "guardian": str(target), "count": engine.guardian_count()}


# =========================
# Recovery
# =========================

@router.post("/recovery/initiate")
def initiate_recovery(
    request: InitiateRecoveryRequest,
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    new_owner = _principal(request.new_owner, "new_owner")
    try:
        info = engine.initiate_recovery(caller, new_owner)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "initiated", "recovery": info.to_dict()}


@router.post("/recovery/approve")
def approve_recovery(
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        info = engine.approve_recovery(caller)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "approved", "recovery": info.to_dict()}


@router.post("/recovery/execute")
def execute_recovery(
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        new_owner = engine.execute_recovery(caller)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "executed", "owner": str(new_owner)}


@router.post("/recovery/cancel")
def cancel_recovery(
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        engine.cancel_recovery(caller)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "cancelled"}


# =========================
# Privileged execution
# =========================

@router.post("/batch")
def execute_batch(
    request: BatchRequest,
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    targets = [_principal(t, "targets") for t in request.targets]
    payloads = [_decode_hex(p) for p in request.payloads]
    try:
        results = engine.execute_batch(caller, targets, request.values, payloads)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "executed", "results": ["0x" + r.hex() for r in results]}


@router.post("/deposit")
def deposit(
    request: DepositRequest,
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        balance = engine.deposit(caller, request.amount)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "deposited", "balance": balance}


@router.post("/withdraw")
def withdraw(
    request: WithdrawRequest,
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    recipient = _principal(request.recipient, "recipient")
    try:
        balance = engine.withdraw(caller, recipient, request.amount)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "withdrawn", "balance": balance}


@router.post("/pause")
def pause(
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        engine.pause(caller)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "paused"}


@router.post("/unpause")
def unpause(
    caller: Principal = Depends(resolve_caller),
    engine: AuthorizationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        engine.unpause(caller)
    except EngineError as e:
        raise _refuse(e)
    return {"status": "unpaused"}
