# app/payment_routes.py
# x402 metering routes: issue a paymentId, check its balance, and spend
# units on protected operations.
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import (
    DEFAULT_MAX_UNITS,
    MAX_UNITS_LIMIT,
    PAYMENT_ADDRESS,
    PAYMENT_ASSET,
)
from deps import get_ledger
from metering import MeteringLedger, MeteringError, UnknownPayment

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["x402"])


def payment_required(e: MeteringError) -> JSONResponse:
    """402 body that tells an unknown id apart from an exhausted balance."""
    reason = "unknown_payment" if isinstance(e, UnknownPayment) else "insufficient_balance"
    return JSONResponse(
        status_code=402,
        content={
            "error": "payment required or insufficient",
            "details": str(e),
            "reason": reason,
            "code": "PAYMENT_REQUIRED",
        },
    )


class AuthorizeRequest(BaseModel):
    model_config = {"populate_by_name": True}
    max_units: int = Field(DEFAULT_MAX_UNITS, alias="maxUnits", ge=1, le=MAX_UNITS_LIMIT)
    metadata: Optional[Dict[str, Any]] = None


class SwapRequest(BaseModel):
    model_config = {"populate_by_name": True}
    payment_id: str = Field(..., alias="paymentId", min_length=1)


@router.post("/x402/authorize")
def authorize(
    body: Optional[AuthorizeRequest] = None,
    ledger: MeteringLedger = Depends(get_ledger),
):
    body = body or AuthorizeRequest()
    try:
        auth = ledger.authorize(body.max_units, metadata=body.metadata)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"status": "ok", **auth}


@router.get("/x402/status")
def payment_status(
    payment_id: str = Query(..., alias="paymentId"),
    ledger: MeteringLedger = Depends(get_ledger),
):
    rec = ledger.status(payment_id)
    if rec is None:
        return JSONResponse(status_code=404, content={"error": "unknown paymentId"})
    return rec


@router.post("/swap")
def metered_swap(body: SwapRequest, ledger: MeteringLedger = Depends(get_ledger)):
    try:
        result = ledger.consume(body.payment_id)
    except MeteringError as e:
        logger.info("Metered swap rejected for %s…: %s", body.payment_id[:10], e)
        return payment_required(e)
    return {"ok": True, **result}


@router.get("/payment/requirements")
def payment_requirements():
    return {
        "x402Version": 1,
        "requirements": {
            "scheme": "exact",
            "network": "polygon-amoy",
            "maxAmountRequired": "1000",
            "description": "Access Orbital premium APIs",
            "payTo": PAYMENT_ADDRESS,
            "asset": PAYMENT_ASSET,
            "maxTimeoutSeconds": 300,
        },
    }
