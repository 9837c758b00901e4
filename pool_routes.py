# app/pool_routes.py
"""
OrbitalPool read endpoints and calldata builders.
Nothing here signs or sends: clients approve tokens and submit the
returned {to, data, value} themselves.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from chain.pool_gateway import PoolGateway, PoolUnavailable
from config import CHAIN_ID
from deps import get_ledger, get_pool
from metering import MeteringLedger, MeteringError
from payment_routes import payment_required

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pool"])

_UINT = r"^[0-9]+$"


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except PoolUnavailable as e:
        raise HTTPException(503, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        logger.exception("%s failed", getattr(fn, "__name__", "pool call"))
        raise HTTPException(500, str(e))


# ────────────────────────────────────────────────────────────
# Views
# ────────────────────────────────────────────────────────────

@router.get("/pool/info")
def pool_info(pool: PoolGateway = Depends(get_pool)):
    return _call(pool.get_pool_info)


@router.get("/pool/stats")
def pool_stats(pool: PoolGateway = Depends(get_pool)):
    return _call(pool.get_pool_stats)


@router.get("/pool/reserves")
def pool_reserves(pool: PoolGateway = Depends(get_pool)):
    return {"reserves": _call(pool.get_reserves)}


@router.get("/pool/spot-price")
def spot_price(
    token_in: int = Query(..., alias="tokenIn", ge=0),
    token_out: int = Query(..., alias="tokenOut", ge=0),
    pool: PoolGateway = Depends(get_pool),
):
    price = _call(pool.get_spot_price, token_in, token_out)
    return {"tokenIn": token_in, "tokenOut": token_out, "spotPrice": price}


@router.get("/pool/tick-efficiency")
def tick_efficiency(idx: int = Query(..., ge=0), pool: PoolGateway = Depends(get_pool)):
    return {"idx": idx, "tickEfficiency": _call(pool.get_tick_efficiency, idx)}


@router.get("/pool/tick-info")
def tick_info(idx: int = Query(..., ge=0), pool: PoolGateway = Depends(get_pool)):
    return _call(pool.get_tick_info, idx)


@router.get("/pool/user-ticks")
def user_ticks(user: str = Query(...), pool: PoolGateway = Depends(get_pool)):
    return {"user": user, "ticks": _call(pool.get_user_ticks, user)}


@router.get("/session/remaining")
def session_remaining(
    session_id: str = Query(..., alias="sessionId"),
    pool: PoolGateway = Depends(get_pool),
):
    return {"sessionId": session_id, "remaining": _call(pool.get_session_remaining, session_id)}


@router.get("/quote")
def quote(
    token_in: str = Query(..., alias="tokenIn"),
    token_out: str = Query(..., alias="tokenOut"),
    amount_in: str = Query(..., alias="amountIn", pattern=_UINT),
    pool: PoolGateway = Depends(get_pool),
):
    amount_out = _call(pool.get_quote, token_in, token_out, amount_in)
    return {"amountIn": amount_in, "amountOut": amount_out}


# ────────────────────────────────────────────────────────────
# Calldata
# ────────────────────────────────────────────────────────────

class SwapExecuteRequest(BaseModel):
    model_config = {"populate_by_name": True}
    token_in: str = Field(..., alias="tokenIn")
    token_out: str = Field(..., alias="tokenOut")
    amount_in: str = Field(..., alias="amountIn", pattern=_UINT)
    min_amount_out: str = Field(..., alias="minAmountOut", pattern=_UINT)
    payment_id: Optional[str] = Field(None, alias="paymentId")


class AddLiquidityRequest(BaseModel):
    model_config = {"populate_by_name": True}
    amounts: List[str]
    plane_constant: str = Field("0", alias="planeConstant", pattern=_UINT)


class RemoveLiquidityRequest(BaseModel):
    idx: int = Field(..., ge=0)
    fraction: str = Field(..., pattern=_UINT)


@router.post("/swap/execute")
def swap_execute(
    body: SwapExecuteRequest,
    pool: PoolGateway = Depends(get_pool),
    ledger: MeteringLedger = Depends(get_ledger),
):
    tx = _call(
        pool.build_swap_calldata,
        body.token_in,
        body.token_out,
        body.amount_in,
        body.min_amount_out,
    )
    # charge only once the calldata is known to build
    if body.payment_id:
        try:
            ledger.consume(body.payment_id)
        except MeteringError as e:
            return payment_required(e)

    return {**tx, "chainId": CHAIN_ID, "paymentId": body.payment_id}


@router.post("/pool/liquidity/add")
def liquidity_add(body: AddLiquidityRequest, pool: PoolGateway = Depends(get_pool)):
    calldata = _call(pool.build_add_liquidity_calldata, body.amounts, body.plane_constant)
    return {"calldata": calldata, "note": "Client must approve tokens & send transaction"}


@router.post("/pool/liquidity/remove")
def liquidity_remove(body: RemoveLiquidityRequest, pool: PoolGateway = Depends(get_pool)):
    calldata = _call(pool.build_remove_liquidity_calldata, body.idx, body.fraction)
    return {"calldata": calldata, "note": "Client constructs and sends transaction"}
