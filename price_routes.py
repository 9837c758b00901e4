# app/price_routes.py
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from deps import get_price_cache
from price_cache import PriceCache

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["prices"])


@router.get("/prices")
def all_prices(cache: PriceCache = Depends(get_price_cache)):
    return {"status": "success", "data": cache.prices, "lastUpdate": cache.last_update}


@router.get("/price/{asset}")
def one_price(asset: str, cache: PriceCache = Depends(get_price_cache)):
    entry = cache.get(asset)
    if entry is None:
        return JSONResponse(
            status_code=404,
            content={
                "status": "error",
                "message": "Asset not found",
                "available": list(cache.assets.keys()),
            },
        )
    return {"status": "success", "asset": asset, "data": entry, "lastUpdate": cache.last_update}


@router.post("/price/refresh")
async def refresh_prices(cache: PriceCache = Depends(get_price_cache)):
    await asyncio.to_thread(cache.poll_once)
    return {"status": "success", "data": cache.prices, "lastUpdate": cache.last_update}
