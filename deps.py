# app/deps.py
from fastapi import Request

from chain.pool_gateway import PoolGateway
from metering import MeteringLedger
from price_cache import PriceCache


def get_ledger(request: Request) -> MeteringLedger:
    return request.app.state.ledger


def get_price_cache(request: Request) -> PriceCache:
    return request.app.state.price_cache


def get_pool(request: Request) -> PoolGateway:
    return request.app.state.pool
