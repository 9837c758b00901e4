# app/main.py
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from web3 import Web3

from config import (
    RPC_URL,
    POOL_ADDRESS,
    SESSION_MANAGER_ADDRESS,
    TOKEN_ADDRESSES,
    X402_FACILITATOR_URL,
    FACILITATOR_PROBE_TIMEOUT,
    UNITS_PER_SWAP,
    PRICE_FEED_URL,
    PRICE_POLL_INTERVAL,
    PRICE_FETCH_TIMEOUT,
)
from chain.pool_gateway import PoolGateway
from metering import MeteringLedger, FacilitatorProbe
from oracle import HermesClient
from price_cache import PriceCache
from price_routes import router as price_router
from payment_routes import router as payment_router
from pool_routes import router as pool_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    app.state.price_cache.start()
    logger.info("Price feed poller started")
    yield
    task = app.state.price_cache.stop()
    if task is not None:
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("Price feed poller stopped")


app = FastAPI(title="Orbital Gateway API", version="0.1.0", lifespan=lifespan)
app.include_router(price_router)
app.include_router(payment_router)
app.include_router(pool_router)

app.state.ledger = MeteringLedger(
    probe=FacilitatorProbe(X402_FACILITATOR_URL, timeout=FACILITATOR_PROBE_TIMEOUT),
    units_per_swap=UNITS_PER_SWAP,
)
app.state.price_cache = PriceCache(
    HermesClient(PRICE_FEED_URL),
    poll_interval_ms=PRICE_POLL_INTERVAL * 1000,
    fetch_timeout=PRICE_FETCH_TIMEOUT,
)
app.state.pool = PoolGateway(
    Web3(Web3.HTTPProvider(RPC_URL)),
    POOL_ADDRESS,
    session_manager_address=SESSION_MANAGER_ADDRESS,
    token_addresses=TOKEN_ADDRESSES,
)


@app.get("/healthz")
def healthz():
    return {"ok": "true"}


@app.get("/api/contracts")
def get_contracts():
    pool = app.state.pool
    return {
        "OrbitalPool": (pool.pool_address or "").lower() or None,
        "SessionManager": SESSION_MANAGER_ADDRESS.lower() or None,
        **{k: v.lower() for k, v in pool.token_addresses.items()},
    }
