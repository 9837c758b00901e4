# app/price_cache.py
"""
Background price cache over a fixed asset table.

Polls the quote source in one batch per cycle, merges matched entries by
asset key, and flags entries whose publish time is older than two poll
intervals. An unreachable feed leaves the last known good table in place.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence

from oracle import (
    ASSETS,
    AssetConfig,
    OracleError,
    UpstreamUnavailable,
    normalize_feed_id,
    parse_quote,
)

logger = logging.getLogger(__name__)


class QuoteSource(Protocol):
    def fetch_batch(self, feed_ids: Sequence[str], timeout: float) -> list: ...


class PriceCache:
    def __init__(
        self,
        source: QuoteSource,
        *,
        assets: Mapping[str, AssetConfig] = ASSETS,
        poll_interval_ms: int = 15_000,
        fetch_timeout: float = 8.0,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.assets = assets
        self.poll_interval_ms = poll_interval_ms
        self.fetch_timeout = fetch_timeout
        self._clock = clock

        self._prices: Dict[str, Dict[str, Any]] = {}
        self._last_update: Optional[str] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None
        # refresh and sweep run on worker threads (poller and /price/refresh)
        self._lock = threading.Lock()

    # --------------------------------------------------
    # Read access
    # --------------------------------------------------

    @property
    def prices(self) -> Dict[str, Dict[str, Any]]:
        table = self._prices
        return {k: dict(v) for k, v in table.items()}

    @property
    def last_update(self) -> Optional[str]:
        return self._last_update

    @property
    def running(self) -> bool:
        return self._running

    def get(self, asset_key: str) -> Optional[Dict[str, Any]]:
        entry = self._prices.get(asset_key)
        return dict(entry) if entry is not None else None

    # --------------------------------------------------
    # Refresh
    # --------------------------------------------------

    def refresh_all(self) -> None:
        feed_ids = [a.feed_id for a in self.assets.values()]
        try:
            parsed = self.source.fetch_batch(feed_ids, self.fetch_timeout)
        except UpstreamUnavailable as e:
            logger.warning("[PriceFeed] Batch fetch failed: %s", e)
            return
        except Exception as e:
            logger.warning("[PriceFeed] Batch fetch failed unexpectedly: %s", e)
            return
        logger.info("[PriceFeed] Fetched %d price entries", len(parsed))

        by_id = {}
        for p in parsed:
            if isinstance(p, dict) and isinstance(p.get("id"), str):
                by_id[normalize_feed_id(p["id"])] = p

        with self._lock:
            self._merge(by_id)

    def _merge(self, by_id: Dict[str, Dict[str, Any]]) -> None:
        updated = dict(self._prices)
        now = self._clock()
        for key, meta in self.assets.items():
            candidate = by_id.get(normalize_feed_id(meta.feed_id))
            if candidate is None:
                continue
            try:
                quote = parse_quote(candidate, now=now)
            except OracleError as e:
                logger.warning("[PriceFeed] Failed to parse %s: %s", key, e)
                continue
            updated[key] = {
                "symbol": meta.symbol,
                "feed_id": meta.feed_id,
                **quote,
                "stale": False,
            }
            logger.info("[PriceFeed] Updated %s: $%s", key, quote["price"])

        if not updated:
            if self._last_update is None:
                logger.warning(
                    "[PriceFeed] Initial update produced no data (check network / feed IDs)"
                )
            return

        self._prices = updated
        self._last_update = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()

    def sweep_stale(self) -> None:
        with self._lock:
            cutoff_ms = self._clock() * 1000 - 2 * self.poll_interval_ms
            table = self._prices
            swept = None
            for key, entry in table.items():
                ts = entry.get("timestamp") or 0
                if ts and ts * 1000 < cutoff_ms and not entry.get("stale"):
                    if swept is None:
                        swept = dict(table)
                    swept[key] = {**entry, "stale": True}
                    logger.info("[PriceFeed] %s is stale (published %d)", key, ts)
            if swept is not None:
                self._prices = swept

    def poll_once(self) -> None:
        try:
            self.refresh_all()
        except Exception:
            logger.exception("[PriceFeed] Refresh failed")
        self.sweep_stale()

    # --------------------------------------------------
    # Poll loop
    # --------------------------------------------------

    async def _run(self) -> None:
        while self._running:
            await asyncio.to_thread(self.poll_once)
            if not self._running:
                break
            await asyncio.sleep(self.poll_interval_ms / 1000)

    def start(self, poll_interval_ms: Optional[int] = None) -> None:
        if self._running:
            return
        if poll_interval_ms is not None:
            self.poll_interval_ms = poll_interval_ms
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("[PriceFeed] Polling every %dms", self.poll_interval_ms)

    def stop(self) -> Optional[asyncio.Task]:
        """Cancel the poll task and hand it back so the caller can await it."""
        self._running = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        return task
