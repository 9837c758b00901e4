"""
Test doubles for the gateway: a controllable clock, a scripted quote
source, and a Hermes-shaped entry builder.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from oracle import AssetConfig, UpstreamUnavailable


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """Returns the queued batch, or raises when `fail` is set."""

    def __init__(self, batch: Optional[List[Dict[str, Any]]] = None):
        self.batch = batch or []
        self.fail = False
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def fetch_batch(self, feed_ids, timeout):
        with self._lock:
            self.calls.append((list(feed_ids), timeout))
        if self.fail:
            raise UpstreamUnavailable("HTTP 503")
        return list(self.batch)


def hermes_entry(feed_id: str, price, expo: int = -8, conf=0, publish_time=None) -> Dict[str, Any]:
    info: Dict[str, Any] = {"price": str(price), "conf": str(conf), "expo": expo}
    if publish_time is not None:
        info["publish_time"] = publish_time
    return {"id": feed_id, "price": info}


TEST_ASSETS = {
    "usd-coin": AssetConfig("aa" * 32, "USDC"),
    "tether": AssetConfig("bb" * 32, "USDT"),
    "dai": AssetConfig("cc" * 32, "DAI"),
    "pyusd": AssetConfig("dd" * 32, "PYUSD"),
}
