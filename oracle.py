# app/oracle.py
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from config import PRICE_FEED_URL, PRICE_FETCH_TIMEOUT

logger = logging.getLogger(__name__)


# ============================================================
# Errors
# ============================================================

class OracleError(Exception):
    pass


class UpstreamUnavailable(OracleError):
    """Batch fetch failed, timed out, or returned a non-success status."""


class PartialParseFailure(OracleError):
    """A single feed entry could not be parsed."""


# ============================================================
# Asset table (Pyth feed ids)
# ============================================================

@dataclass(frozen=True)
class AssetConfig:
    feed_id: str
    symbol: str


ASSETS: Mapping[str, AssetConfig] = MappingProxyType({
    "usd-coin": AssetConfig("eaa020c61cc479712813461ce153894a96a6c00b21ed0cfc2798d1f9a9e9c94a", "USDC"),
    "tether": AssetConfig("2b89b9dc8fdf9f34709a5b106b472f0f39bb6ca9ce04b0fd7f2e971688e2e53b", "USDT"),
    "dai": AssetConfig("b0948a5e5313200c632b51bb5ca32f6de0d36e9950a942d19751e833f70dabfd", "DAI"),
    "pyusd": AssetConfig("6ec879b1e9963de5ee97e9c8710b742d6228252a5e2ca12d4ae81d7fe5ee8c5d", "PYUSD"),
})

PRICE_DECIMALS = 6


def normalize_feed_id(feed_id: str) -> str:
    return feed_id.lower().removeprefix("0x")


# ============================================================
# Parsing
# ============================================================

def _first(d: Dict[str, Any], *keys):
    for k in keys:
        if d.get(k) is not None:
            return d[k]
    return None


def parse_quote(entry: Dict[str, Any], now: Optional[float] = None) -> Dict[str, Any]:
    """
    Normalize one Hermes `parsed` entry.

    price      = round(mantissa * 10^expo, 6)
    confidence = round(conf * 10^expo, 6), 0 when absent
    timestamp  = publish_time, or wall clock seconds when absent
    """
    try:
        info = entry["price"]
        mantissa = _first(info, "price", "mantissa")
        expo = _first(info, "expo", "exponent")
        if mantissa is None or expo is None:
            raise KeyError("price/expo")

        raw_price = int(mantissa)
        expo = int(expo)
        scale = 10.0 ** expo
        conf_raw = int(_first(info, "conf", "confidence") or 0)
        price = round(raw_price * scale, PRICE_DECIMALS)
        confidence = round(conf_raw * scale, PRICE_DECIMALS)

        publish_time = info.get("publish_time")
        timestamp = int(publish_time) if publish_time else int(now if now is not None else time.time())
    except (AttributeError, KeyError, TypeError, ValueError, OverflowError) as e:
        raise PartialParseFailure(f"malformed price entry: {e}") from e

    # the price table is served as strict JSON
    if not (math.isfinite(price) and math.isfinite(confidence)):
        raise PartialParseFailure(f"price out of range: mantissa={raw_price} expo={expo}")

    return {
        "raw_price": raw_price,
        "expo": expo,
        "price": price,
        "confidence": confidence,
        "timestamp": timestamp,
    }


# ============================================================
# Hermes batch client
# ============================================================

class HermesClient:
    def __init__(self, url: str = PRICE_FEED_URL, session: Optional[requests.Session] = None):
        self.url = url
        self._http = session or requests

    def fetch_batch(
        self, feed_ids: Sequence[str], timeout: float = PRICE_FETCH_TIMEOUT
    ) -> List[Dict[str, Any]]:
        params = [("ids[]", fid) for fid in feed_ids]
        logger.debug("Hermes batch request for %d feeds", len(params))
        try:
            r = self._http.get(self.url, params=params, timeout=timeout)
        except requests.RequestException as e:
            raise UpstreamUnavailable(str(e)) from e

        if not 200 <= r.status_code < 300:
            raise UpstreamUnavailable(f"HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable("unexpected response shape")
        return data.get("parsed") or []
