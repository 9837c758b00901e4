# app/metering.py
"""
Off-chain x402 metering.

authorize() issues a payment id carrying a balance of units, consume()
decrements it. One unit pays for one protected swap. Balances live in
process memory only and are lost on restart.
"""
from __future__ import annotations

import copy
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class MeteringError(Exception):
    """Base class for ledger failures surfaced to callers."""


class UnknownPayment(MeteringError):
    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__("paymentId unknown")


class InsufficientBalance(MeteringError):
    def __init__(self, payment_id: str, remaining: int, requested: int):
        self.payment_id = payment_id
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"insufficient balance: {remaining} remaining, {requested} requested"
        )


@dataclass
class PaymentRecord:
    payment_id: str
    remaining_units: int
    created_at: float
    last_consumed_at: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def view(self) -> Dict[str, Any]:
        return {
            "paymentId": self.payment_id,
            "remaining": self.remaining_units,
            "createdAt": self.created_at,
            "lastConsumption": self.last_consumed_at,
            "metadata": copy.deepcopy(self.metadata),
        }


def generate_payment_id() -> str:
    """256 bits from the OS CSPRNG, hex encoded with a 0x prefix."""
    return "0x" + secrets.token_hex(32)


def _check_units(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return value


class FacilitatorProbe:
    """
    Liveness check against the x402 facilitator. The result is ignored;
    every outcome, including timeout, is swallowed.
    """

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def __call__(self) -> None:
        if not self.url:
            return
        try:
            r = requests.head(self.url, timeout=self.timeout, allow_redirects=True)
            logger.debug("Facilitator probe %s -> %d", self.url, r.status_code)
        except requests.RequestException as e:
            logger.debug("Facilitator probe failed (ignored): %s", e)


class MeteringLedger:
    def __init__(
        self,
        *,
        probe: Optional[Callable[[], None]] = None,
        id_factory: Callable[[], str] = generate_payment_id,
        clock: Callable[[], float] = time.time,
        units_per_swap: int = 1,
    ):
        self._payments: Dict[str, PaymentRecord] = {}
        self._lock = threading.Lock()
        self._probe = probe
        self._id_factory = id_factory
        self._clock = clock
        self.units_per_swap = units_per_swap

    def __len__(self) -> int:
        return len(self._payments)

    def _run_probe(self) -> None:
        if self._probe is None:
            return
        try:
            self._probe()
        except Exception as e:
            logger.warning("Facilitator probe raised (ignored): %s", e)

    def authorize(
        self, max_units: int, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        max_units = _check_units(max_units, "max_units")
        self._run_probe()

        with self._lock:
            payment_id = self._id_factory()
            while payment_id in self._payments:
                payment_id = self._id_factory()
            self._payments[payment_id] = PaymentRecord(
                payment_id=payment_id,
                remaining_units=max_units,
                created_at=self._clock(),
                metadata=dict(metadata or {}),
            )

        logger.info("Authorized payment %s… with %d units", payment_id[:10], max_units)
        return {"paymentId": payment_id, "remaining": max_units}

    def status(self, payment_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rec = self._payments.get(payment_id)
            if rec is None:
                return None
            return rec.view()

    def consume(self, payment_id: str, units: Optional[int] = None) -> Dict[str, Any]:
        units = _check_units(self.units_per_swap if units is None else units, "units")

        with self._lock:
            rec = self._payments.get(payment_id)
            if rec is None:
                raise UnknownPayment(payment_id)
            if rec.remaining_units < units:
                raise InsufficientBalance(payment_id, rec.remaining_units, units)
            rec.remaining_units -= units
            rec.last_consumed_at = self._clock()
            remaining = rec.remaining_units

        return {"paymentId": payment_id, "remaining": remaining}
