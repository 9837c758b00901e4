# app/tests/test_metering.py
"""
Tests for the off-chain x402 metering ledger: issuance, balance
accounting, and overdraft protection under concurrent consumers.
"""
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
import requests

from metering import (
    FacilitatorProbe,
    InsufficientBalance,
    MeteringLedger,
    UnknownPayment,
    generate_payment_id,
)


@pytest.fixture
def ledger(clock):
    return MeteringLedger(clock=clock)


# ────────────────────────────────────────────────────────────
# authorize
# ────────────────────────────────────────────────────────────

class TestAuthorize:
    def test_remaining_equals_max_units(self, ledger):
        for n in (1, 5, 100):
            auth = ledger.authorize(n)
            assert auth["remaining"] == n
            assert ledger.status(auth["paymentId"])["remaining"] == n

    def test_ids_are_unique(self, ledger):
        ids = {ledger.authorize(1)["paymentId"] for _ in range(1000)}
        assert len(ids) == 1000

    def test_id_is_256_bit_hex(self):
        assert re.fullmatch(r"0x[0-9a-f]{64}", generate_payment_id())

    def test_record_fields(self, ledger, clock):
        auth = ledger.authorize(3, metadata={"user": "0xabc"})
        rec = ledger.status(auth["paymentId"])
        assert rec["createdAt"] == clock.now
        assert rec["lastConsumption"] is None
        assert rec["metadata"] == {"user": "0xabc"}

    @pytest.mark.parametrize("bad", [0, -1, 1.5, "3", True])
    def test_rejects_non_positive_or_non_int(self, ledger, bad):
        with pytest.raises(ValueError):
            ledger.authorize(bad)
        assert len(ledger) == 0

    def test_probe_failure_does_not_block(self, clock):
        def boom():
            raise RuntimeError("facilitator down")

        ledger = MeteringLedger(probe=boom, clock=clock)
        auth = ledger.authorize(2)
        assert ledger.status(auth["paymentId"])["remaining"] == 2

    def test_id_collision_is_retried(self, clock):
        ids = iter(["0x01", "0x01", "0x02"])
        ledger = MeteringLedger(id_factory=lambda: next(ids), clock=clock)
        assert ledger.authorize(1)["paymentId"] == "0x01"
        assert ledger.authorize(1)["paymentId"] == "0x02"


class TestFacilitatorProbe:
    def test_swallows_request_errors(self):
        probe = FacilitatorProbe("https://facilitator.invalid", timeout=0.1)
        with patch("metering.requests.head", side_effect=requests.Timeout("slow")) as head:
            probe()
        head.assert_called_once()
        assert head.call_args.kwargs["timeout"] == 0.1

    def test_empty_url_skips(self):
        with patch("metering.requests.head") as head:
            FacilitatorProbe("")()
        head.assert_not_called()


# ────────────────────────────────────────────────────────────
# status / consume
# ────────────────────────────────────────────────────────────

class TestConsume:
    def test_status_unknown_is_none(self, ledger):
        assert ledger.status("0xdead") is None

    def test_in_budget_sequence(self, ledger):
        pid = ledger.authorize(10)["paymentId"]
        for units in (1, 3, 2, 4):
            ledger.consume(pid, units)
        assert ledger.status(pid)["remaining"] == 0

    def test_default_is_one_unit(self, ledger):
        pid = ledger.authorize(3)["paymentId"]
        assert ledger.consume(pid)["remaining"] == 2

    def test_sets_last_consumption(self, ledger, clock):
        pid = ledger.authorize(3)["paymentId"]
        clock.advance(42)
        ledger.consume(pid)
        assert ledger.status(pid)["lastConsumption"] == clock.now

    def test_insufficient_leaves_record_unchanged(self, ledger, clock):
        pid = ledger.authorize(3)["paymentId"]
        ledger.consume(pid, 1)
        before = ledger.status(pid)

        clock.advance(10)
        with pytest.raises(InsufficientBalance) as exc:
            ledger.consume(pid, 5)

        assert exc.value.remaining == 2
        assert exc.value.requested == 5
        assert ledger.status(pid) == before

    def test_unknown_payment(self, ledger):
        with pytest.raises(UnknownPayment):
            ledger.consume("0x" + "00" * 32)

    def test_unknown_and_insufficient_are_distinct(self):
        assert not issubclass(UnknownPayment, InsufficientBalance)
        assert not issubclass(InsufficientBalance, UnknownPayment)

    @pytest.mark.parametrize("bad", [0, -2])
    def test_rejects_non_positive_units(self, ledger, bad):
        pid = ledger.authorize(3)["paymentId"]
        with pytest.raises(ValueError):
            ledger.consume(pid, bad)
        assert ledger.status(pid)["remaining"] == 3

    def test_status_returns_a_copy(self, ledger):
        pid = ledger.authorize(3, metadata={"k": "v"})["paymentId"]
        view = ledger.status(pid)
        view["remaining"] = 999
        view["metadata"]["k"] = "changed"
        assert ledger.status(pid)["remaining"] == 3
        assert ledger.status(pid)["metadata"] == {"k": "v"}


# ────────────────────────────────────────────────────────────
# Concurrency
# ────────────────────────────────────────────────────────────

class TestConcurrentConsume:
    @pytest.mark.parametrize("k,n", [(5, 50), (0, 10), (20, 20)])
    def test_exactly_k_successes(self, ledger, k, n):
        pid = ledger.authorize(k)["paymentId"] if k else None
        if pid is None:
            pid = ledger.authorize(1)["paymentId"]
            ledger.consume(pid)

        barrier = threading.Barrier(n)

        def attempt(_):
            barrier.wait()
            try:
                ledger.consume(pid, 1)
                return True
            except InsufficientBalance:
                return False

        with ThreadPoolExecutor(max_workers=n) as pool:
            results = list(pool.map(attempt, range(n)))

        assert results.count(True) == k
        assert results.count(False) == n - k
        assert ledger.status(pid)["remaining"] == 0
