# app/tests/test_oracle.py
from unittest.mock import MagicMock, patch

import pytest
import requests

from oracle import (
    ASSETS,
    HermesClient,
    PartialParseFailure,
    UpstreamUnavailable,
    parse_quote,
)
from fakes import hermes_entry


class TestParseQuote:
    def test_scales_mantissa(self):
        q = parse_quote(hermes_entry("aa", 123456, expo=-2, publish_time=1_700_000_000))
        assert q["price"] == 1234.56
        assert q["raw_price"] == 123456
        assert q["expo"] == -2
        assert q["timestamp"] == 1_700_000_000

    def test_rounds_to_six_decimals(self):
        q = parse_quote(hermes_entry("aa", 99987654321, expo=-11, conf=12345, publish_time=1))
        assert q["price"] == 0.999877
        assert q["confidence"] == 0.0

    def test_confidence_scaled_like_price(self):
        q = parse_quote(hermes_entry("aa", 100_000_000, expo=-8, conf=250_000, publish_time=1))
        assert q["price"] == 1.0
        assert q["confidence"] == 0.0025

    def test_confidence_alias_and_default(self):
        entry = {"id": "aa", "price": {"price": "100", "expo": 0, "confidence": "7"}}
        assert parse_quote(entry)["confidence"] == 7
        entry = {"id": "aa", "price": {"price": "100", "expo": 0}}
        assert parse_quote(entry)["confidence"] == 0

    def test_mantissa_exponent_aliases(self):
        entry = {"id": "aa", "price": {"mantissa": 5, "exponent": 1, "publish_time": 3}}
        assert parse_quote(entry)["price"] == 50

    def test_missing_publish_time_uses_now(self):
        entry = {"id": "aa", "price": {"price": "1", "expo": 0}}
        assert parse_quote(entry, now=1234.9)["timestamp"] == 1234

    @pytest.mark.parametrize("entry", [
        {"id": "aa"},
        {"id": "aa", "price": None},
        {"id": "aa", "price": {"expo": -8}},
        {"id": "aa", "price": {"price": "not-a-number", "expo": -8}},
    ])
    def test_malformed_raises(self, entry):
        with pytest.raises(PartialParseFailure):
            parse_quote(entry)

    @pytest.mark.parametrize("mantissa, expo", [
        ("100000000", 400),       # 10.0 ** 400 overflows
        ("10", 308),              # finite scale, infinite product
        ("1" + "0" * 400, -8),    # mantissa too large for a float
        ("-10", 308),
    ])
    def test_out_of_range_raises(self, mantissa, expo):
        entry = {"id": "aa", "price": {"price": mantissa, "expo": expo, "publish_time": 1}}
        with pytest.raises(PartialParseFailure):
            parse_quote(entry)

    def test_out_of_range_confidence_raises(self):
        entry = {"id": "aa", "price": {"price": "1", "conf": "1" + "0" * 400, "expo": -8}}
        with pytest.raises(PartialParseFailure):
            parse_quote(entry)


class TestAssetTable:
    def test_fixed_four_stables(self):
        assert set(ASSETS) == {"usd-coin", "tether", "dai", "pyusd"}
        assert ASSETS["pyusd"].symbol == "PYUSD"

    def test_immutable(self):
        with pytest.raises(TypeError):
            ASSETS["new"] = ASSETS["dai"]


class TestHermesClient:
    def _response(self, status=200, body=None):
        r = MagicMock()
        r.status_code = status
        r.json.return_value = body if body is not None else {}
        return r

    def test_sends_ids_and_timeout(self):
        http = MagicMock()
        http.get.return_value = self._response(body={"parsed": [{"id": "aa"}]})
        client = HermesClient("https://hermes.test/latest", session=http)

        assert client.fetch_batch(["aa", "bb"], timeout=8) == [{"id": "aa"}]
        _, kwargs = http.get.call_args
        assert kwargs["params"] == [("ids[]", "aa"), ("ids[]", "bb")]
        assert kwargs["timeout"] == 8

    def test_missing_parsed_is_empty(self):
        http = MagicMock()
        http.get.return_value = self._response(body={"binary": {}})
        assert HermesClient("u", session=http).fetch_batch(["aa"]) == []

    def test_non_success_status(self):
        http = MagicMock()
        http.get.return_value = self._response(status=500)
        with pytest.raises(UpstreamUnavailable, match="HTTP 500"):
            HermesClient("u", session=http).fetch_batch(["aa"])

    def test_timeout(self):
        with patch("oracle.requests.get", side_effect=requests.Timeout("read timed out")):
            with pytest.raises(UpstreamUnavailable):
                HermesClient("u").fetch_batch(["aa"])

    def test_bad_json(self):
        http = MagicMock()
        r = self._response()
        r.json.side_effect = ValueError("Expecting value")
        http.get.return_value = r
        with pytest.raises(UpstreamUnavailable):
            HermesClient("u", session=http).fetch_batch(["aa"])
