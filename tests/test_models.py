"""
Tests for amount conversion helpers, PartialResult and TradeContext.
"""
import logging

from swapcache.core.json_utils import loads
from swapcache.core.models import (
    UNAVAILABLE,
    BundleStatus,
    PartialResult,
    SignatureStatus,
    raw_amount_for_percent,
    sol_to_lamports,
)
from swapcache.core.trade_context import TradeContext


class TestAmounts:
    def test_sol_to_lamports_is_exact(self):
        assert sol_to_lamports(0.36) == 360_000_000
        assert sol_to_lamports(1.06) == 1_060_000_000
        assert sol_to_lamports(0.000000001) == 1

    def test_percent_amount_floors(self):
        assert raw_amount_for_percent(1001, 50) == 500
        assert raw_amount_for_percent(1000, 100) == 1000
        assert raw_amount_for_percent(3, 30) == 0
        assert raw_amount_for_percent(0, 50) == 0

    def test_percent_amount_never_oversells(self):
        for raw in (1, 7, 999_999_999, 123_456_789_012):
            for pct in (10, 33.3, 99.9, 100):
                assert raw_amount_for_percent(raw, pct) <= raw


class TestModels:
    def test_partial_result_counts(self):
        pr = PartialResult()
        pr.successes[0.5] = "a"
        pr.failures[1.0] = "quote failed"
        assert pr.ok_count == 1
        assert pr.failed_count == 1
        assert pr.to_dict() == {"succeeded": [0.5], "failed": {"1.0": "quote failed"}}

    def test_unavailable_is_falsy_singleton(self):
        assert not UNAVAILABLE
        assert repr(UNAVAILABLE) == "UNAVAILABLE"

    def test_bundle_status_terminal(self):
        assert not BundleStatus.PENDING.terminal
        assert BundleStatus.LANDED.terminal
        assert BundleStatus.FAILED.terminal

    def test_signature_status(self):
        assert SignatureStatus("finalized").is_confirmed
        assert not SignatureStatus("processed").is_confirmed
        assert not SignatureStatus(None).is_confirmed


class TestTradeContext:
    def test_retried_steps_get_suffix(self):
        ctx = TradeContext("T", "buy")
        for _ in range(3):
            with ctx.step("submit"):
                pass
        assert list(ctx.summary()["timings_ms"]) == ["submit", "submit_2", "submit_3"]

    def test_log_payload_carries_trace(self):
        logger = logging.getLogger("swapcache.test.ctx")
        logger.setLevel(logging.INFO)
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        logger.addHandler(handler)
        try:
            ctx = TradeContext("T", "sell", trace_id="abc", logger=logger)
            ctx.set_tag("percent", 50)
            ctx.info("sell_started", source="cache")
        finally:
            logger.removeHandler(handler)
        payload = loads(records[-1].getMessage())
        assert payload["event"] == "sell_started"
        assert payload["trace_id"] == "abc"
        assert payload["percent"] == 50
        assert payload["source"] == "cache"
