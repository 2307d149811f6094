"""
Tests for Preloader: coverage, partial failures, idempotence and invalidation.
"""
import asyncio

import pytest

from swapcache.core.errors import NotReady
from tests.fakes import FakeVenue, build_stack, settle


class TestPreloadCoverage:
    @pytest.mark.asyncio
    async def test_tokenx_scenario(self, stack):
        """Two buy presets, zero balance: two buy entries, no sell entries."""
        report = await stack.preloader.preload("TOKENX")

        cache = stack.store.get()
        assert cache.token == "TOKENX"
        assert sorted(cache.buy_artifacts) == [0.5, 1.0]
        assert cache.sell_artifacts == {}
        assert report.cached_count == 2
        assert report.to_dict()["cached_count"] == 2
        # no balance means no raw re-read and no sell builds
        assert stack.oracle.raw_reads == 0
        assert stack.venue.sell_calls == []

    @pytest.mark.asyncio
    async def test_single_buy_failure_only_removes_that_entry(self, stack):
        stack.venue.fail_buys = {1.0}
        report = await stack.preloader.preload("T")

        assert list(report.buys.successes) == [0.5]
        assert list(report.buys.failures) == [1.0]
        assert list(stack.store.get().buy_artifacts) == [0.5]

    @pytest.mark.asyncio
    async def test_sell_side_built_from_fresh_raw_read(self, stack):
        stack.oracle.ui = 5.0
        stack.oracle.raw = 5_000_000
        report = await stack.preloader.preload("T")

        assert stack.oracle.raw_reads == 1
        cache = stack.store.get()
        assert sorted(cache.sell_artifacts) == [25, 50, 100]
        assert cache.raw_balance_snapshot == 5_000_000
        assert cache.decimals == 6
        amounts = {pct: raw for pct, raw, _ in stack.venue.sell_calls}
        assert amounts == {25: 1_250_000, 50: 2_500_000, 100: 5_000_000}
        assert report.sells.ok_count == 3

    @pytest.mark.asyncio
    async def test_percent_rounding_to_zero_is_skipped(self):
        s = build_stack(sell_presets=(10, 50, 100))
        s.oracle.ui = 0.000003
        s.oracle.raw = 3
        try:
            report = await s.preloader.preload("T")
        finally:
            s.preloader.scheduler.cancel()
        assert report.skipped_sells == [10]
        assert report.sells.failures == {}
        assert sorted(s.store.get().sell_artifacts) == [50, 100]

    @pytest.mark.asyncio
    async def test_sell_failure_keeps_smaller_cache(self, stack):
        stack.oracle.ui = 1.0
        stack.oracle.raw = 1000
        stack.venue.fail_sells = {50}
        report = await stack.preloader.preload("T")

        assert report.installed
        assert sorted(stack.store.get().sell_artifacts) == [25, 100]
        assert list(report.sells.failures) == [50]

    @pytest.mark.asyncio
    async def test_raw_reread_failure_does_not_fail_preload(self, stack):
        stack.oracle.ui = 1.0
        stack.oracle.raw_error = RuntimeError("rpc down")
        report = await stack.preloader.preload("T")

        assert report.installed
        assert report.cached_count == 2
        assert stack.store.get().sell_artifacts == {}
        assert set(report.sells.failures) == {25, 50, 100}

    @pytest.mark.asyncio
    async def test_decimals_failure_defaults_to_nine(self, stack):
        stack.venue.decimals_error = True
        await stack.preloader.preload("T")
        assert stack.store.get().decimals == 9

    @pytest.mark.asyncio
    async def test_per_token_override(self):
        s = build_stack(overrides={"T": {"buy_presets": [0.1], "sell_presets": [100]}})
        try:
            report = await s.preloader.preload("T")
        finally:
            s.preloader.scheduler.cancel()
        assert list(report.buys.successes) == [0.1]


class TestPreloadFailures:
    @pytest.mark.asyncio
    async def test_primary_balance_failure_raises(self, stack):
        stack.oracle.ui_error = RuntimeError("oracle down")
        with pytest.raises(RuntimeError):
            await stack.preloader.preload("T")
        assert stack.store.get() is None

    @pytest.mark.asyncio
    async def test_primary_failure_cancels_pending_buy_builds(self, stack):
        stack.venue.gate = asyncio.Event()
        stack.oracle.ui_error = RuntimeError("oracle down")

        with pytest.raises(RuntimeError):
            await stack.preloader.preload("T")

        stack.venue.gate.set()
        await settle()
        assert sorted(stack.venue.buy_calls) == [0.5, 1.0]
        assert stack.venue.builds == 0
        assert stack.store.get() is None

    @pytest.mark.asyncio
    async def test_missing_signer_is_not_ready(self, stack):
        stack.preloader.signer = None
        with pytest.raises(NotReady):
            await stack.preloader.preload("T")
        assert stack.venue.calls == 0

    @pytest.mark.asyncio
    async def test_disabled_cache_is_noop(self):
        s = build_stack(enabled=False)
        report = await s.preloader.preload("T")
        assert report.cached_count == 0
        assert s.venue.calls == 0
        assert s.store.get() is None


class TestPreloadLifecycle:
    @pytest.mark.asyncio
    async def test_idempotent_keys_and_increasing_created_at(self, stack):
        await stack.preloader.preload("T")
        first = stack.store.get()
        await stack.preloader.preload("T")
        second = stack.store.get()

        assert set(first.buy_artifacts) == set(second.buy_artifacts)
        assert second.created_at > first.created_at

    @pytest.mark.asyncio
    async def test_arms_refresh_for_token(self, stack):
        await stack.preloader.preload("A")
        assert stack.preloader.scheduler.token == "A"

        await stack.preloader.preload("B")
        assert stack.store.get().token == "B"
        assert stack.preloader.scheduler.token == "B"

    @pytest.mark.asyncio
    async def test_clear_during_build_discards_result(self, stack):
        """An execution that clears the cache mid-preload wins over the preload."""
        gate = asyncio.Event()
        original = FakeVenue.build_buy

        async def slow_build(self, token, amount):
            await gate.wait()
            return await original(self, token, amount)

        stack.venue.build_buy = slow_build.__get__(stack.venue)
        task = asyncio.create_task(stack.preloader.preload("T"))
        await settle()
        stack.preloader.clear()
        gate.set()
        report = await task

        assert not report.installed
        assert report.cached_count == 0
        assert stack.store.get() is None
        assert not stack.preloader.scheduler.active

    @pytest.mark.asyncio
    async def test_empty_refresh_keeps_existing_cache(self, stack):
        await stack.preloader.preload("T")
        before = stack.store.get()
        stack.venue.fail_buys = {0.5, 1.0}

        report = await stack.preloader.refresh("T")

        assert not report.installed
        assert stack.store.get() is before
