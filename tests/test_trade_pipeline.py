"""
Tests for TradePipeline: cache decisions, the single-rebuild policy and the
sell-side guards.
"""
import asyncio
from decimal import Decimal

import pytest

from swapcache.core.errors import (
    AmountTooSmall,
    ArtifactExpired,
    ConfirmationTimeout,
    ExecutionReverted,
    InvalidRequest,
    NoBalance,
    NotReady,
    SubmissionFailed,
)
from swapcache.core.models import SignatureStatus
from swapcache.execution.trade_pipeline import balance_drifted
from tests.fakes import build_stack


class TestBalanceDrift:
    def test_five_percent_is_drift(self):
        assert balance_drifted(1_050_000, 1_000_000, Decimal("5"))
        assert balance_drifted(950_000, 1_000_000, Decimal("5"))

    def test_just_under_five_percent_is_not_drift(self):
        assert not balance_drifted(1_049_900, 1_000_000, Decimal("5"))
        assert not balance_drifted(1_000_000, 1_000_000, Decimal("5"))

    def test_empty_snapshot_always_drifts(self):
        assert balance_drifted(10, 0, Decimal("5"))


class TestBuyFromCache:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_venue(self, stack):
        await stack.preloader.preload("T")
        cached = stack.store.get().buy_artifacts[1.0]
        builds_before = len(stack.venue.buy_calls)

        result = await stack.pipeline.execute_buy("T", 1.0)

        assert result.signature == f"sig-{cached.payload}"
        assert result.source == "cache"
        assert not result.rebuilt
        assert len(stack.venue.buy_calls) == builds_before

    @pytest.mark.asyncio
    async def test_success_clears_cache_and_timer(self, stack):
        await stack.preloader.preload("T")
        assert stack.preloader.scheduler.active

        await stack.pipeline.execute_buy("T", 0.5)

        assert stack.store.get() is None
        assert not stack.preloader.scheduler.active

    @pytest.mark.asyncio
    async def test_just_under_fresh_threshold_uses_cache(self, stack):
        await stack.preloader.preload("T")
        stack.clock.advance(4.999)
        result = await stack.pipeline.execute_buy("T", 1.0)
        assert result.source == "cache"

    @pytest.mark.asyncio
    async def test_at_fresh_threshold_rebuilds(self, stack):
        await stack.preloader.preload("T")
        builds_before = len(stack.venue.buy_calls)
        stack.clock.advance(5.0)

        result = await stack.pipeline.execute_buy("T", 1.0)

        assert result.source == "rebuild"
        assert len(stack.venue.buy_calls) == builds_before + 1

    @pytest.mark.asyncio
    async def test_uncached_amount_rebuilds(self, stack):
        await stack.preloader.preload("T")
        result = await stack.pipeline.execute_buy("T", 0.75)
        assert result.source == "rebuild"
        assert stack.venue.buy_calls[-1] == 0.75

    @pytest.mark.asyncio
    async def test_other_token_never_uses_cache(self, stack):
        await stack.preloader.preload("A")
        result = await stack.pipeline.execute_buy("B", 1.0)
        assert result.source == "rebuild"
        assert result.token == "B"

    @pytest.mark.asyncio
    async def test_disabled_cache_always_rebuilds(self):
        s = build_stack(enabled=False)
        result = await s.pipeline.execute_buy("T", 1.0)
        assert result.source == "rebuild"


class TestSingleRebuild:
    @pytest.mark.asyncio
    async def test_cached_buy_sign_expiry_rebuilds_once(self, stack):
        """Signing the cached 1.0 SOL artifact fails; the rebuilt one lands."""
        await stack.preloader.preload("T")
        cached = stack.store.get().buy_artifacts[1.0]
        stack.signer.expired_payloads = {cached.payload}

        result = await stack.pipeline.execute_buy("T", 1.0)

        assert result.rebuilt
        assert result.source == "rebuild"
        assert result.signature.startswith("sig-buy-T-1.0-")
        assert result.signature != f"sig-{cached.payload}"

    @pytest.mark.asyncio
    async def test_second_sign_failure_is_fatal(self, stack):
        await stack.preloader.preload("T")
        builds_before = len(stack.venue.buy_calls)
        stack.signer.expire_all = True

        with pytest.raises(ArtifactExpired):
            await stack.pipeline.execute_buy("T", 1.0)

        # exactly one rebuild
        assert len(stack.venue.buy_calls) == builds_before + 1
        assert stack.direct.sent == []

    @pytest.mark.asyncio
    async def test_uncached_sign_failure_is_not_retried(self, stack):
        stack.signer.expire_all = True
        with pytest.raises(ArtifactExpired):
            await stack.pipeline.execute_buy("T", 1.0)
        assert len(stack.venue.buy_calls) == 1

    @pytest.mark.asyncio
    async def test_cached_submission_failure_rebuilds_and_retries(self, stack):
        await stack.preloader.preload("T")
        stack.direct.send_errors = [SubmissionFailed("blockhash not found")]

        result = await stack.pipeline.execute_buy("T", 1.0)

        assert result.rebuilt
        assert len(stack.direct.sent) == 2

    @pytest.mark.asyncio
    async def test_second_submission_failure_is_fatal(self, stack):
        await stack.preloader.preload("T")
        stack.direct.send_errors = [SubmissionFailed("a"), SubmissionFailed("b"), SubmissionFailed("c")]

        with pytest.raises(SubmissionFailed):
            await stack.pipeline.execute_buy("T", 1.0)
        assert len(stack.direct.sent) == 2

    @pytest.mark.asyncio
    async def test_sign_failure_uses_up_the_retry(self, stack):
        """A sign-time rebuild leaves no retry for a submission failure."""
        await stack.preloader.preload("T")
        stack.signer.expired_payloads = {stack.store.get().buy_artifacts[1.0].payload}
        stack.direct.send_errors = [SubmissionFailed("down")]

        with pytest.raises(SubmissionFailed):
            await stack.pipeline.execute_buy("T", 1.0)
        assert len(stack.direct.sent) == 1


class TestConfirmationOutcomes:
    @pytest.mark.asyncio
    async def test_timeout_is_not_retried_and_keeps_cache(self, stack):
        await stack.preloader.preload("T")
        builds_before = len(stack.venue.buy_calls)
        stack.direct.statuses = [SignatureStatus("processed")] * 200

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await stack.pipeline.execute_buy("T", 1.0)

        assert exc_info.value.signature is not None
        assert len(stack.venue.buy_calls) == builds_before
        assert len(stack.direct.sent) == 1
        assert stack.store.get() is not None

    @pytest.mark.asyncio
    async def test_on_chain_error_is_reverted(self, stack):
        stack.direct.statuses = [SignatureStatus("confirmed", err={"InstructionError": [2, "Custom"]})]
        with pytest.raises(ExecutionReverted) as exc_info:
            await stack.pipeline.execute_buy("T", 1.0)
        assert exc_info.value.signature is not None


class TestSell:
    @pytest.mark.asyncio
    async def test_zero_balance_fails_before_any_network_call(self, stack):
        stack.oracle.raw = 0
        with pytest.raises(NoBalance):
            await stack.pipeline.execute_sell("T", 50)
        assert stack.venue.calls == 0
        assert stack.direct.sent == []

    @pytest.mark.asyncio
    async def test_amount_rounding_to_zero(self, stack):
        stack.oracle.raw = 3
        with pytest.raises(AmountTooSmall):
            await stack.pipeline.execute_sell("T", 10)
        assert stack.venue.sell_calls == []
        assert stack.direct.sent == []

    @pytest.mark.asyncio
    async def test_rebuild_floors_raw_amount(self, stack):
        stack.oracle.raw = 999
        result = await stack.pipeline.execute_sell("T", 50)
        assert result.source == "rebuild"
        assert stack.venue.sell_calls[-1][1] == 499

    @pytest.mark.asyncio
    async def test_cached_sell_within_drift(self, stack):
        stack.oracle.ui = 1.0
        stack.oracle.raw = 1_000_000
        await stack.preloader.preload("T")
        stack.oracle.raw = 1_049_900  # 4.99% above the snapshot

        result = await stack.pipeline.execute_sell("T", 50)

        assert result.source == "cache"

    @pytest.mark.asyncio
    async def test_drift_at_threshold_rebuilds_with_live_balance(self, stack):
        stack.oracle.ui = 1.0
        stack.oracle.raw = 1_000_000
        await stack.preloader.preload("T")
        stack.oracle.raw = 1_050_000  # exactly 5%

        result = await stack.pipeline.execute_sell("T", 50)

        assert result.source == "rebuild"
        assert stack.venue.sell_calls[-1][1] == 525_000

    @pytest.mark.asyncio
    async def test_rebuild_rereads_decimals(self, stack):
        stack.oracle.ui = 1.0
        stack.oracle.raw = 1_000_000
        await stack.preloader.preload("T")
        assert stack.store.get().decimals == 6
        stack.venue.decimals = 8
        stack.oracle.raw = 2_000_000

        result = await stack.pipeline.execute_sell("T", 50)

        assert result.source == "rebuild"
        assert stack.venue.sell_calls[-1] == (50, 1_000_000, 8)

    @pytest.mark.asyncio
    async def test_sell_retry_rereads_balance(self, stack):
        stack.oracle.ui = 1.0
        stack.oracle.raw = 1_000_000
        await stack.preloader.preload("T")
        reads_before = stack.oracle.raw_reads
        stack.signer.expired_payloads = {stack.store.get().sell_artifacts[100].payload}

        result = await stack.pipeline.execute_sell("T", 100)

        assert result.rebuilt
        # one live read for the decision, one for the rebuild
        assert stack.oracle.raw_reads == reads_before + 2

    @pytest.mark.asyncio
    async def test_percent_out_of_range(self, stack):
        with pytest.raises(InvalidRequest):
            await stack.pipeline.execute_sell("T", 150)


class TestReadinessAndConcurrency:
    @pytest.mark.asyncio
    async def test_missing_venue_is_not_ready(self, stack):
        stack.pipeline.venue = None
        with pytest.raises(NotReady):
            await stack.pipeline.execute_buy("T", 1.0)

    @pytest.mark.asyncio
    async def test_same_token_executions_are_serialized(self, stack):
        """The second execution sees the cache cleared by the first."""
        await stack.preloader.preload("T")

        first, second = await asyncio.gather(
            stack.pipeline.execute_buy("T", 1.0),
            stack.pipeline.execute_buy("T", 1.0),
        )

        assert {first.source, second.source} == {"cache", "rebuild"}
        assert first.signature != second.signature
