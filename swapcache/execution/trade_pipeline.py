"""
Trade execution pipeline: cache decision, sign, submit, single rebuild.

A cached artifact saves one venue round trip. It may fail once per user
action (at signing or at submission); the pipeline then rebuilds through the
synchronous path and tries again. A failure of the rebuilt artifact is final.

Cache use requires all of:
- caching enabled and the cache belongs to the token
- cache age below the freshness threshold
- an artifact for the exact amount / percent
- sells only: live raw balance within `drift_pct` of the cached snapshot
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncIterator, Awaitable, Callable, Optional, Tuple

from swapcache.cache.preload_cache import CacheStore, PreloadCache
from swapcache.cache.preloader import Preloader
from swapcache.clients.protocols import BalanceOracle, Signer, VenueClient
from swapcache.core.errors import AmountTooSmall, ArtifactExpired, InvalidRequest, NoBalance, NotReady, SubmissionFailed, TradeError
from swapcache.core.models import Side, SignedArtifact, UnsignedArtifact, raw_amount_for_percent
from swapcache.core.trade_context import TradeContext
from swapcache.execution.submission_router import SubmissionOutcome, SubmissionRouter
from swapcache.infra.locks import ExecutionLocks
from swapcache.monitoring.metrics import SwapMetrics

log = logging.getLogger("swapcache")

CACHE = "cache"
REBUILD = "rebuild"

# failures of a cache-sourced artifact that earn one rebuild
_RETRYABLE = (ArtifactExpired, SubmissionFailed)


@dataclass(frozen=True)
class ExecutionResult:
    signature: str
    side: Side
    token: str
    channel: str
    source: str  # where the artifact that landed came from: cache | rebuild
    rebuilt: bool = False
    bundle_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "side": self.side.value,
            "token": self.token,
            "channel": self.channel,
            "source": self.source,
            "rebuilt": self.rebuilt,
            "bundle_id": self.bundle_id,
        }


def balance_drifted(live: int, snapshot: int, pct: Decimal) -> bool:
    """True when |live - snapshot| is at least `pct` percent of snapshot."""
    if snapshot <= 0:
        return True
    return abs(live - snapshot) * 100 >= pct * snapshot


class TradePipeline:
    def __init__(
        self,
        store: CacheStore,
        preloader: Preloader,
        venue: Optional[VenueClient],
        oracle: Optional[BalanceOracle],
        signer: Optional[Signer],
        router: SubmissionRouter,
        *,
        enabled: bool = True,
        fresh_threshold: float = 5.0,
        drift_pct: Decimal = Decimal("5"),
        locks: Optional[ExecutionLocks] = None,
        metrics: Optional[SwapMetrics] = None,
    ) -> None:
        self.store = store
        self.preloader = preloader
        self.venue = venue
        self.oracle = oracle
        self.signer = signer
        self.router = router
        self.enabled = enabled
        self.fresh_threshold = fresh_threshold
        self.drift_pct = Decimal(drift_pct)
        self.locks = locks or ExecutionLocks(enabled=True)
        self.metrics = metrics

    def _require(self) -> str:
        if self.venue is None:
            raise NotReady("venue client not configured")
        if self.oracle is None:
            raise NotReady("balance oracle not configured")
        if self.signer is None or not self.signer.address:
            raise NotReady("wallet not configured")
        return self.signer.address

    # ========== Public API ==========

    async def execute_buy(self, token: str, amount: float) -> ExecutionResult:
        self._require()
        ctx = TradeContext(token, Side.BUY.value)
        ctx.set_tag("amount", amount)
        async with self.locks.hold(token), self._counted(Side.BUY):
            cached = self._cached_buy(ctx, token, amount)
            artifact = cached
            if artifact is None:
                with ctx.step("build"):
                    artifact = await self.venue.build_buy(token, amount)

            async def rebuild() -> UnsignedArtifact:
                return await self.venue.build_buy(token, amount)

            return await self._finish(ctx, Side.BUY, artifact, cached is not None, rebuild)

    async def execute_sell(self, token: str, percent: float) -> ExecutionResult:
        owner = self._require()
        if percent <= 0 or percent > 100:
            raise InvalidRequest(f"sell percent must be in (0, 100], got {percent}")
        ctx = TradeContext(token, Side.SELL.value)
        ctx.set_tag("percent", percent)
        async with self.locks.hold(token), self._counted(Side.SELL):
            with ctx.step("balance"):
                live_raw = await self._live_raw_balance(owner, token)
            cached = self._cached_sell(ctx, token, percent, live_raw)
            artifact = cached
            if artifact is None:
                with ctx.step("build"):
                    artifact = await self._build_sell(token, percent, live_raw)

            async def rebuild() -> UnsignedArtifact:
                fresh_raw = await self._live_raw_balance(owner, token)
                return await self._build_sell(token, percent, fresh_raw)

            return await self._finish(ctx, Side.SELL, artifact, cached is not None, rebuild)

    # ========== Cache decision ==========

    def _fresh_cache(self, ctx: TradeContext, side: Side, token: str) -> Optional[PreloadCache]:
        if not self.enabled:
            self._lookup(side, "disabled")
            return None
        cache = self.store.lookup(token)
        if cache is None:
            self._lookup(side, "miss")
            return None
        now = self.store.now()
        age = cache.age(now)
        if not cache.is_fresh(now, self.fresh_threshold):
            self._lookup(side, "stale")
            ctx.debug("cache_stale", age_sec=round(age, 3))
            return None
        return cache

    def _cached_buy(self, ctx: TradeContext, token: str, amount: float) -> Optional[UnsignedArtifact]:
        cache = self._fresh_cache(ctx, Side.BUY, token)
        if cache is None:
            return None
        artifact = cache.buy_artifacts.get(amount)
        if artifact is None:
            self._lookup(Side.BUY, "miss")
            return None
        self._lookup(Side.BUY, "hit")
        return artifact

    def _cached_sell(self, ctx: TradeContext, token: str, percent: float, live_raw: int) -> Optional[UnsignedArtifact]:
        cache = self._fresh_cache(ctx, Side.SELL, token)
        if cache is None:
            return None
        artifact = cache.sell_artifacts.get(percent)
        if artifact is None:
            self._lookup(Side.SELL, "miss")
            return None
        if balance_drifted(live_raw, cache.raw_balance_snapshot, self.drift_pct):
            self._lookup(Side.SELL, "drift")
            ctx.info("balance_drift", live=live_raw, snapshot=cache.raw_balance_snapshot)
            return None
        self._lookup(Side.SELL, "hit")
        return artifact

    # ========== Builds ==========

    async def _live_raw_balance(self, owner: str, token: str) -> int:
        raw = int(await self.oracle.get_raw_balance(owner, token))
        if raw <= 0:
            raise NoBalance(f"no balance of {token} to sell")
        return raw

    async def _build_sell(self, token: str, percent: float, raw_balance: int) -> UnsignedArtifact:
        raw_amount = raw_amount_for_percent(raw_balance, percent)
        if raw_amount <= 0:
            raise AmountTooSmall(f"{percent}% of {raw_balance} raw units rounds to zero")
        decimals = await self.venue.get_decimals(token)
        return await self.venue.build_sell(token, percent, raw_amount, decimals)

    # ========== Sign / submit ==========

    async def _finish(
        self,
        ctx: TradeContext,
        side: Side,
        artifact: UnsignedArtifact,
        from_cache: bool,
        rebuild: Callable[[], Awaitable[UnsignedArtifact]],
    ) -> ExecutionResult:
        source = CACHE if from_cache else REBUILD
        started = time.perf_counter()
        rebuilt = False
        try:
            while True:
                try:
                    signed, outcome = await self._sign_and_submit(ctx, artifact)
                    break
                except _RETRYABLE as exc:
                    if not from_cache or rebuilt:
                        raise
                    rebuilt = True
                    from_cache = False
                    reason = exc.kind
                    ctx.warning("cached_artifact_rejected", reason=reason, err=exc.message)
                    if self.metrics is not None:
                        self.metrics.rebuilds.labels(reason).inc()
                    with ctx.step("rebuild"):
                        artifact = await rebuild()
        except TradeError as exc:
            ctx.error("execution_failed", kind=exc.kind, err=exc.message, rebuilt=rebuilt, **ctx.summary())
            raise

        # the cache has served its purpose; the next preload builds a new one
        self.preloader.clear()

        final_source = REBUILD if rebuilt else source
        result = ExecutionResult(
            signature=outcome.signature,
            side=side,
            token=artifact.token,
            channel=outcome.channel,
            source=final_source,
            rebuilt=rebuilt,
            bundle_id=outcome.bundle_id,
        )
        self._executed(side, "ok")
        if self.metrics is not None:
            self.metrics.execution_latency_ms.labels(side.value, final_source).observe(
                (time.perf_counter() - started) * 1000.0
            )
        ctx.info("execution_complete", **result.to_dict(), **ctx.summary())
        return result

    async def _sign_and_submit(self, ctx: TradeContext, artifact: UnsignedArtifact) -> Tuple[SignedArtifact, SubmissionOutcome]:
        with ctx.step("sign"):
            try:
                signed = self.signer.sign(artifact)
            except TradeError:
                raise
            except Exception as exc:
                raise ArtifactExpired(f"signing failed: {exc}", cause=exc) from exc
        with ctx.step("submit"):
            outcome = await self.router.submit(signed)
        return signed, outcome

    def _lookup(self, side: Side, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.cache_lookups.labels(side.value, outcome).inc()

    def _executed(self, side: Side, result: str) -> None:
        if self.metrics is not None:
            self.metrics.executions.labels(side.value, result).inc()

    @asynccontextmanager
    async def _counted(self, side: Side) -> AsyncIterator[None]:
        try:
            yield
        except TradeError as exc:
            self._executed(side, exc.kind)
            raise
