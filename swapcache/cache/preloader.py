"""
Preloader: builds the speculative trade cache for one token.

Decimals, the UI balance and every buy preset are fetched concurrently; if
the wallet holds the token, the raw balance is re-read and one sell artifact
is built per sell preset. Each build succeeds or fails on its own and the
outcome is reported as PartialResults. Only missing collaborators or a
failed primary balance read fail the preload as a whole.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from swapcache.cache.preload_cache import CacheStore, PreloadCache
from swapcache.cache.refresh_scheduler import RefreshScheduler
from swapcache.clients.protocols import BalanceOracle, Signer, VenueClient
from swapcache.config.presets import PresetBook
from swapcache.core.errors import NotReady
from swapcache.core.json_utils import dumps
from swapcache.core.models import DEFAULT_DECIMALS, PartialResult, UnsignedArtifact, raw_amount_for_percent
from swapcache.core.trade_context import TradeContext
from swapcache.monitoring.metrics import SwapMetrics

log = logging.getLogger("swapcache")


@dataclass
class PreloadReport:
    token: str
    buys: PartialResult[float, UnsignedArtifact] = field(default_factory=PartialResult)
    sells: PartialResult[float, UnsignedArtifact] = field(default_factory=PartialResult)
    skipped_sells: list = field(default_factory=list)
    decimals: int = DEFAULT_DECIMALS
    ui_balance: float = 0.0
    raw_balance: int = 0
    installed: bool = False

    @property
    def cached_count(self) -> int:
        return self.buys.ok_count if self.installed else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "cached_count": self.cached_count,
            "installed": self.installed,
            "buys": self.buys.to_dict(),
            "sells": self.sells.to_dict(),
            "skipped_sells": list(self.skipped_sells),
            "ui_balance": self.ui_balance,
        }


class Preloader:
    def __init__(
        self,
        store: CacheStore,
        venue: Optional[VenueClient],
        oracle: Optional[BalanceOracle],
        signer: Optional[Signer],
        presets: PresetBook,
        *,
        enabled: bool = True,
        refresh_interval: float = 8.0,
        ttl: float = 10.0,
        metrics: Optional[SwapMetrics] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self.store = store
        self.venue = venue
        self.oracle = oracle
        self.signer = signer
        self.presets = presets
        self.enabled = enabled
        self.metrics = metrics
        self.scheduler = RefreshScheduler(
            store,
            self.refresh,
            interval=refresh_interval,
            ttl=ttl,
            sleep=sleep,
        )

    def _require(self) -> str:
        if self.venue is None:
            raise NotReady("venue client not configured")
        if self.oracle is None:
            raise NotReady("balance oracle not configured")
        if self.signer is None or not self.signer.address:
            raise NotReady("wallet not configured")
        return self.signer.address

    async def preload(self, token: str) -> PreloadReport:
        return await self._run(token, trigger="user")

    async def refresh(self, token: str) -> PreloadReport:
        return await self._run(token, trigger="refresh")

    def clear(self) -> None:
        """Cancel the refresh timer and drop the cache (after an execution)."""
        self.scheduler.cancel()
        self.store.clear()
        self._set_gauges(None)

    async def _run(self, token: str, trigger: str) -> PreloadReport:
        if not self.enabled:
            return PreloadReport(token=token)
        owner = self._require()

        generation, changed = self.store.track(token)
        if changed:
            self.scheduler.cancel()
            self._set_gauges(None)

        ctx = TradeContext(token, f"preload:{trigger}")
        started = time.perf_counter()
        presets = self.presets.for_token(token)
        report = PreloadReport(token=token)

        primary = [
            asyncio.ensure_future(self._decimals(token)),
            asyncio.ensure_future(self.oracle.get_ui_balance(owner, token)),
            asyncio.ensure_future(self._build_buys(token, presets.buy)),
        ]
        try:
            with ctx.step("primary"):
                decimals, ui_balance, buys = await asyncio.gather(*primary)
        except BaseException as exc:
            # a failed preload must not leave venue builds running behind it
            for task in primary:
                task.cancel()
            await asyncio.gather(*primary, return_exceptions=True)
            if isinstance(exc, Exception):
                self._count("preloads", trigger, "failed")
            raise
        report.decimals = decimals
        report.ui_balance = float(ui_balance or 0)
        report.buys = buys

        if report.ui_balance > 0 and presets.sell:
            with ctx.step("sell_side"):
                await self._build_sells(owner, token, decimals, presets.sell, report)

        if trigger == "refresh" and report.buys.ok_count == 0 and report.sells.ok_count == 0:
            # nothing rebuilt: keep serving the cache that is already installed
            self._count("preloads", trigger, "empty")
            ctx.warning("refresh_failed", reason="no_artifacts", failures=report.buys.failures)
            return report

        cache = PreloadCache(
            token=token,
            buy_artifacts=dict(report.buys.successes),
            sell_artifacts=dict(report.sells.successes),
            decimals=decimals,
            raw_balance_snapshot=report.raw_balance,
            ui_balance_snapshot=report.ui_balance,
        )
        installed = self.store.install(cache, generation)
        report.installed = installed is not None
        if installed is None:
            self._count("preloads", trigger, "discarded")
            ctx.info("preload_discarded", reason="invalidated")
            return report

        self.scheduler.arm(token)
        self._set_gauges(installed)
        self._count("preloads", trigger, "ok")
        if self.metrics is not None:
            self.metrics.preload_latency_ms.observe((time.perf_counter() - started) * 1000.0)
        level = "debug" if trigger == "refresh" else "info"
        ctx.log(
            "preload_complete",
            level=level,
            buys=report.buys.ok_count,
            sells=report.sells.ok_count,
            buy_failures=report.buys.failed_count,
            sell_failures=report.sells.failed_count,
            **ctx.summary(),
        )
        return report

    async def _decimals(self, token: str) -> int:
        try:
            return int(await self.venue.get_decimals(token))
        except Exception as exc:
            log.debug(dumps({"event": "decimals_fallback", "token": token, "err": str(exc)}))
            return DEFAULT_DECIMALS

    async def _build_buys(self, token: str, amounts) -> PartialResult[float, UnsignedArtifact]:
        result: PartialResult[float, UnsignedArtifact] = PartialResult()
        outcomes = await asyncio.gather(
            *(self.venue.build_buy(token, amount) for amount in amounts),
            return_exceptions=True,
        )
        for amount, outcome in zip(amounts, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                result.failures[amount] = str(outcome) or type(outcome).__name__
                self._count("artifact_builds", "buy", "failed")
            else:
                result.successes[amount] = outcome
                self._count("artifact_builds", "buy", "ok")
        return result

    async def _build_sells(self, owner: str, token: str, decimals: int, percents, report: PreloadReport) -> None:
        try:
            raw_balance = int(await self.oracle.get_raw_balance(owner, token))
        except Exception as exc:
            for pct in percents:
                report.sells.failures[pct] = f"raw balance read failed: {exc}"
            log.warning(dumps({"event": "sell_preload_skipped", "token": token, "err": str(exc)}))
            return
        report.raw_balance = raw_balance

        planned = []
        for pct in percents:
            raw_amount = raw_amount_for_percent(raw_balance, pct)
            if raw_amount <= 0:
                report.skipped_sells.append(pct)
                continue
            planned.append((pct, raw_amount))

        outcomes = await asyncio.gather(
            *(self.venue.build_sell(token, pct, raw_amount, decimals) for pct, raw_amount in planned),
            return_exceptions=True,
        )
        for (pct, _), outcome in zip(planned, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                report.sells.failures[pct] = str(outcome) or type(outcome).__name__
                self._count("artifact_builds", "sell", "failed")
            else:
                report.sells.successes[pct] = outcome
                self._count("artifact_builds", "sell", "ok")

    def _count(self, name: str, *labels: str) -> None:
        if self.metrics is not None:
            getattr(self.metrics, name).labels(*labels).inc()

    def _set_gauges(self, cache: Optional[PreloadCache]) -> None:
        if self.metrics is None:
            return
        self.metrics.cached_artifacts.labels("buy").set(len(cache.buy_artifacts) if cache else 0)
        self.metrics.cached_artifacts.labels("sell").set(len(cache.sell_artifacts) if cache else 0)
