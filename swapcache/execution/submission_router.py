"""
Submission router: priority bundle channel with direct-RPC fallback.

Priority path:
- send with up to `max_retries` attempts; only a rate-limited (UNAVAILABLE)
  answer is retried, after min(base * 2**(n-1), cap) seconds
- exhausted retries fall back to the direct channel with the same signed
  artifact; any other priority error is a hard SubmissionFailed
- a landed bundle is final, a failed bundle is SubmissionFailed and a bundle
  that never reaches a terminal state is ConfirmationTimeout

Direct path: send, then confirm through the ConfirmationPoller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from swapcache.clients.protocols import DirectChannel, PriorityChannel
from swapcache.core.errors import ConfirmationTimeout, ExecutionReverted, RateLimited, SubmissionFailed, TradeError
from swapcache.core.json_utils import dumps
from swapcache.core.models import UNAVAILABLE, BundleStatus, BundleSubmission, SignedArtifact
from swapcache.execution.circuit_breaker import CircuitBreaker
from swapcache.execution.confirmation_poller import ConfirmationPoller
from swapcache.infra.timers import poll_until
from swapcache.monitoring.metrics import SwapMetrics

log = logging.getLogger("swapcache")

PRIORITY = "priority"
DIRECT = "direct"


@dataclass(frozen=True)
class SubmissionOutcome:
    signature: str
    channel: str
    bundle_id: Optional[str] = None


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    return min(base * (2 ** (attempt - 1)), cap)


class SubmissionRouter:
    def __init__(
        self,
        direct: DirectChannel,
        poller: ConfirmationPoller,
        priority: Optional[PriorityChannel] = None,
        *,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 5.0,
        bundle_poll_interval: float = 0.5,
        bundle_timeout: float = 30.0,
        breaker: Optional[CircuitBreaker] = None,
        metrics: Optional[SwapMetrics] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.direct = direct
        self.poller = poller
        self.priority = priority
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.bundle_poll_interval = bundle_poll_interval
        self.bundle_timeout = bundle_timeout
        self.breaker = breaker
        self.metrics = metrics
        self._clock = clock
        self._sleep = sleep

    async def submit(self, signed: SignedArtifact) -> SubmissionOutcome:
        if self.priority is not None:
            if self.breaker is not None and self.breaker.is_tripped:
                self._fallback("circuit_open", signed)
            else:
                submission = await self._send_priority(signed)
                if submission is not UNAVAILABLE:
                    return await self._await_bundle(submission, signed)
                self._fallback("rate_limited", signed)
        return await self._send_direct(signed)

    # ========== Priority channel ==========

    async def _send_priority(self, signed: SignedArtifact):
        for attempt in range(1, self.max_retries + 1):
            try:
                result = await self.priority.send([signed.payload])
            except RateLimited as exc:
                log.info(dumps({"event": "bundle_rate_limited", "attempt": attempt, "err": exc.message}))
                result = UNAVAILABLE
            except TradeError:
                self._count(PRIORITY, "failed")
                raise
            except Exception as exc:
                self._count(PRIORITY, "failed")
                raise SubmissionFailed(f"priority channel error: {exc}", cause=exc) from exc
            if result is not UNAVAILABLE:
                if self.breaker is not None:
                    self.breaker.record_success()
                return result
            if self.metrics is not None:
                self.metrics.rate_limited.inc()
            if attempt < self.max_retries:
                delay = backoff_delay(attempt, self.backoff_base, self.backoff_max)
                log.info(dumps({"event": "priority_backoff", "attempt": attempt, "delay_sec": delay}))
                await self._sleep(delay)
        if self.breaker is not None:
            self.breaker.record_error("send_bundle", "rate_limited")
        return UNAVAILABLE

    async def _await_bundle(self, submission: BundleSubmission, signed: SignedArtifact) -> SubmissionOutcome:
        bundle_id = submission.id

        async def check() -> Optional[BundleSubmission]:
            current = await self.priority.poll(bundle_id)
            return current if current.status.terminal else None

        def on_error(exc: Exception) -> None:
            log.warning(dumps({"event": "status_poll_error", "bundle_id": bundle_id, "err": str(exc)}))

        outcome = await poll_until(
            check,
            interval=self.bundle_poll_interval,
            timeout=self.bundle_timeout,
            clock=self._clock,
            sleep=self._sleep,
            on_error=on_error,
        )
        final = outcome.value
        if outcome.timed_out or final is None or final.status is BundleStatus.TIMEOUT:
            self._count(PRIORITY, "timeout")
            raise ConfirmationTimeout(
                f"bundle {bundle_id} not landed after {self.bundle_timeout:.0f}s",
                signature=signed.signature,
            )
        if final.status is not BundleStatus.LANDED:
            self._count(PRIORITY, "failed")
            raise SubmissionFailed(f"bundle {bundle_id} failed: {final.error or 'unknown'}")

        self._count(PRIORITY, "landed")
        signature = signed.signature
        if final.result_artifact_ids:
            signature = final.result_artifact_ids[0]
        log.info(dumps({"event": "bundle_landed", "bundle_id": bundle_id, "signature": signature}))
        return SubmissionOutcome(signature=signature, channel=PRIORITY, bundle_id=bundle_id)

    # ========== Direct channel ==========

    async def _send_direct(self, signed: SignedArtifact) -> SubmissionOutcome:
        try:
            signature = await self.direct.send(signed.payload)
        except TradeError:
            self._count(DIRECT, "failed")
            raise
        except Exception as exc:
            self._count(DIRECT, "failed")
            raise SubmissionFailed(f"direct send failed: {exc}", cause=exc) from exc

        result = await self.poller.confirm(signature)
        if result.confirmed:
            self._confirmation("confirmed")
            self._count(DIRECT, "confirmed")
            return SubmissionOutcome(signature=signature, channel=DIRECT)
        if result.error is not None:
            self._confirmation("reverted")
            self._count(DIRECT, "reverted")
            raise ExecutionReverted(f"transaction failed on-chain: {result.error}", signature=signature)
        self._confirmation("timeout")
        self._count(DIRECT, "timeout")
        raise ConfirmationTimeout(
            f"transaction {signature} not confirmed in time; it may still land",
            signature=signature,
        )

    def _fallback(self, reason: str, signed: SignedArtifact) -> None:
        log.warning(dumps({"event": "priority_fallback", "reason": reason, "signature": signed.signature}))
        if self.metrics is not None:
            self.metrics.priority_fallbacks.labels(reason).inc()

    def _count(self, channel: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.submissions.labels(channel, result).inc()

    def _confirmation(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.confirmations.labels(outcome).inc()
