"""
Confirmation poller for directly submitted transactions.

Polls signature status until confirmed/finalized, an on-chain error, or the
deadline. A timeout means "unknown, likely pending" and is reported apart
from a landed failure.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from swapcache.clients.protocols import DirectChannel
from swapcache.core.json_utils import dumps
from swapcache.core.models import ConfirmationResult, SignatureStatus
from swapcache.infra.timers import poll_until

log = logging.getLogger("swapcache")


class ConfirmationPoller:
    def __init__(
        self,
        channel: DirectChannel,
        interval: float = 0.5,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.channel = channel
        self.interval = interval
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep

    async def confirm(self, signature: str, timeout: Optional[float] = None) -> ConfirmationResult:
        async def check() -> Optional[SignatureStatus]:
            status = await self.channel.get_status(signature)
            if status is None:
                return None
            # an error is terminal even before confirmation
            if status.err is not None or status.is_confirmed:
                return status
            return None

        def on_error(exc: Exception) -> None:
            log.warning(dumps({"event": "status_poll_error", "signature": signature, "err": str(exc)}))

        outcome = await poll_until(
            check,
            interval=self.interval,
            timeout=self.timeout if timeout is None else timeout,
            clock=self._clock,
            sleep=self._sleep,
            on_error=on_error,
        )
        elapsed_ms = round(outcome.elapsed * 1000.0, 2)
        if outcome.timed_out or outcome.value is None:
            log.warning(dumps({"event": "confirmation_timeout", "signature": signature, "attempts": outcome.attempts}))
            return ConfirmationResult(confirmed=False, timed_out=True, elapsed_ms=elapsed_ms)
        status = outcome.value
        if status.err is not None:
            err = status.err if isinstance(status.err, str) else dumps(status.err)
            return ConfirmationResult(confirmed=False, error=err, elapsed_ms=elapsed_ms)
        return ConfirmationResult(confirmed=True, elapsed_ms=elapsed_ms)
