"""
Cache refresh scheduler.

Keeps at most one IntervalTimer alive, keyed to a token. Each tick re-runs
the preload while the cache for that token still exists and is within TTL;
otherwise the timer cancels itself. Refresh failures are logged and never
touch the cache that is already installed.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from swapcache.cache.preload_cache import CacheStore
from swapcache.core.json_utils import dumps
from swapcache.infra.timers import IntervalTimer

log = logging.getLogger("swapcache")


class RefreshScheduler:
    def __init__(
        self,
        store: CacheStore,
        refresh: Callable[[str], Awaitable[Any]],
        interval: float = 8.0,
        ttl: float = 10.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.store = store
        self.interval = interval
        self.ttl = ttl
        self._refresh = refresh
        self._sleep = sleep
        self._timer: Optional[IntervalTimer] = None
        self._token: Optional[str] = None
        self.refreshes = 0
        self.failures = 0

    @property
    def token(self) -> Optional[str]:
        return self._token if self.active else None

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.active

    def arm(self, token: str) -> None:
        """Start refreshing `token`; a no-op while already running for it."""
        if self.active and self._token == token:
            return
        self.cancel()
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        self._token = token
        self._timer = IntervalTimer(self.interval, lambda: self._tick(token), name=f"refresh-{token[:8]}", **kwargs)
        self._timer.start()
        log.debug(dumps({"event": "refresh_armed", "token": token, "interval_sec": self.interval}))

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._token = None

    async def wait(self) -> None:
        if self._timer is not None:
            await self._timer.wait()

    async def _tick(self, token: str) -> bool:
        cache = self.store.get()
        if cache is None or cache.token != token or self.store.tracked_token != token:
            log.debug(dumps({"event": "refresh_stopped", "token": token, "reason": "token_mismatch"}))
            return False
        if not cache.is_valid(self.store.now(), self.ttl):
            log.info(dumps({"event": "refresh_stopped", "token": token, "reason": "expired"}))
            return False
        try:
            await self._refresh(token)
            self.refreshes += 1
        except Exception as exc:
            self.failures += 1
            log.warning(dumps({"event": "refresh_failed", "token": token, "err": str(exc)}))
        return True
