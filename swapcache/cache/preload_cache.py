"""
Process-wide preload cache holder.

One PreloadCache exists at a time, for the currently tracked token. The
reference swap is guarded by a lock so readers always get a whole cache;
every consumer still re-validates token and age itself.

Invalidations (token change, post-execution clear) bump a generation
counter. A preload captures the generation when it starts and its install is
rejected if the generation moved in the meantime, so a slow build can never
resurrect a cache that was cleared while it was in flight.
"""

from __future__ import annotations

import dataclasses
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from swapcache.core.models import UnsignedArtifact


@dataclass(frozen=True)
class PreloadCache:
    token: str
    buy_artifacts: Dict[float, UnsignedArtifact] = field(default_factory=dict)
    sell_artifacts: Dict[float, UnsignedArtifact] = field(default_factory=dict)
    decimals: int = 9
    raw_balance_snapshot: int = 0
    ui_balance_snapshot: float = 0.0
    created_at: float = 0.0

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_valid(self, now: float, ttl: float) -> bool:
        """The cache still exists for refresh purposes."""
        return self.age(now) < ttl

    def is_fresh(self, now: float, threshold: float) -> bool:
        """Young enough to execute from without a rebuild."""
        return self.age(now) < threshold

    def to_dict(self, now: float) -> dict:
        return {
            "token": self.token,
            "age_sec": round(self.age(now), 3),
            "buy_amounts": sorted(self.buy_artifacts),
            "sell_percents": sorted(self.sell_artifacts),
            "decimals": self.decimals,
            "raw_balance": self.raw_balance_snapshot,
            "ui_balance": self.ui_balance_snapshot,
        }


class CacheStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Optional[PreloadCache] = None
        self._token: Optional[str] = None
        self._generation = 0
        self._last_created_at: Optional[float] = None

    def now(self) -> float:
        return self._clock()

    @property
    def tracked_token(self) -> Optional[str]:
        return self._token

    @property
    def generation(self) -> int:
        return self._generation

    def get(self) -> Optional[PreloadCache]:
        with self._lock:
            return self._cache

    def lookup(self, token: str) -> Optional[PreloadCache]:
        """The current cache if it belongs to `token`, else None."""
        cache = self.get()
        if cache is None or cache.token != token:
            return None
        return cache

    def track(self, token: str) -> Tuple[int, bool]:
        """
        Mark `token` as the tracked token.

        Returns (generation, changed). A change of token drops the current
        cache and starts a new generation.
        """
        with self._lock:
            changed = token != self._token
            if changed:
                self._token = token
                self._cache = None
                self._generation += 1
            return self._generation, changed

    def install(self, cache: PreloadCache, generation: int) -> Optional[PreloadCache]:
        """
        Atomically replace the cache, stamping a strictly increasing created_at.

        Returns the installed cache, or None when the install is stale
        (another token is tracked or the cache was invalidated meanwhile).
        """
        with self._lock:
            if generation != self._generation or cache.token != self._token:
                return None
            stamp = self._clock()
            if self._last_created_at is not None and stamp <= self._last_created_at:
                stamp = self._last_created_at + 1e-6
            installed = dataclasses.replace(cache, created_at=stamp)
            self._cache = installed
            self._last_created_at = stamp
            return installed

    def clear(self) -> None:
        """Drop the cache and invalidate any preload still in flight."""
        with self._lock:
            self._cache = None
            self._generation += 1
