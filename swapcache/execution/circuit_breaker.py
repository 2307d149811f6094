"""
CircuitBreaker for the priority submission channel.

Counts consecutive priority-channel exhaustions (every retry rate limited).
When the streak reaches the threshold the breaker trips and the router sends
straight to the direct channel until the cooldown expires. Repeated trips
lengthen the cooldown exponentially, capped at 32x.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from swapcache.core.json_utils import dumps

log = logging.getLogger("swapcache")


@dataclass
class CircuitBreakerConfig:
    error_threshold: int = 3  # consecutive exhaustions to trip
    cooldown_sec: float = 30.0
    backoff_multiplier: float = 2.0  # cooldown multiplier on repeated trips


class CircuitBreaker:
    """
    Single-loop asyncio usage only (no internal locks).
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
        log_event: Optional[Callable[..., None]] = None,
    ) -> None:
        self.config = config
        self.error_streak: int = 0
        self._tripped: bool = False
        self._cooldown_until: float = 0.0
        self._trip_count: int = 0
        self._clock = clock
        self._log_event = log_event or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        log.info(dumps({"event": event, **kwargs}))

    @property
    def is_tripped(self) -> bool:
        """Auto-resets once the cooldown has passed."""
        if self._tripped and self._clock() >= self._cooldown_until:
            self._reset()
            return False
        return self._tripped

    @property
    def cooldown_remaining(self) -> float:
        if not self._tripped:
            return 0.0
        return max(0.0, self._cooldown_until - self._clock())

    def record_error(self, where: str, reason: str) -> bool:
        """Record an exhausted priority attempt. Returns True if this tripped the breaker."""
        self.error_streak += 1
        self._log_event("priority_channel_error", where=where, reason=reason, streak=self.error_streak)
        if self.error_streak >= self.config.error_threshold:
            return self._trip(where)
        return False

    def record_success(self) -> None:
        if self.error_streak > 0:
            self._log_event("priority_channel_recovered", streak=self.error_streak)
            self.error_streak = 0

    def _trip(self, where: str) -> bool:
        if self._tripped:
            return False
        self._tripped = True
        self._trip_count += 1
        backoff = min(self.config.backoff_multiplier ** min(self._trip_count - 1, 5), 32.0)
        cooldown = self.config.cooldown_sec * backoff
        self._cooldown_until = self._clock() + cooldown
        self._log_event(
            "priority_circuit_open",
            where=where,
            streak=self.error_streak,
            trip_count=self._trip_count,
            cooldown_sec=cooldown,
        )
        return True

    def _reset(self) -> None:
        was_tripped = self._tripped
        self._tripped = False
        self.error_streak = 0
        if was_tripped:
            self._log_event("priority_circuit_closed", trip_count=self._trip_count)

    def force_reset(self) -> None:
        self._cooldown_until = 0.0
        self._reset()

    def get_state(self) -> dict:
        return {
            "tripped": self._tripped,
            "error_streak": self.error_streak,
            "trip_count": self._trip_count,
            "cooldown_remaining": self.cooldown_remaining,
        }
