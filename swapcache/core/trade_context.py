"""
Structured logging context with trace IDs and per-step timings.

Each user action (preload, buy, sell) gets a trace_id so all log entries of
one action can be correlated, and records how long each step took so a slow
venue call or a fallback shows up in the final summary line.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from swapcache.core.json_utils import dumps


class TradeContext:
    """Request context for structured logging with trace ID correlation."""

    def __init__(
        self,
        token: str,
        action: str,
        trace_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.token = token
        self.action = action
        self.trace_id = trace_id or uuid.uuid4().hex[:16]
        self.start_time = time.perf_counter()
        self.logger = logger or logging.getLogger("swapcache")
        self.tags: Dict[str, Any] = {}
        self.timings: Dict[str, float] = {}

    def set_tag(self, key: str, value: Any) -> None:
        """Add a tag to be included in all logs from this context."""
        self.tags[key] = value

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000.0

    def log(self, event: str, level: str = "info", **data: Any) -> None:
        payload = {
            "event": event,
            "trace_id": self.trace_id,
            "action": self.action,
            "token": self.token,
            "elapsed_ms": round(self.elapsed_ms, 2),
            **self.tags,
            **data,
        }
        log_func = getattr(self.logger, level, self.logger.info)
        log_func(dumps(payload))

    def debug(self, event: str, **data: Any) -> None:
        self.log(event, level="debug", **data)

    def info(self, event: str, **data: Any) -> None:
        self.log(event, level="info", **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log(event, level="warning", **data)

    def error(self, event: str, **data: Any) -> None:
        self.log(event, level="error", **data)

    @contextmanager
    def step(self, name: str) -> Iterator[None]:
        """Time a step; repeated names (retries) get a numeric suffix."""
        key = name
        n = 2
        while key in self.timings:
            key = f"{name}_{n}"
            n += 1
        started = time.perf_counter()
        try:
            yield
        finally:
            self.timings[key] = round((time.perf_counter() - started) * 1000.0, 2)

    def summary(self) -> Dict[str, Any]:
        return {"timings_ms": dict(self.timings), "total_ms": round(self.elapsed_ms, 2)}
