"""
Logging setup for swapcache.

Every component logs one JSON object per message (see core.json_utils), so
the console shows the raw event line through Rich, and the optional log file
gets the same event merged into a timestamped JSON record. File writes go
through a background thread so a slow disk never stalls the event loop while
a trade is in flight.
"""

from __future__ import annotations

import atexit
import logging
import queue
import sys
import threading
import time
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from rich.logging import RichHandler

from swapcache.core.json_utils import dumps, loads

# events that can repeat every refresh tick or poll interval
NOISY_EVENTS: FrozenSet[str] = frozenset({
    "refresh_failed",
    "bundle_rate_limited",
    "status_poll_error",
    "priority_backoff",
})


def _event_of(record: logging.LogRecord) -> Optional[Dict[str, Any]]:
    msg = record.getMessage()
    if not msg.startswith("{"):
        return None
    try:
        data = loads(msg)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class EventJsonFormatter(logging.Formatter):
    """One JSON line per record; JSON event messages are merged, not nested."""

    def format(self, record: logging.LogRecord) -> str:
        out: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
        }
        event = _event_of(record)
        if event is None:
            out["msg"] = record.getMessage()
        else:
            out.update(event)
        if record.exc_info:
            out["exc_info"] = self.formatException(record.exc_info)
        return dumps(out)


class BackgroundFileHandler(logging.Handler):
    """
    Hands records to a writer thread. A full queue drops the record and
    counts it; the count is reported on close.
    """

    _STOP = object()

    def __init__(self, target: logging.Handler, max_queue_size: int = 10000):
        super().__init__()
        self._target = target
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._closed = False
        self.dropped = 0
        self._writer = threading.Thread(target=self._drain, daemon=True, name="swapcache-log-writer")
        self._writer.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is self._STOP:
                return
            try:
                self._target.handle(item)
            except Exception:
                self.handleError(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put(self._STOP, timeout=1.0)
        except queue.Full:
            sys.stderr.write("[swapcache] log writer backlog not drained before close\n")
        self._writer.join(timeout=2.0)
        if self.dropped:
            sys.stderr.write(f"[swapcache] dropped {self.dropped} log records (writer queue full)\n")
        self._target.close()
        super().close()


class NoisyEventFilter(logging.Filter):
    """
    Lets the first occurrence of a noisy event through per (event, token),
    then hides repeats for `cooldown_sec`.
    """

    def __init__(self, cooldown_sec: float = 30.0, events: FrozenSet[str] = NOISY_EVENTS, clock=time.monotonic):
        super().__init__()
        self.cooldown_sec = cooldown_sec
        self.events = events
        self._clock = clock
        self._last: Dict[str, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        event = _event_of(record)
        if event is None or event.get("event") not in self.events:
            return True
        key = f"{event['event']}:{event.get('token', '')}"
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < self.cooldown_sec:
            return False
        self._last[key] = now
        return True


def build_logger(
    name: str = "swapcache",
    level: int = logging.INFO,
    file_path: Optional[str] = None,
    background_file: bool = True,
    quiet_noisy_events: bool = True,
) -> logging.Logger:
    """
    Configure the application logger once; later calls only change levels.

    Args:
        name: Logger name
        level: Minimum log level
        file_path: JSON-lines log file, None to log to the console only
        background_file: Write the file from a background thread
        quiet_noisy_events: Rate-limit repeating refresh/poll events on the console
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    console = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(message)s"))
    if quiet_noisy_events:
        console.addFilter(NoisyEventFilter())
    logger.addHandler(console)

    if file_path:
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(EventJsonFormatter())
        file_handler.setLevel(level)
        handler: logging.Handler = BackgroundFileHandler(file_handler) if background_file else file_handler
        handler.setLevel(level)
        logger.addHandler(handler)

    logger.propagate = False
    return logger
