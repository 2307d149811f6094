"""
Infrastructure package.

This package contains infrastructure components: logging configuration,
timers and pollers, shared HTTP plumbing and the per-token execution locks.
"""

from swapcache.infra.http import HttpClient, RpcError
from swapcache.infra.locks import ExecutionLocks
from swapcache.infra.logging_cfg import build_logger
from swapcache.infra.timers import IntervalTimer, PollOutcome, poll_until

__all__ = [
    "HttpClient",
    "RpcError",
    "ExecutionLocks",
    "build_logger",
    "IntervalTimer",
    "PollOutcome",
    "poll_until",
]
