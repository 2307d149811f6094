"""
Execution package: trade pipeline, submission routing and confirmation.
"""

from swapcache.execution.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from swapcache.execution.confirmation_poller import ConfirmationPoller
from swapcache.execution.submission_router import SubmissionOutcome, SubmissionRouter, backoff_delay
from swapcache.execution.trade_pipeline import ExecutionResult, TradePipeline, balance_drifted

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "ConfirmationPoller",
    "SubmissionOutcome",
    "SubmissionRouter",
    "backoff_delay",
    "ExecutionResult",
    "TradePipeline",
    "balance_drifted",
]
