"""
Prometheus metrics for the preload cache and the trade path.

Organized into: preload, cache decisions, submission, confirmation.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server
from typing import Optional


class SwapMetrics:
    """Counters and histograms for cache effectiveness and execution latency."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self.registry = reg

        # === Preload Metrics ===
        self.preloads = Counter(
            'preloads_total',
            'Preload runs by trigger and outcome',
            labelnames=['trigger', 'result'],
            registry=reg
        )
        self.artifact_builds = Counter(
            'artifact_builds_total',
            'Unsigned artifact builds',
            labelnames=['side', 'result'],
            registry=reg
        )
        self.preload_latency_ms = Histogram(
            'preload_latency_ms',
            'Time to build a full preload cache (milliseconds)',
            buckets=[50, 100, 250, 500, 1000, 2000, 5000],
            registry=reg
        )
        self.cached_artifacts = Gauge(
            'cached_artifacts',
            'Artifacts in the current preload cache',
            labelnames=['side'],
            registry=reg
        )

        # === Cache Decision Metrics ===
        self.cache_lookups = Counter(
            'cache_lookups_total',
            'Execution-time cache decisions (hit, stale, drift, miss, disabled)',
            labelnames=['side', 'outcome'],
            registry=reg
        )
        self.rebuilds = Counter(
            'rebuilds_total',
            'Rebuilds of a cache-sourced artifact after a failure',
            labelnames=['reason'],
            registry=reg
        )

        # === Submission Metrics ===
        self.submissions = Counter(
            'submissions_total',
            'Submissions by channel and result',
            labelnames=['channel', 'result'],
            registry=reg
        )
        self.priority_fallbacks = Counter(
            'priority_fallbacks_total',
            'Submissions that fell back from the priority to the direct channel',
            labelnames=['reason'],
            registry=reg
        )
        self.rate_limited = Counter(
            'priority_rate_limited_total',
            'Rate-limited priority channel attempts',
            registry=reg
        )

        # === Confirmation / Execution Metrics ===
        self.confirmations = Counter(
            'confirmations_total',
            'Confirmation poll outcomes (confirmed, reverted, timeout)',
            labelnames=['outcome'],
            registry=reg
        )
        self.executions = Counter(
            'executions_total',
            'User executions by side and result kind',
            labelnames=['side', 'result'],
            registry=reg
        )
        self.execution_latency_ms = Histogram(
            'execution_latency_ms',
            'Time from user action to final signature (milliseconds)',
            labelnames=['side', 'source'],
            buckets=[100, 250, 500, 1000, 2000, 5000, 10000, 30000],
            registry=reg
        )


def start_exporter(metrics: SwapMetrics, port: int) -> bool:
    """Expose the registry over HTTP when a port is configured."""
    if port <= 0:
        return False
    start_http_server(port, registry=metrics.registry)
    return True
