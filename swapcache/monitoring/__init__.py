"""Monitoring package: Prometheus metrics."""

from swapcache.monitoring.metrics import SwapMetrics, start_exporter

__all__ = ["SwapMetrics", "start_exporter"]
