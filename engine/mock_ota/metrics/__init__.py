"""
Request metrics: counters, rolling windows, percentiles and health.
"""

from mock_ota.metrics.aggregator import (
    LoadSimulation,
    MetricsAggregator,
    MetricsSnapshot,
    percentile,
)

__all__ = ["LoadSimulation", "MetricsAggregator", "MetricsSnapshot", "percentile"]
