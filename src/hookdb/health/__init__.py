"""Health checks and monitoring for hookdb connections."""

from hookdb.health.check import HealthCheckOptions, check_database_health
from hookdb.health.metrics import MetricsReport, get_metrics_report
from hookdb.health.monitor import HealthMonitor
from hookdb.health.types import (
    HealthCheck,
    HealthCheckResult,
    HealthMetrics,
    HealthStatus,
    PoolMetrics,
    QueryMetric,
    QueryMetricsSummary,
)

__all__ = [
    "HealthCheck",
    "HealthCheckOptions",
    "HealthCheckResult",
    "HealthMetrics",
    "HealthMonitor",
    "HealthStatus",
    "MetricsReport",
    "PoolMetrics",
    "QueryMetric",
    "QueryMetricsSummary",
    "check_database_health",
    "get_metrics_report",
]
