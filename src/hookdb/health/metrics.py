"""Database metrics collection utilities."""

import logging
import math
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field

from hookdb.health.types import PoolMetrics, QueryMetric, QueryMetricsSummary

logger = logging.getLogger(__name__)


class QueryStatistics(BaseModel):
    """Detailed query statistics."""

    total: int
    avg_duration_ms: float
    min_duration_ms: float
    max_duration_ms: float
    p95_duration_ms: float
    p99_duration_ms: float
    slow_count: int
    error_count: int


class MetricsReport(BaseModel):
    """Metrics report with recommendations."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    connections: Optional[PoolMetrics] = None
    queries: Optional[QueryStatistics] = None
    recommendations: List[str] = Field(default_factory=list)


def percentile(sorted_values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile of pre-sorted values (0 for empty input)."""
    if not sorted_values:
        return 0.0
    index = math.ceil((pct / 100) * len(sorted_values)) - 1
    return sorted_values[max(0, index)]


def get_pool_metrics(connection: Any, pool: Any = None) -> Optional[PoolMetrics]:
    """Read pool metrics from an explicit pool or the connection, if either offers them.

    Returns None when neither exposes the capability.
    """
    if pool is not None and callable(getattr(pool, "get_metrics", None)):
        raw = pool.get_metrics()
    elif callable(getattr(connection, "get_pool_metrics", None)):
        raw = connection.get_pool_metrics()
    else:
        return None

    if raw is None or isinstance(raw, PoolMetrics):
        return raw
    return PoolMetrics.model_validate(raw)


def get_query_metrics(connection: Any) -> Optional[List[QueryMetric]]:
    """Read recorded query metrics from a metrics-capable connection or executor."""
    getter = getattr(connection, "get_metrics", None)
    if not callable(getter):
        return None
    metrics = getter()
    if metrics is None:
        return None
    return [m if isinstance(m, QueryMetric) else QueryMetric.model_validate(m) for m in metrics]


def summarize_query_metrics(
    metrics: Sequence[QueryMetric], slow_query_threshold_ms: float = 100
) -> QueryMetricsSummary:
    """Aggregate recorded metrics into count, average latency, slow and error counts."""
    if not metrics:
        return QueryMetricsSummary()

    durations = [m.duration_ms for m in metrics]
    return QueryMetricsSummary(
        total_queries=len(metrics),
        avg_response_time_ms=round(sum(durations) / len(durations), 2),
        slow_queries=sum(1 for d in durations if d > slow_query_threshold_ms),
        errors=sum(1 for m in metrics if m.error is not None),
    )


def get_metrics_report(
    connection: Any, pool: Any = None, slow_query_threshold_ms: float = 100
) -> MetricsReport:
    """Build a detailed metrics report from real recorded query data.

    The connection must expose query metrics, typically an executor that
    has a MetricsPlugin registered.

    Raises:
        ValueError: If no query metrics are available
    """
    metrics = get_query_metrics(connection)
    if metrics is None:
        raise ValueError(
            "Database metrics are not available. "
            "Register a MetricsPlugin with the executor to collect query metrics."
        )

    report = MetricsReport(connections=get_pool_metrics(connection, pool))

    if metrics:
        durations = sorted(m.duration_ms for m in metrics)
        avg = sum(durations) / len(durations)
        slow_count = sum(1 for d in durations if d > slow_query_threshold_ms)

        report.queries = QueryStatistics(
            total=len(metrics),
            avg_duration_ms=round(avg, 2),
            min_duration_ms=round(durations[0], 2),
            max_duration_ms=round(durations[-1], 2),
            p95_duration_ms=round(percentile(durations, 95), 2),
            p99_duration_ms=round(percentile(durations, 99), 2),
            slow_count=slow_count,
            error_count=sum(1 for m in metrics if m.error is not None),
        )

        if slow_count > len(metrics) * 0.1:
            report.recommendations.append(
                f"High number of slow queries detected ({slow_count}/{len(metrics)}). "
                f"Consider query optimization or indexing."
            )
        if avg > slow_query_threshold_ms * 0.5:
            report.recommendations.append(
                f"Average query duration ({avg:.2f}ms) is approaching slow query threshold. "
                f"Monitor performance closely."
            )

    if report.connections and report.connections.utilization > 0.8:
        report.recommendations.append(
            f"Connection pool utilization is high ({report.connections.utilization * 100:.1f}%). "
            f"Consider increasing pool size."
        )

    logger.debug("Built metrics report with %d recommendation(s)", len(report.recommendations))
    return report
