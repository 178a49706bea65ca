"""Database health check utilities."""

import logging
import time
from typing import TYPE_CHECKING, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hookdb.health.metrics import get_pool_metrics, get_query_metrics, summarize_query_metrics
from hookdb.health.types import (
    HealthCheck,
    HealthCheckResult,
    HealthMetrics,
    HealthStatus,
    PoolMetrics,
    QueryMetricsSummary,
    worst_status,
)
from hookdb.utils.asyncio import DeadlineExceeded, wait_or_abandon

if TYPE_CHECKING:
    from hookdb.config import HookDBConfig

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_TIMEOUT_MS = 5000


class HealthCheckOptions(BaseModel):
    """Options for a health check."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    timeout_ms: int = Field(default=DEFAULT_HEALTH_TIMEOUT_MS, gt=0)
    degraded_latency_ms: float = Field(default=100, ge=0)
    unhealthy_latency_ms: float = Field(default=500, ge=0)
    slow_query_threshold_ms: float = Field(default=100, ge=0)
    verbose: bool = False
    pool: Optional[Any] = Field(default=None, description="Object exposing get_metrics()")
    logger: Optional[Any] = Field(default=None, description="Logger with debug/info/warning/error")

    @classmethod
    def from_config(cls, config: "HookDBConfig", **overrides: Any) -> "HealthCheckOptions":
        """Build from the ``health`` section of hookdb.toml, then apply overrides."""
        health = config.health
        values = {
            "timeout_ms": health.timeout_ms,
            "degraded_latency_ms": health.degraded_latency_ms,
            "unhealthy_latency_ms": health.unhealthy_latency_ms,
            "slow_query_threshold_ms": health.slow_query_threshold_ms,
        }
        values.update(overrides)
        return cls(**values)


def status_from_latency(latency_ms: float, options: HealthCheckOptions) -> HealthStatus:
    if latency_ms < options.degraded_latency_ms:
        return HealthStatus.HEALTHY
    if latency_ms < options.unhealthy_latency_ms:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


async def _ping(connection: Any) -> None:
    ping = getattr(connection, "ping", None)
    if callable(ping):
        await ping()
    else:
        await connection.execute("SELECT 1")


def _pool_check(pool_metrics: PoolMetrics) -> HealthCheck:
    status = HealthStatus.HEALTHY
    message = (
        f"{pool_metrics.active}/{pool_metrics.total} active, "
        f"{pool_metrics.waiting} waiting"
    )
    if pool_metrics.waiting > 0 or pool_metrics.utilization > 0.8:
        status = HealthStatus.DEGRADED
    return HealthCheck(
        name="Connection Pool",
        status=status,
        message=message,
        details=pool_metrics.model_dump(),
    )


def _query_check(summary: QueryMetricsSummary) -> HealthCheck:
    status = HealthStatus.HEALTHY
    if summary.errors > 0 or summary.slow_queries > summary.total_queries * 0.1:
        status = HealthStatus.DEGRADED
    return HealthCheck(
        name="Query Performance",
        status=status,
        message=(
            f"{summary.total_queries} queries, avg {summary.avg_response_time_ms}ms, "
            f"{summary.slow_queries} slow, {summary.errors} failed"
        ),
        details=summary.model_dump(),
    )


async def check_database_health(
    connection: Any, options: Optional[HealthCheckOptions] = None
) -> HealthCheckResult:
    """Check database health by executing a lightweight ping query.

    The ping is raced against ``options.timeout_ms``. This function never
    raises: ping errors and timeouts become an ``unhealthy`` result with
    ``errors`` populated, so monitoring loops keep running.

    Args:
        connection: Connection or executor exposing ``ping()`` or ``execute(sql)``
        options: Health check options

    Returns:
        A fresh, immutable HealthCheckResult
    """
    options = options or HealthCheckOptions()
    log = options.logger or logger

    checks: List[HealthCheck] = []
    errors: List[str] = []
    latency_ms: Optional[float] = None

    start = time.perf_counter()
    try:
        await wait_or_abandon(_ping(connection), options.timeout_ms, name="hookdb-health-ping")
        latency_ms = round((time.perf_counter() - start) * 1000, 3)
        checks.append(
            HealthCheck(
                name="Database Connection",
                status=HealthStatus.HEALTHY,
                message=f"Connected successfully ({latency_ms}ms)",
            )
        )
        checks.append(
            HealthCheck(
                name="Query Latency",
                status=status_from_latency(latency_ms, options),
                message=f"Ping completed in {latency_ms}ms",
            )
        )
    except DeadlineExceeded:
        message = f"Health check timed out after {options.timeout_ms}ms"
        errors.append(message)
        checks.append(HealthCheck(name="Database Connection", status=HealthStatus.UNHEALTHY, message=message))
    except Exception as e:
        message = str(e) or type(e).__name__
        errors.append(message)
        checks.append(HealthCheck(name="Database Connection", status=HealthStatus.UNHEALTHY, message=message))

    pool_metrics = None
    query_summary = None
    database_version = None
    try:
        pool_metrics = get_pool_metrics(connection, options.pool)
        query_metrics = get_query_metrics(connection)
        if query_metrics is not None:
            query_summary = summarize_query_metrics(query_metrics, options.slow_query_threshold_ms)
    except Exception as e:
        log.warning(f"Failed to collect metrics during health check: {e}")
        errors.append(f"Metrics collection failed: {e}")

    if pool_metrics is not None:
        checks.append(_pool_check(pool_metrics))
    if query_summary is not None and query_summary.total_queries > 0:
        checks.append(_query_check(query_summary))

    if options.verbose and latency_ms is not None:
        server_version = getattr(connection, "server_version", None)
        if callable(server_version):
            try:
                database_version = await wait_or_abandon(server_version(), options.timeout_ms)
            except Exception as e:
                log.debug(f"Version check failed: {e!r}")
                database_version = "Unknown"
        else:
            database_version = "Unknown"

    metrics = None
    if latency_ms is not None or pool_metrics is not None or query_summary is not None:
        metrics = HealthMetrics(
            database_version=database_version,
            pool_metrics=pool_metrics,
            query_metrics=query_summary,
            check_latency_ms=latency_ms,
        )

    status = worst_status(*(check.status for check in checks))
    if status != HealthStatus.HEALTHY:
        log.debug(f"Database health check finished with status {status.value}")

    return HealthCheckResult(
        status=status,
        checks=tuple(checks),
        errors=tuple(errors) if errors else None,
        metrics=metrics,
    )
