"""Health check models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Health status levels, ordered from best to worst."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class HealthCheck(_FrozenModel):
    """Individual health check result."""

    name: str
    status: HealthStatus
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class PoolMetrics(_FrozenModel):
    """Connection pool counters."""

    total: int = Field(ge=0, description="Connections in the pool")
    active: int = Field(ge=0, description="Connections in use")
    idle: int = Field(ge=0, description="Connections available")
    waiting: int = Field(ge=0, description="Requests waiting for a connection")

    @property
    def utilization(self) -> float:
        return self.active / self.total if self.total else 0.0


class QueryMetric(_FrozenModel):
    """One recorded intercepted call."""

    operation: str
    table: Optional[str] = None
    duration_ms: float = Field(ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None


class QueryMetricsSummary(_FrozenModel):
    """Aggregated query metrics."""

    total_queries: int = 0
    avg_response_time_ms: float = 0.0
    slow_queries: int = 0
    errors: int = 0


class HealthMetrics(_FrozenModel):
    """Metrics gathered during a health check."""

    database_version: Optional[str] = None
    pool_metrics: Optional[PoolMetrics] = None
    query_metrics: Optional[QueryMetricsSummary] = None
    check_latency_ms: Optional[float] = None


class HealthCheckResult(_FrozenModel):
    """Complete health check result. Never mutated after it is returned."""

    status: HealthStatus
    checks: Tuple[HealthCheck, ...]
    errors: Optional[Tuple[str, ...]] = None
    metrics: Optional[HealthMetrics] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY


def worst_status(*statuses: HealthStatus) -> HealthStatus:
    """Return the most severe status (unhealthy > degraded > healthy)."""
    if not statuses:
        return HealthStatus.HEALTHY
    return max(statuses, key=lambda s: s.severity)
