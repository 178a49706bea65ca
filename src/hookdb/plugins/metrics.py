"""
Query metrics plugin: times every intercepted call.
"""

import logging
import time
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from hookdb.health.types import QueryMetric
from hookdb.plugins.base import Plugin
from hookdb.plugins.decorators import intercepts
from hookdb.types import INTERCEPTED_METHODS, QueryContext


DEFAULT_MAX_METRICS = 1000
DEFAULT_SLOW_QUERY_THRESHOLD_MS = 100


class MetricsPlugin(Plugin):
    """Records a QueryMetric for every intercepted call.

    Metrics are kept in a bounded buffer; once ``max_metrics`` is reached
    the oldest entries are dropped. An executor with this plugin registered
    exposes the recorded metrics through ``executor.get_metrics()``, which
    the health check uses for its "Query Performance" check.
    """

    name = "metrics"
    version = "1.0.0"
    description = "Records timing for every intercepted query"
    # Run first so the timing covers the rest of the chain
    priority = -100

    def __init__(
        self,
        max_metrics: int = DEFAULT_MAX_METRICS,
        slow_query_threshold_ms: float = DEFAULT_SLOW_QUERY_THRESHOLD_MS,
        log_queries: bool = False,
        on_slow_query: Optional[Callable[[QueryMetric], Any]] = None,
        logger: Optional[Any] = None,
    ):
        if max_metrics <= 0:
            raise ValueError("max_metrics must be positive")

        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.log_queries = log_queries
        self.on_slow_query = on_slow_query
        self.logger = logger or logging.getLogger(__name__)
        self._metrics: Deque[QueryMetric] = deque(maxlen=max_metrics)

    @intercepts(*INTERCEPTED_METHODS)
    async def record(self, query: Any, context: QueryContext, proceed) -> Any:
        start = time.perf_counter()
        error = None
        try:
            return await proceed(query)
        except Exception as e:
            error = str(e) or type(e).__name__
            raise
        finally:
            self._record(context, (time.perf_counter() - start) * 1000, error)

    def _record(self, context: QueryContext, duration_ms: float, error: Optional[str]) -> None:
        metric = QueryMetric(
            operation=context.operation,
            table=context.table,
            duration_ms=duration_ms,
            error=error,
        )
        self._metrics.append(metric)

        target = context.table or "-"
        if self.log_queries:
            self.logger.debug(f"[{context.operation.upper()}] {target} {duration_ms:.2f}ms")

        if duration_ms > self.slow_query_threshold_ms:
            if self.on_slow_query is not None:
                self.on_slow_query(metric)
            else:
                self.logger.warning(
                    f"[SLOW QUERY] {duration_ms:.2f}ms: {context.operation} {target}"
                )

    def get_metrics(self) -> List[QueryMetric]:
        """Recorded metrics, oldest first."""
        return list(self._metrics)

    def clear_metrics(self) -> None:
        self._metrics.clear()

    def slow_queries(self) -> List[QueryMetric]:
        return [m for m in self._metrics if m.duration_ms > self.slow_query_threshold_ms]
