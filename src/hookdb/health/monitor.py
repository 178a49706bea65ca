"""Health monitoring utilities."""

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from hookdb.health.check import HealthCheckOptions, check_database_health
from hookdb.health.types import HealthCheckResult, HealthStatus

if TYPE_CHECKING:
    from hookdb.config import HookDBConfig


HealthCheckCallback = Callable[[HealthCheckResult], Union[None, Awaitable[None]]]

DEFAULT_INTERVAL_MS = 30000


class HealthMonitor:
    """Continuous health monitor for a database connection or executor.

    Runs ``check_database_health`` once on start and then every
    ``interval_ms`` in a background task, passing each result to the
    registered callback.

    Example:
        monitor = HealthMonitor(executor, interval_ms=10000)
        monitor.start(lambda result: print(result.status))
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        connection: Any,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        options: Optional[HealthCheckOptions] = None,
        logger: Optional[Any] = None,
    ):
        """Initialize the monitor.

        Args:
            connection: Connection or executor to check
            interval_ms: Interval between checks in milliseconds
            options: Options for each health check
            logger: Logger for monitor messages
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self.connection = connection
        self.interval_ms = interval_ms
        self.options = options or HealthCheckOptions()
        self.logger = logger or self.options.logger or logging.getLogger(__name__)
        self._task: Optional[asyncio.Task] = None
        self._callback: Optional[HealthCheckCallback] = None
        self._last_check: Optional[HealthCheckResult] = None

    @classmethod
    def from_config(
        cls, connection: Any, config: "HookDBConfig", logger: Optional[Any] = None
    ) -> "HealthMonitor":
        """Create a monitor using the interval and thresholds from hookdb.toml."""
        return cls(
            connection,
            interval_ms=config.health.interval_ms,
            options=HealthCheckOptions.from_config(config),
            logger=logger,
        )

    @property
    def last_check(self) -> Optional[HealthCheckResult]:
        """Last health check result, or None before the first check."""
        return self._last_check

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: Optional[HealthCheckCallback] = None) -> None:
        """Start periodic health checks. Does nothing if already running.

        Must be called with a running event loop.
        """
        if self.is_running:
            return

        self.logger.debug(f"Starting health monitor with {self.interval_ms}ms interval")
        self._callback = callback
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="hookdb-health-monitor"
        )

    async def stop(self) -> None:
        """Stop periodic health checks. Safe to call multiple times."""
        task = self._task
        if task is None:
            return

        self._task = None
        if not task.done():
            self.logger.debug("Stopping health monitor")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def check_now(self) -> HealthCheckResult:
        """Run a health check outside the regular interval."""
        self._last_check = await check_database_health(self.connection, self.options)
        return self._last_check

    async def _run(self) -> None:
        while True:
            result = await self.check_now()

            if result.status != HealthStatus.HEALTHY:
                self.logger.warning(f"Health check status: {result.status.value}")

            if self._callback is not None:
                try:
                    outcome = self._callback(result)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    self.logger.error(f"Health monitor callback failed: {e}")

            await asyncio.sleep(self.interval_ms / 1000)
