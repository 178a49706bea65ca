"""hookdb - composable query-interception plugins for async database handles."""

from hookdb.core.connection import DatabaseConnection
from hookdb.core.executor import (
    Executor,
    ExecutorConfig,
    create_executor,
    create_executor_sync,
    get_raw_connection,
    is_executor,
)
from hookdb.core.resolver import resolve_plugin_order, validate_plugins
from hookdb.errors import (
    HookDBError,
    InterceptionError,
    PluginInitializationError,
    PluginValidationError,
    ShutdownError,
)
from hookdb.health import HealthCheckOptions, HealthMonitor, HealthStatus, check_database_health
from hookdb.plugins import Plugin, PluginRegistry, intercepts
from hookdb.shutdown import (
    ShutdownController,
    ShutdownOptions,
    ShutdownState,
    create_shutdown_controller,
    graceful_shutdown,
)
from hookdb.types import INTERCEPTED_METHODS, QueryContext

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("hookdb")
except PackageNotFoundError:
    # Running from a source checkout without installed metadata
    __version__ = "0.1.0"

__all__ = [
    "INTERCEPTED_METHODS",
    "DatabaseConnection",
    "Executor",
    "ExecutorConfig",
    "HealthCheckOptions",
    "HealthMonitor",
    "HealthStatus",
    "HookDBError",
    "InterceptionError",
    "Plugin",
    "PluginInitializationError",
    "PluginRegistry",
    "PluginValidationError",
    "QueryContext",
    "ShutdownController",
    "ShutdownError",
    "ShutdownOptions",
    "ShutdownState",
    "check_database_health",
    "create_executor",
    "create_executor_sync",
    "create_shutdown_controller",
    "get_raw_connection",
    "graceful_shutdown",
    "intercepts",
    "is_executor",
    "resolve_plugin_order",
    "validate_plugins",
]
