"""Core functionality for hookdb."""

from hookdb.core.connection import DatabaseConnection, TransactionConnection
from hookdb.core.executor import (
    Executor,
    ExecutorConfig,
    InterceptedQuery,
    TransactionExecutor,
    create_executor,
    create_executor_sync,
    get_raw_connection,
    is_executor,
)
from hookdb.core.interceptor import InterceptorChain
from hookdb.core.resolver import resolve_plugin_order, validate_plugins

__all__ = [
    "DatabaseConnection",
    "Executor",
    "ExecutorConfig",
    "InterceptedQuery",
    "InterceptorChain",
    "TransactionConnection",
    "TransactionExecutor",
    "create_executor",
    "create_executor_sync",
    "get_raw_connection",
    "is_executor",
    "resolve_plugin_order",
    "validate_plugins",
]
