"""The plugin-aware executor: a connection handle whose queries run through plugin hooks."""

import asyncio
import functools
import inspect
import logging
from abc import ABC, abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from pydantic import BaseModel, Field

from hookdb.core.interceptor import InterceptorChain, build_chains
from hookdb.core.resolver import resolve_plugin_order
from hookdb.errors import PluginInitializationError, ShutdownError
from hookdb.plugins.base import PluginCapabilities, collect_capabilities
from hookdb.shutdown import DEFAULT_SHUTDOWN_TIMEOUT_MS, ShutdownController, ShutdownOptions
from hookdb.types import QueryContext
from hookdb.utils.asyncio import has_event_loop

if TYPE_CHECKING:
    from hookdb.config import HookDBConfig

logger = logging.getLogger(__name__)

# Strong references to rollback teardowns scheduled from sync code
_background_tasks: Set[asyncio.Task] = set()


class ExecutorConfig(BaseModel):
    """Executor configuration."""

    enabled: bool = Field(default=True, description="Run plugin hooks on intercepted calls")
    shutdown_timeout_ms: int = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT_MS, gt=0, description="Default deadline for destroy()"
    )

    @classmethod
    def from_config(cls, config: "HookDBConfig") -> "ExecutorConfig":
        """Build from the ``executor`` and ``shutdown`` sections of hookdb.toml."""
        return cls(
            enabled=config.executor.enabled,
            shutdown_timeout_ms=config.shutdown.timeout_ms,
        )


async def _execute_query(query: Any) -> Any:
    return await query.execute()


class InterceptedQuery:
    """A builder whose ``execute()`` runs through the plugin chain.

    Builder methods are forwarded to the wrapped query; any that return a
    new builder return it wrapped again, so chained calls such as
    ``executor.select("users").where("id", "=", 1)`` stay intercepted.
    """

    def __init__(self, query: Any, executor: "BaseExecutor", chain: InterceptorChain):
        self._query = query
        self._executor = executor
        self._chain = chain

    @property
    def query(self) -> Any:
        """The underlying, unintercepted builder."""
        return self._query

    @property
    def operation(self) -> str:
        return self._chain.method

    @property
    def table(self) -> Optional[str]:
        return getattr(self._query, "table", None)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        attr = getattr(self._query, name)
        if not callable(attr):
            return attr

        @functools.wraps(attr)
        def builder_method(*args, **kwargs):
            result = attr(*args, **kwargs)
            if callable(getattr(result, "execute", None)):
                return InterceptedQuery(result, self._executor, self._chain)
            return result

        return builder_method

    async def execute(self) -> Any:
        self._executor._check_usable()
        context = QueryContext(
            operation=self.operation,
            table=self.table,
            in_transaction=self._executor.in_transaction,
            executor=self._executor,
        )
        return await self._chain.run(self._query, context, _execute_query)

    async def first(self) -> Any:
        rows = await self.limit(1).execute()
        return rows[0] if rows else None

    def __repr__(self) -> str:
        return f"<InterceptedQuery {self.operation} {self._query!r}>"


class BaseExecutor(ABC):
    """Behavior shared by the executor and its transaction handles."""

    in_transaction = False

    def __init__(
        self,
        connection: Any,
        plugins: Sequence[Any],
        chains: Mapping[str, InterceptorChain],
        config: ExecutorConfig,
    ):
        self._connection = connection
        self._plugins: Tuple[Any, ...] = tuple(plugins)
        self._chains = chains
        self._config = config

    @property
    def plugins(self) -> Tuple[Any, ...]:
        """Plugins in resolved execution order."""
        return self._plugins

    @property
    def raw(self) -> Any:
        """The unwrapped connection. Queries built on it bypass every plugin."""
        return self._connection

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    def get_plugin(self, name: str) -> Optional[Any]:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def get_metrics(self) -> Optional[List[Any]]:
        """Collect query metrics from metrics-capable plugins.

        Falls back to the connection's own ``get_metrics()``. Returns None when
        nothing records metrics.
        """
        sources = [p for p in self._plugins if callable(getattr(p, "get_metrics", None))]
        if sources:
            metrics: List[Any] = []
            for plugin in sources:
                metrics.extend(plugin.get_metrics())
            return metrics

        getter = getattr(self._connection, "get_metrics", None)
        if callable(getter):
            return getter()
        return None

    @abstractmethod
    def _check_usable(self) -> None:
        """Raise RuntimeError if the handle can no longer run queries."""

    def _intercept(self, method: str, table: str) -> Any:
        self._check_usable()
        query = getattr(self._connection, method)(table)
        if not self._config.enabled:
            return query
        return InterceptedQuery(query, self, self._chains[method])

    def select(self, table: str) -> Any:
        return self._intercept("select", table)

    def insert(self, table: str) -> Any:
        return self._intercept("insert", table)

    def update(self, table: str) -> Any:
        return self._intercept("update", table)

    def delete(self, table: str) -> Any:
        return self._intercept("delete", table)

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not defined here
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._connection, name)


class TransactionExecutor(BaseExecutor):
    """Executor handle bound to one open transaction.

    Shares the parent's plugins and chains. It stops working as soon as the
    transaction callback returns.
    """

    in_transaction = True

    def __init__(self, parent: "Executor", connection: Any):
        super().__init__(connection, parent.plugins, parent._chains, parent.config)
        self._parent = parent
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def _invalidate(self) -> None:
        self._active = False

    def _check_usable(self) -> None:
        if not self._active:
            raise RuntimeError("Transaction has already finished")
        self._parent._check_usable()

    async def transaction(self, work: Callable[[Any], Awaitable[Any]]) -> Any:
        raise RuntimeError("Nested transactions are not supported")

    def __repr__(self) -> str:
        state = "active" if self._active else "finished"
        return f"<TransactionExecutor {state} plugins={[p.name for p in self._plugins]}>"


class Executor(BaseExecutor):
    """A connection wrapped with an ordered, validated set of plugins.

    Build one with ``create_executor`` or ``create_executor_sync``.

    Example:
        executor = await create_executor(DatabaseConnection("app.db"), [SoftDeletePlugin()])
        rows = await executor.select("posts").where("author_id", "=", 1).execute()
        await executor.destroy()
    """

    def __init__(
        self,
        connection: Any,
        plugins: Sequence[Any] = (),
        capabilities: Sequence[PluginCapabilities] = (),
        config: Optional[ExecutorConfig] = None,
    ):
        self._capabilities: Tuple[PluginCapabilities, ...] = tuple(capabilities)
        super().__init__(
            connection, plugins, build_chains(self._capabilities), config or ExecutorConfig()
        )
        self._destroyed = False
        self._shutdown: Optional[ShutdownController] = None

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def _check_usable(self) -> None:
        if self._destroyed:
            raise RuntimeError("Executor has been destroyed")

    async def transaction(self, work: Callable[[Any], Awaitable[Any]]) -> Any:
        """Run ``work(trx)`` inside a transaction.

        ``trx`` is a TransactionExecutor carrying the same plugins. The
        transaction commits when ``work`` returns and rolls back when it
        raises, following the connection's own semantics.
        """
        self._check_usable()

        async def run_in_transaction(work_fn: Callable[[Any], Any]) -> Any:
            async with self._connection.transaction() as trx_connection:
                trx = TransactionExecutor(self, trx_connection)
                try:
                    result = work_fn(trx)
                    if inspect.isawaitable(result):
                        result = await result
                    return result
                finally:
                    trx._invalidate()

        if not self._config.enabled:
            return await run_in_transaction(work)

        context = QueryContext(operation="transaction", executor=self)
        return await self._chains["transaction"].run(work, context, run_in_transaction)

    async def destroy(self, timeout_ms: Optional[int] = None) -> None:
        """Tear down plugins in reverse order, then close the connection.

        Only the first call does the work; later calls wait for the same
        outcome. Intercepted calls fail from the moment this is called.

        If any plugin's on_destroy fails, every other plugin is still torn
        down but the connection is left open, and later calls re-raise the
        same error. Close it yourself with ``await executor.raw.destroy()``.

        Args:
            timeout_ms: Deadline for the whole teardown (default:
                ``config.shutdown_timeout_ms``)

        Raises:
            ShutdownError: If a plugin's on_destroy fails, closing fails, or
                the timeout passes
        """
        if self._shutdown is None:
            self._destroyed = True
            self._shutdown = ShutdownController(
                self._connection,
                ShutdownOptions(
                    timeout_ms=timeout_ms or self._config.shutdown_timeout_ms,
                    on_shutdown=self._destroy_plugins,
                ),
            )
        await self._shutdown.execute()

    async def _destroy_plugins(self) -> None:
        if not self._config.enabled:
            return

        errors: List[BaseException] = []
        failed: List[str] = []
        for caps in reversed(self._capabilities):
            if caps.on_destroy is None:
                continue
            try:
                outcome = caps.on_destroy()
                if inspect.isawaitable(outcome):
                    await outcome
                logger.debug(f"Destroyed plugin: {caps.name}")
            except Exception as e:
                logger.error(f"Plugin {caps.name} failed to shut down: {e}")
                errors.append(e)
                failed.append(caps.name)

        if errors:
            raise ShutdownError(
                f"{len(errors)} plugin(s) failed to shut down: {', '.join(failed)}", errors
            )

    def __repr__(self) -> str:
        return f"<Executor plugins={[p.name for p in self._plugins]} destroyed={self._destroyed}>"


def is_executor(obj: Any) -> bool:
    """True for executors and their transaction handles."""
    return isinstance(obj, BaseExecutor)


def get_raw_connection(obj: Any) -> Any:
    """Return the connection under an executor, or ``obj`` itself if it isn't one."""
    if isinstance(obj, BaseExecutor):
        return obj.raw
    return obj


def _prepare(
    connection: Any, plugins: Iterable[Any], config: Optional[ExecutorConfig]
) -> Tuple[Executor, Tuple[PluginCapabilities, ...]]:
    config = config or ExecutorConfig()
    if not config.enabled:
        logger.debug("Plugin execution disabled; returning a pass-through executor")
        return Executor(connection, config=config), ()

    ordered = resolve_plugin_order(list(plugins))
    capabilities = tuple(collect_capabilities(p) for p in ordered)
    executor = Executor(connection, ordered, capabilities, config)
    logger.debug(f"Resolved plugin order: {[p.name for p in ordered]}")
    return executor, capabilities


def _init_failure(
    caps: PluginCapabilities, error: BaseException, rollback_errors: List[BaseException]
) -> PluginInitializationError:
    return PluginInitializationError(
        f'Plugin "{caps.name}" failed to initialize: {error}', caps.name, rollback_errors
    )


async def _rollback(initialized: Sequence[PluginCapabilities]) -> List[BaseException]:
    errors: List[BaseException] = []
    for caps in reversed(initialized):
        if caps.on_destroy is None:
            continue
        try:
            outcome = caps.on_destroy()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Rollback of plugin {caps.name} failed: {e}")
            errors.append(e)
    return errors


async def create_executor(
    connection: Any, plugins: Iterable[Any] = (), config: Optional[ExecutorConfig] = None
) -> Executor:
    """Validate, order and initialize plugins, and wrap the connection.

    ``on_init`` runs for each plugin in resolved order. If one fails, every
    plugin initialized before it is destroyed in reverse order and the
    failure is raised.

    Raises:
        PluginValidationError: If the plugin set is invalid
        PluginInitializationError: If a plugin's on_init fails
    """
    executor, capabilities = _prepare(connection, plugins, config)

    initialized: List[PluginCapabilities] = []
    for caps in capabilities:
        if caps.on_init is not None:
            try:
                outcome = caps.on_init(executor)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Plugin {caps.name} failed to initialize: {e}")
                rollback_errors = await _rollback(initialized)
                raise _init_failure(caps, e, rollback_errors) from e
            logger.debug(f"Initialized plugin: {caps.name}")
        initialized.append(caps)

    return executor


async def _await_outcome(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _log_background_teardown(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Rollback teardown failed: {exc}")


def _rollback_sync(initialized: Sequence[PluginCapabilities]) -> List[BaseException]:
    errors: List[BaseException] = []
    for caps in reversed(initialized):
        if caps.on_destroy is None:
            continue
        try:
            outcome = caps.on_destroy()
            if inspect.isawaitable(outcome):
                if has_event_loop():
                    # Can't block a running loop; finish the teardown in the background
                    task = asyncio.ensure_future(outcome)
                    _background_tasks.add(task)
                    task.add_done_callback(_log_background_teardown)
                else:
                    asyncio.run(_await_outcome(outcome))
        except Exception as e:
            logger.error(f"Rollback of plugin {caps.name} failed: {e}")
            errors.append(e)
    return errors


def create_executor_sync(
    connection: Any, plugins: Iterable[Any] = (), config: Optional[ExecutorConfig] = None
) -> Executor:
    """Synchronous ``create_executor`` for plugins whose on_init is synchronous.

    Raises:
        PluginValidationError: If the plugin set is invalid
        PluginInitializationError: If any plugin has an async on_init (checked
            before anything is initialized), or a plugin's on_init fails
    """
    executor, capabilities = _prepare(connection, plugins, config)

    for caps in capabilities:
        if caps.has_async_init:
            raise PluginInitializationError(
                f'Plugin "{caps.name}" has an async on_init; use create_executor() instead',
                caps.name,
            )

    initialized: List[PluginCapabilities] = []
    for caps in capabilities:
        if caps.on_init is not None:
            try:
                outcome = caps.on_init(executor)
                if inspect.isawaitable(outcome):
                    if inspect.iscoroutine(outcome):
                        outcome.close()
                    raise TypeError("on_init returned an awaitable; use create_executor() instead")
            except Exception as e:
                logger.error(f"Plugin {caps.name} failed to initialize: {e}")
                rollback_errors = _rollback_sync(initialized)
                raise _init_failure(caps, e, rollback_errors) from e
            logger.debug(f"Initialized plugin: {caps.name}")
        initialized.append(caps)

    return executor
