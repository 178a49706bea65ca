"""Graceful shutdown for database connections and executors."""

import asyncio
import inspect
import logging
import signal
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hookdb.errors import ShutdownError
from hookdb.utils.asyncio import DeadlineExceeded, wait_or_abandon

if TYPE_CHECKING:
    from hookdb.config import HookDBConfig

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT_MS = 30000
DEFAULT_SIGNALS = ("SIGTERM", "SIGINT")


class ShutdownState(str, Enum):
    """Lifecycle of a single shutdown controller."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ShutdownOptions(BaseModel):
    """Options for graceful shutdown."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    timeout_ms: int = Field(default=DEFAULT_SHUTDOWN_TIMEOUT_MS, gt=0)
    on_shutdown: Optional[Callable[[], Any]] = Field(
        default=None, description="Called before the connection is closed; may be async"
    )
    logger: Optional[Any] = Field(default=None, description="Logger with debug/info/warning/error")
    signals: Tuple[str, ...] = DEFAULT_SIGNALS

    @field_validator("signals")
    @classmethod
    def validate_signals(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for name in v:
            if not isinstance(getattr(signal, name, None), signal.Signals):
                raise ValueError(f"Unknown signal: {name}")
        return v

    @classmethod
    def from_config(cls, config: "HookDBConfig", **overrides: Any) -> "ShutdownOptions":
        """Build from the ``shutdown`` section of hookdb.toml.

        Keyword arguments set the fields the file has no say in
        (``on_shutdown``, ``logger``) or override it.
        """
        values = {"timeout_ms": config.shutdown.timeout_ms, "signals": config.shutdown.signals}
        values.update(overrides)
        return cls(**values)


async def close_connection(connection: Any) -> None:
    """Close a connection via ``destroy()``, falling back to ``close()``."""
    closer = getattr(connection, "destroy", None)
    if not callable(closer):
        closer = getattr(connection, "close", None)
    if not callable(closer):
        raise TypeError(f"{type(connection).__name__} has neither destroy() nor close()")

    outcome = closer()
    if inspect.isawaitable(outcome):
        await outcome


class ShutdownController:
    """Runs the shutdown sequence for one connection, exactly once.

    The sequence is ``on_shutdown`` followed by closing the connection,
    bounded by ``timeout_ms``. Every call to ``execute()``, concurrent or
    later, awaits the same run and sees the same outcome.

    Example:
        controller = ShutdownController(db, ShutdownOptions(timeout_ms=10000))
        controller.register_signals()
        ...
        await controller.execute()
    """

    def __init__(self, connection: Any, options: Optional[ShutdownOptions] = None):
        self.connection = connection
        self.options = options or ShutdownOptions()
        self.logger = self.options.logger or logger
        self._state = ShutdownState.NOT_STARTED
        self._task: Optional[asyncio.Task] = None
        self._signal_task: Optional[asyncio.Task] = None
        self._signals_registered = False

    @property
    def state(self) -> ShutdownState:
        return self._state

    def is_shutting_down(self) -> bool:
        """True once shutdown has started, including after it completed."""
        return self._state != ShutdownState.NOT_STARTED

    async def execute(self) -> None:
        """Run the shutdown sequence, or wait for the run already started.

        Raises:
            ShutdownError: If on_shutdown or closing fails, or the deadline passes
        """
        if self._task is None:
            self._state = ShutdownState.IN_PROGRESS
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name="hookdb-shutdown"
            )
        # A cancelled caller must not cancel the shared run
        await asyncio.shield(self._task)

    async def _run(self) -> None:
        timeout_ms = self.options.timeout_ms
        self.logger.info("Starting graceful shutdown")
        try:
            await wait_or_abandon(self._sequence(), timeout_ms, name="hookdb-shutdown-sequence")
        except DeadlineExceeded as e:
            message = f"Shutdown timeout after {timeout_ms}ms"
            self.logger.error(message)
            raise ShutdownError(message) from e
        except ShutdownError as e:
            self.logger.error(f"Error during database shutdown: {e}")
            raise
        except Exception as e:
            self.logger.error(f"Error during database shutdown: {e}")
            raise ShutdownError(f"Shutdown failed: {e}", [e]) from e
        else:
            self.logger.info("Database connections closed successfully")
        finally:
            self._state = ShutdownState.COMPLETED

    async def _sequence(self) -> None:
        on_shutdown = self.options.on_shutdown
        if on_shutdown is not None:
            self.logger.debug("Running shutdown handler")
            outcome = on_shutdown()
            if inspect.isawaitable(outcome):
                await outcome
        await close_connection(self.connection)

    def register_signals(self) -> None:
        """Run ``execute()`` when one of the configured signals arrives.

        Handlers are installed on the running loop once per controller. On
        platforms without loop signal handlers a warning is logged instead.
        """
        if self._signals_registered:
            return

        loop = asyncio.get_running_loop()
        installed = []
        for name in self.options.signals:
            sig = getattr(signal, name)
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                for done in installed:
                    loop.remove_signal_handler(done)
                self.logger.warning(
                    "Signal handlers are not available on this platform. "
                    "Call execute() to shut down manually."
                )
                return
            installed.append(sig)

        self._signals_registered = True
        self.logger.debug(f"Registered shutdown handlers for {', '.join(self.options.signals)}")

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self.is_shutting_down():
            return
        self.logger.info(f"Received {sig.name}, starting graceful shutdown")
        self._signal_task = asyncio.get_running_loop().create_task(self.execute())
        self._signal_task.add_done_callback(self._signal_shutdown_done)

    def _signal_shutdown_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Already logged by _run; nobody else awaits this task
            self.logger.debug(f"Signal-triggered shutdown failed: {exc!r}")


def create_shutdown_controller(connection: Any, **options: Any) -> ShutdownController:
    """Create a controller without registering signal handlers.

    Keyword arguments are ShutdownOptions fields.
    """
    return ShutdownController(connection, ShutdownOptions(**options))


async def graceful_shutdown(
    connection: Any,
    timeout_ms: int = DEFAULT_SHUTDOWN_TIMEOUT_MS,
    on_shutdown: Optional[Callable[[], Any]] = None,
    logger: Optional[Any] = None,
) -> None:
    """Close a connection with a deadline, after an optional shutdown handler.

    Raises:
        ShutdownError: If shutdown fails or takes longer than ``timeout_ms``
    """
    controller = create_shutdown_controller(
        connection, timeout_ms=timeout_ms, on_shutdown=on_shutdown, logger=logger
    )
    await controller.execute()


def register_shutdown_handlers(connection: Any, **options: Any) -> ShutdownController:
    """Create a controller and install its signal handlers on the running loop."""
    controller = create_shutdown_controller(connection, **options)
    controller.register_signals()
    return controller


async def shutdown_database(connection: Any) -> None:
    """Close a connection without a deadline or shutdown handler."""
    await close_connection(connection)
