"""Tests for graceful shutdown."""

import asyncio
import signal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from hookdb.errors import ShutdownError
from hookdb.shutdown import (
    ShutdownController,
    ShutdownOptions,
    ShutdownState,
    create_shutdown_controller,
    graceful_shutdown,
    register_shutdown_handlers,
    shutdown_database,
)


class FakeConnection:
    """Records destroy() calls."""

    def __init__(self, delay=0.0, error=None, events=None):
        self.delay = delay
        self.error = error
        self.events = events if events is not None else []
        self.destroy_calls = 0

    async def destroy(self):
        self.destroy_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.events.append("destroy")


class HangingConnection:
    """destroy() blocks until the test releases it."""

    def __init__(self):
        self.release = asyncio.Event()
        self.destroy_started = False

    async def destroy(self):
        self.destroy_started = True
        await self.release.wait()


def live_timers(loop):
    """Timer handles still scheduled on the loop."""
    return [handle for handle in loop._scheduled if not handle.cancelled()]


class CloseOnlyConnection:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class TestShutdownController:
    """Test the exactly-once shutdown sequence."""

    @pytest.mark.asyncio
    async def test_runs_hook_then_destroy(self):
        events = []
        connection = FakeConnection(events=events)

        async def on_shutdown():
            events.append("hook")

        controller = create_shutdown_controller(connection, on_shutdown=on_shutdown)
        assert controller.state == ShutdownState.NOT_STARTED
        assert not controller.is_shutting_down()

        await controller.execute()

        assert events == ["hook", "destroy"]
        assert controller.state == ShutdownState.COMPLETED
        assert controller.is_shutting_down()

    @pytest.mark.asyncio
    async def test_concurrent_execute_destroys_once(self):
        connection = FakeConnection(delay=0.05)
        controller = ShutdownController(connection)

        await asyncio.gather(controller.execute(), controller.execute(), controller.execute())
        await controller.execute()

        assert connection.destroy_calls == 1

    @pytest.mark.asyncio
    async def test_in_progress_state(self):
        connection = FakeConnection(delay=0.05)
        controller = ShutdownController(connection)

        task = asyncio.ensure_future(controller.execute())
        await asyncio.sleep(0)

        assert controller.state == ShutdownState.IN_PROGRESS
        assert controller.is_shutting_down()

        await task
        assert controller.state == ShutdownState.COMPLETED

    @pytest.mark.asyncio
    async def test_timeout(self):
        logger = MagicMock()
        connection = FakeConnection(delay=0.3)
        controller = create_shutdown_controller(connection, timeout_ms=50, logger=logger)

        with pytest.raises(ShutdownError) as exc_info:
            await controller.execute()

        assert str(exc_info.value) == "Shutdown timeout after 50ms"
        assert controller.state == ShutdownState.COMPLETED
        logger.error.assert_called_with("Shutdown timeout after 50ms")

        # Abandoned, not cancelled: destroy still finishes in the background
        await asyncio.sleep(0.4)
        assert connection.events == ["destroy"]

    @pytest.mark.asyncio
    async def test_timeout_when_destroy_never_returns(self):
        connection = HangingConnection()
        controller = create_shutdown_controller(connection, timeout_ms=50)

        try:
            with pytest.raises(ShutdownError) as exc_info:
                await controller.execute()

            assert str(exc_info.value) == "Shutdown timeout after 50ms"
            assert controller.state == ShutdownState.COMPLETED
            assert connection.destroy_started
            assert live_timers(asyncio.get_running_loop()) == []
        finally:
            connection.release.set()
            await asyncio.sleep(0.01)

    @pytest.mark.asyncio
    async def test_hook_failure_aborts_before_destroy(self):
        logger = MagicMock()
        connection = FakeConnection()
        error = RuntimeError("flush failed")

        def on_shutdown():
            raise error

        controller = create_shutdown_controller(connection, on_shutdown=on_shutdown, logger=logger)

        with pytest.raises(ShutdownError) as exc_info:
            await controller.execute()

        assert exc_info.value.__cause__ is error
        assert exc_info.value.errors == [error]
        assert connection.destroy_calls == 0
        assert controller.state == ShutdownState.COMPLETED
        assert logger.error.called

    @pytest.mark.asyncio
    async def test_repeated_execute_sees_same_failure(self):
        connection = FakeConnection(error=OSError("socket closed"))
        controller = ShutdownController(connection)

        with pytest.raises(ShutdownError) as first:
            await controller.execute()
        with pytest.raises(ShutdownError) as second:
            await controller.execute()

        assert first.value is second.value
        assert connection.destroy_calls == 1

    @pytest.mark.asyncio
    async def test_close_fallback(self):
        connection = CloseOnlyConnection()
        await graceful_shutdown(connection)
        assert connection.closed

    @pytest.mark.asyncio
    async def test_connection_without_close(self):
        with pytest.raises(ShutdownError, match="neither destroy"):
            await graceful_shutdown(object())

    @pytest.mark.asyncio
    async def test_graceful_shutdown_with_real_database(self, db):
        await graceful_shutdown(db, timeout_ms=5000)
        assert not db.is_open

    @pytest.mark.asyncio
    async def test_shutdown_database(self, db):
        await shutdown_database(db)
        assert not db.is_open

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shutdown(self):
        connection = FakeConnection(delay=0.05)
        controller = ShutdownController(connection)

        first = asyncio.ensure_future(controller.execute())
        await asyncio.sleep(0)
        first.cancel()
        await controller.execute()

        assert connection.events == ["destroy"]

    def test_unknown_signal_rejected(self):
        with pytest.raises(ValidationError):
            ShutdownOptions(signals=("SIGNOPE",))


class TestRegisterSignals:
    """Test signal handler installation."""

    @pytest.mark.asyncio
    async def test_signal_triggers_shutdown(self, monkeypatch):
        loop = asyncio.get_running_loop()
        installed = {}

        def add_signal_handler(sig, callback, *args):
            installed[sig] = (callback, args)

        monkeypatch.setattr(loop, "add_signal_handler", add_signal_handler)

        connection = FakeConnection()
        controller = register_shutdown_handlers(connection)
        controller.register_signals()

        assert set(installed) == {signal.SIGTERM, signal.SIGINT}

        callback, args = installed[signal.SIGTERM]
        callback(*args)
        await controller._signal_task
        assert controller.state == ShutdownState.COMPLETED

        # A second signal doesn't start another shutdown
        callback(*args)
        assert connection.destroy_calls == 1

    @pytest.mark.asyncio
    async def test_unsupported_platform_logs_warning(self, monkeypatch):
        loop = asyncio.get_running_loop()

        def unsupported(sig, callback, *args):
            raise NotImplementedError

        monkeypatch.setattr(loop, "add_signal_handler", unsupported)
        logger = MagicMock()

        controller = create_shutdown_controller(FakeConnection(), logger=logger)
        controller.register_signals()

        logger.warning.assert_called_once()
        assert "execute()" in logger.warning.call_args[0][0]
