"""Tests for hookdb.toml configuration."""

import asyncio

import pytest
import toml
from pydantic import ValidationError

from hookdb.config import Config, HealthSettings, HookDBConfig
from hookdb.core.executor import ExecutorConfig, create_executor
from hookdb.errors import ShutdownError
from hookdb.health.check import HealthCheckOptions
from hookdb.health.monitor import HealthMonitor
from hookdb.plugins.base import Plugin
from hookdb.shutdown import ShutdownOptions


class TestConfig:
    """Test Config class."""

    def test_defaults(self):
        config = HookDBConfig()

        assert config.executor.enabled is True
        assert config.health.timeout_ms == 5000
        assert config.health.interval_ms == 30000
        assert config.shutdown.timeout_ms == 30000
        assert config.shutdown.signals == ("SIGTERM", "SIGINT")

    def test_init_writes_file(self, temp_dir):
        """Test initializing a new config file."""
        config = Config(temp_dir)
        assert not config.exists

        config.init()

        assert config.exists
        with open(config.config_path) as f:
            data = toml.load(f)
        assert data["executor"]["enabled"] is True
        assert data["health"]["timeout_ms"] == 5000

    def test_init_twice_fails(self, temp_dir):
        config = Config(temp_dir)
        config.init()

        with pytest.raises(FileExistsError):
            config.init()

    def test_load_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            Config(temp_dir).load()

    def test_load_or_default_without_file(self, temp_dir):
        settings = Config(temp_dir).load_or_default()
        assert settings == HookDBConfig()

    def test_save_and_load(self, temp_dir):
        """Test saving and loading configuration."""
        config = Config(temp_dir)
        settings = HookDBConfig(health=HealthSettings(timeout_ms=1500, interval_ms=10000))
        config.save(settings)

        loaded = Config(temp_dir).load()

        assert loaded.health.timeout_ms == 1500
        assert loaded.health.interval_ms == 10000
        assert loaded.shutdown.signals == ("SIGTERM", "SIGINT")

    def test_extra_sections_preserved(self, temp_dir):
        (temp_dir / "hookdb.toml").write_text(
            "[executor]\nenabled = false\n\n[soft_delete]\ncolumn = \"removed_at\"\n"
        )

        settings = Config(temp_dir).load()

        assert settings.executor.enabled is False
        assert settings.model_extra["soft_delete"] == {"column": "removed_at"}

    def test_invalid_values_rejected(self, temp_dir):
        (temp_dir / "hookdb.toml").write_text("[health]\ntimeout_ms = 0\n")

        with pytest.raises(ValidationError):
            Config(temp_dir).load()

    def test_save_without_config(self, temp_dir):
        with pytest.raises(ValueError, match="No configuration"):
            Config(temp_dir).save()


class TestEnvironmentOverrides:
    """Test HOOKDB_* environment variables."""

    def test_project_dir_from_env(self, temp_dir, monkeypatch):
        monkeypatch.setenv("HOOKDB_PROJECT_DIR", str(temp_dir))

        config = Config()

        assert config.config_path == temp_dir / "hookdb.toml"

    def test_overrides_file_values(self, temp_dir, monkeypatch):
        Config(temp_dir).init()
        monkeypatch.setenv("HOOKDB_HEALTH_TIMEOUT_MS", "250")
        monkeypatch.setenv("HOOKDB_SHUTDOWN_TIMEOUT_MS", "1000")
        monkeypatch.setenv("HOOKDB_EXECUTOR_ENABLED", "off")

        settings = Config(temp_dir).load()

        assert settings.health.timeout_ms == 250
        assert settings.shutdown.timeout_ms == 1000
        assert settings.executor.enabled is False

    def test_overrides_apply_without_file(self, temp_dir, monkeypatch):
        monkeypatch.setenv("HOOKDB_EXECUTOR_ENABLED", "false")

        assert Config(temp_dir).load_or_default().executor.enabled is False

    def test_invalid_boolean(self, temp_dir, monkeypatch):
        monkeypatch.setenv("HOOKDB_EXECUTOR_ENABLED", "maybe")

        with pytest.raises(ValueError, match="HOOKDB_EXECUTOR_ENABLED"):
            Config(temp_dir).load_or_default()


class StartupPlugin(Plugin):
    name = "startup"

    def __init__(self):
        self.started = False

    def on_init(self, executor):
        self.started = True


class StuckConnection:
    """Connection whose destroy() waits until released."""

    def __init__(self):
        self.release = asyncio.Event()

    async def destroy(self):
        await self.release.wait()


class TestSettingsWiring:
    """Test that loaded settings reach the components they configure."""

    @pytest.mark.asyncio
    async def test_executor_disabled_from_env(self, temp_dir, db, monkeypatch):
        monkeypatch.setenv("HOOKDB_EXECUTOR_ENABLED", "false")
        plugin = StartupPlugin()

        config = ExecutorConfig.from_config(Config(temp_dir).load_or_default())
        executor = await create_executor(db, [plugin], config)

        assert not plugin.started
        assert executor.plugins == ()

    @pytest.mark.asyncio
    async def test_executor_destroy_uses_shutdown_timeout(self, temp_dir, monkeypatch):
        monkeypatch.setenv("HOOKDB_SHUTDOWN_TIMEOUT_MS", "50")
        connection = StuckConnection()

        config = ExecutorConfig.from_config(Config(temp_dir).load_or_default())
        executor = await create_executor(connection, [], config)

        try:
            with pytest.raises(ShutdownError, match="Shutdown timeout after 50ms"):
                await executor.destroy()
        finally:
            connection.release.set()
            await asyncio.sleep(0.01)

    def test_shutdown_options_from_config(self, temp_dir):
        (temp_dir / "hookdb.toml").write_text(
            '[shutdown]\ntimeout_ms = 2500\nsignals = ["SIGTERM"]\n'
        )

        def on_shutdown():
            pass

        options = ShutdownOptions.from_config(Config(temp_dir).load(), on_shutdown=on_shutdown)

        assert options.timeout_ms == 2500
        assert options.signals == ("SIGTERM",)
        assert options.on_shutdown is on_shutdown

    def test_shutdown_options_reject_unknown_signal(self, temp_dir):
        (temp_dir / "hookdb.toml").write_text('[shutdown]\nsignals = ["SIGNOPE"]\n')

        with pytest.raises(ValidationError):
            ShutdownOptions.from_config(Config(temp_dir).load())

    def test_health_options_from_config(self, temp_dir, monkeypatch):
        (temp_dir / "hookdb.toml").write_text(
            "[health]\ndegraded_latency_ms = 20\nunhealthy_latency_ms = 80\n"
        )
        monkeypatch.setenv("HOOKDB_HEALTH_TIMEOUT_MS", "750")

        options = HealthCheckOptions.from_config(Config(temp_dir).load(), verbose=True)

        assert options.timeout_ms == 750
        assert options.degraded_latency_ms == 20
        assert options.unhealthy_latency_ms == 80
        assert options.verbose

    def test_health_monitor_from_config(self, temp_dir):
        (temp_dir / "hookdb.toml").write_text("[health]\ninterval_ms = 1000\ntimeout_ms = 300\n")

        monitor = HealthMonitor.from_config(object(), Config(temp_dir).load())

        assert monitor.interval_ms == 1000
        assert monitor.options.timeout_ms == 300
        assert not monitor.is_running
