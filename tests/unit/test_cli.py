"""Tests for the hookdb CLI."""

import json

import pytest
from typer.testing import CliRunner

from hookdb import __version__
from hookdb.cli.main import app
from hookdb.health.types import HealthCheck, HealthCheckResult, HealthStatus

runner = CliRunner()


@pytest.fixture
def project_dir(temp_dir, monkeypatch):
    """Point config lookups at an empty project directory."""
    monkeypatch.setenv("HOOKDB_PROJECT_DIR", str(temp_dir))
    return temp_dir


class TestHealthCommand:
    """Test the health command."""

    def test_healthy_database(self, db, project_dir):
        result = runner.invoke(app, ["health", str(db.path)])

        assert result.exit_code == 0
        assert "Health:" in result.stdout
        assert "Database Connection" in result.stdout

    def test_json_output(self, db, project_dir):
        result = runner.invoke(app, ["health", str(db.path), "--format", "json", "--verbose"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] in ("healthy", "degraded")
        assert data["metrics"]["database_version"].startswith("SQLite ")

    def test_missing_database(self, temp_dir, project_dir):
        result = runner.invoke(app, ["health", str(temp_dir / "missing.db")])

        assert result.exit_code == 1
        assert "Database file not found" in result.stdout

    def test_unhealthy_exits_nonzero(self, db, project_dir, monkeypatch):
        seen = {}

        async def unhealthy(connection, options):
            seen["timeout_ms"] = options.timeout_ms
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                checks=(
                    HealthCheck(
                        name="Database Connection",
                        status=HealthStatus.UNHEALTHY,
                        message="Health check timed out after 75ms",
                    ),
                ),
                errors=("Health check timed out after 75ms",),
            )

        monkeypatch.setattr("hookdb.cli.main.check_database_health", unhealthy)

        result = runner.invoke(app, ["health", str(db.path), "-t", "75"])

        assert result.exit_code == 1
        assert seen["timeout_ms"] == 75
        assert "timed out" in result.stdout

    def test_timeout_from_config(self, db, project_dir, monkeypatch):
        (project_dir / "hookdb.toml").write_text("[health]\ntimeout_ms = 1234\n")
        seen = {}

        async def record(connection, options):
            seen["timeout_ms"] = options.timeout_ms
            return HealthCheckResult(status=HealthStatus.HEALTHY, checks=())

        monkeypatch.setattr("hookdb.cli.main.check_database_health", record)

        result = runner.invoke(app, ["health", str(db.path)])

        assert result.exit_code == 0
        assert seen["timeout_ms"] == 1234


class TestPluginsCommand:
    """Test the plugins command."""

    def test_shows_execution_order(self):
        result = runner.invoke(
            app,
            ["plugins", "-m", "hookdb.plugins.soft_delete", "-m", "hookdb.plugins.metrics"],
        )

        assert result.exit_code == 0
        assert "Plugin execution order" in result.stdout
        # metrics has the lowest priority, so it runs first
        assert result.stdout.index("metrics") < result.stdout.index("soft_delete")

    def test_no_plugins(self):
        result = runner.invoke(app, ["plugins"])

        assert result.exit_code == 0
        assert "No plugins found" in result.stdout

    def test_missing_dependency_fails(self, temp_dir):
        (temp_dir / "needy.py").write_text(
            "from hookdb.plugins import Plugin\n"
            "\n"
            "class NeedyPlugin(Plugin):\n"
            "    name = 'needy'\n"
            "    depends_on = ('absent',)\n"
        )

        result = runner.invoke(app, ["plugins", "--dir", str(temp_dir)])

        assert result.exit_code == 1
        assert "absent" in result.stdout


class TestConfigCommands:
    """Test config subcommands."""

    def test_init_and_show(self, temp_dir):
        result = runner.invoke(app, ["config", "init", str(temp_dir)])
        assert result.exit_code == 0
        assert "Created" in result.stdout
        assert (temp_dir / "hookdb.toml").exists()

        result = runner.invoke(app, ["config", "show", str(temp_dir)])
        assert result.exit_code == 0
        assert "health.timeout_ms" in result.stdout

    def test_init_twice(self, temp_dir):
        runner.invoke(app, ["config", "init", str(temp_dir)])
        result = runner.invoke(app, ["config", "init", str(temp_dir)])

        assert result.exit_code == 1
        assert "already exists" in result.stdout

    def test_show_json_with_env_override(self, temp_dir, monkeypatch):
        monkeypatch.setenv("HOOKDB_EXECUTOR_ENABLED", "0")

        result = runner.invoke(app, ["config", "show", str(temp_dir), "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["executor"]["enabled"] is False


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout
