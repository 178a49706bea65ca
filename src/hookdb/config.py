"""Configuration management for hookdb projects."""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import toml
from pydantic import BaseModel, ConfigDict, Field

from hookdb.shutdown import DEFAULT_SHUTDOWN_TIMEOUT_MS, DEFAULT_SIGNALS

CONFIG_FILENAME = "hookdb.toml"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ExecutorSettings(BaseModel):
    """Executor settings."""

    enabled: bool = Field(default=True, description="Run plugin hooks on intercepted calls")


class HealthSettings(BaseModel):
    """Health check and monitor settings."""

    timeout_ms: int = Field(default=5000, gt=0, description="Deadline for one health check")
    interval_ms: int = Field(default=30000, gt=0, description="Interval between monitor checks")
    degraded_latency_ms: float = Field(default=100, ge=0)
    unhealthy_latency_ms: float = Field(default=500, ge=0)
    slow_query_threshold_ms: float = Field(default=100, ge=0)


class ShutdownSettings(BaseModel):
    """Graceful shutdown settings."""

    timeout_ms: int = Field(default=DEFAULT_SHUTDOWN_TIMEOUT_MS, gt=0)
    signals: Tuple[str, ...] = Field(default=DEFAULT_SIGNALS)


class HookDBConfig(BaseModel):
    """Configuration stored in hookdb.toml."""

    model_config = ConfigDict(
        extra="allow"
    )  # Allow additional fields for plugin settings

    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    shutdown: ShutdownSettings = Field(default_factory=ShutdownSettings)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


class Config:
    """Manages hookdb project configuration."""

    def __init__(self, project_dir: Optional[Path] = None):
        """Initialize config manager.

        Args:
            project_dir: Path to project directory. If None, uses HOOKDB_PROJECT_DIR env var or current directory.
        """
        # Check environment variable first
        if project_dir is None:
            env_dir = os.environ.get("HOOKDB_PROJECT_DIR")
            if env_dir:
                project_dir = Path(env_dir)

        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.config_path = self.project_dir / CONFIG_FILENAME
        self._config: Optional[HookDBConfig] = None

    @property
    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def load(self) -> HookDBConfig:
        """Load configuration from disk, with environment variable overrides."""
        if not self.exists:
            raise FileNotFoundError(f"Config file not found at {self.config_path}")

        with open(self.config_path, "r") as f:
            data = toml.load(f)

        self._apply_env_overrides(data)
        self._config = HookDBConfig(**data)
        return self._config

    def load_or_default(self) -> HookDBConfig:
        """Load configuration, or use defaults (still env-overridden) when there is no file."""
        if self.exists:
            return self.load()

        data: Dict[str, Any] = {}
        self._apply_env_overrides(data)
        self._config = HookDBConfig(**data)
        return self._config

    def _apply_env_overrides(self, data: Dict[str, Any]) -> None:
        """Apply environment variable overrides to configuration data."""
        if env_timeout := os.environ.get("HOOKDB_HEALTH_TIMEOUT_MS"):
            data.setdefault("health", {})["timeout_ms"] = int(env_timeout)

        if env_shutdown := os.environ.get("HOOKDB_SHUTDOWN_TIMEOUT_MS"):
            data.setdefault("shutdown", {})["timeout_ms"] = int(env_shutdown)

        if env_enabled := os.environ.get("HOOKDB_EXECUTOR_ENABLED"):
            data.setdefault("executor", {})["enabled"] = _parse_bool(
                "HOOKDB_EXECUTOR_ENABLED", env_enabled
            )

    def save(self, config: Optional[HookDBConfig] = None) -> None:
        """Save configuration to disk.

        Args:
            config: Configuration to save. If None, saves current config.
        """
        if config:
            self._config = config

        if not self._config:
            raise ValueError("No configuration to save")

        self.project_dir.mkdir(parents=True, exist_ok=True)

        config_dict = self._config.model_dump(mode="json")
        with open(self.config_path, "w") as f:
            toml.dump(config_dict, f)

    def init(self) -> HookDBConfig:
        """Write a default hookdb.toml.

        Raises:
            FileExistsError: If the project already has one
        """
        if self.exists:
            raise FileExistsError(f"Config file already exists at {self.config_path}")

        config = HookDBConfig()
        self.save(config)
        return config
