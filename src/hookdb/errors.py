"""Exception types raised by hookdb."""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class HookDBError(Exception):
    """Base class for all hookdb errors."""

    pass


class ValidationErrorType(str, Enum):
    """Reasons a plugin set can be rejected."""

    DUPLICATE_NAME = "DUPLICATE_NAME"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    CONFLICT = "CONFLICT"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    INVALID_HOOK = "INVALID_HOOK"


class PluginValidationError(HookDBError):
    """Raised when a plugin set is invalid (duplicates, missing deps, cycles)."""

    def __init__(
        self,
        message: str,
        error_type: ValidationErrorType,
        plugin_name: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.plugin_name = plugin_name
        self.details = details or {}


class PluginInitializationError(HookDBError):
    """Raised when a plugin's on_init fails during executor construction.

    Attributes:
        plugin_name: Name of the plugin whose on_init failed
        rollback_errors: Errors raised by on_destroy of already initialized
            plugins while rolling back
    """

    def __init__(
        self,
        message: str,
        plugin_name: str,
        rollback_errors: Optional[Sequence[BaseException]] = None,
    ):
        super().__init__(message)
        self.plugin_name = plugin_name
        self.rollback_errors: List[BaseException] = list(rollback_errors or [])


class InterceptionError(HookDBError):
    """Raised when a hook breaks the interception contract."""

    def __init__(self, message: str, plugin_name: str, operation: str):
        super().__init__(message)
        self.plugin_name = plugin_name
        self.operation = operation


class ShutdownError(HookDBError):
    """Raised when graceful shutdown fails or times out."""

    def __init__(self, message: str, errors: Optional[Sequence[BaseException]] = None):
        super().__init__(message)
        self.errors: List[BaseException] = list(errors or [])
