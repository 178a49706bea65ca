"""Dialect adapters: identifier handling and error classification.

The executor core never calls these directly. Plugins and the reference
connection use them, and errors they classify pass through the core
unchanged.
"""

import re
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional


# Table/column names: letters, digits and underscore, must start with a letter
# or underscore. Optional "schema." prefix.
VALID_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MAX_IDENTIFIER_LENGTH = 63


class InvalidIdentifierError(ValueError):
    """Raised when an identifier doesn't meet validation requirements."""

    pass


def validate_identifier(identifier: str, kind: str = "identifier") -> None:
    """Validate a table or column name before it is placed in SQL.

    Valid identifiers:
    - Contain only letters, digits and underscore
    - Start with a letter or underscore
    - Do not exceed 63 characters
    - May carry one ``schema.`` qualifier

    Args:
        identifier: The name to validate
        kind: What the name refers to, for error messages

    Raises:
        InvalidIdentifierError: If the name is invalid
    """
    if not identifier:
        raise InvalidIdentifierError(f"{kind.capitalize()} name cannot be empty")

    if "\x00" in identifier or any(ord(c) < 32 for c in identifier):
        raise InvalidIdentifierError(
            f"{kind.capitalize()} name contains invalid control characters"
        )

    parts = identifier.split(".")
    if len(parts) > 2:
        raise InvalidIdentifierError(
            f"Invalid {kind} name '{identifier}': at most one schema qualifier is allowed"
        )

    for part in parts:
        if len(part) > MAX_IDENTIFIER_LENGTH:
            raise InvalidIdentifierError(
                f"{kind.capitalize()} name cannot exceed {MAX_IDENTIFIER_LENGTH} characters"
            )
        if not VALID_IDENTIFIER_PATTERN.match(part):
            raise InvalidIdentifierError(
                f"Invalid {kind} name '{identifier}'. "
                f"Names must contain only letters, numbers and underscore (_) "
                f"and must not start with a number."
            )


def _error_text(error: BaseException) -> str:
    return str(error).lower()


class DialectAdapter(ABC):
    """Per-database capabilities consumed by plugins."""

    dialect: str = "unknown"

    def validate_identifier(self, identifier: str, kind: str = "identifier") -> None:
        validate_identifier(identifier, kind)

    @abstractmethod
    def escape_identifier(self, identifier: str) -> str:
        """Quote an identifier for this dialect."""

    @abstractmethod
    def current_timestamp_sql(self) -> str:
        """SQL expression for the current timestamp."""

    def format_datetime(self, value: datetime) -> str:
        return value.isoformat()

    @abstractmethod
    def is_unique_constraint_error(self, error: BaseException) -> bool:
        """True if the error is a unique constraint violation."""

    @abstractmethod
    def is_foreign_key_error(self, error: BaseException) -> bool:
        """True if the error is a foreign key violation."""

    @abstractmethod
    def is_not_null_error(self, error: BaseException) -> bool:
        """True if the error is a not-null violation."""


class SQLiteAdapter(DialectAdapter):
    """Adapter for SQLite via the ``sqlite3`` module."""

    dialect = "sqlite"

    def escape_identifier(self, identifier: str) -> str:
        self.validate_identifier(identifier)
        return ".".join('"' + part.replace('"', '""') + '"' for part in identifier.split("."))

    def current_timestamp_sql(self) -> str:
        return "datetime('now')"

    def is_unique_constraint_error(self, error: BaseException) -> bool:
        return isinstance(error, sqlite3.IntegrityError) and (
            "unique constraint failed" in _error_text(error)
            or "primary key must be unique" in _error_text(error)
        )

    def is_foreign_key_error(self, error: BaseException) -> bool:
        return isinstance(error, sqlite3.IntegrityError) and (
            "foreign key constraint failed" in _error_text(error)
        )

    def is_not_null_error(self, error: BaseException) -> bool:
        return isinstance(error, sqlite3.IntegrityError) and (
            "not null constraint failed" in _error_text(error)
        )


def get_adapter(dialect: Optional[str] = None) -> DialectAdapter:
    """Get the adapter for a dialect name (default: sqlite)."""
    name = (dialect or "sqlite").lower()
    if name in ("sqlite", "sqlite3"):
        return SQLiteAdapter()
    raise ValueError(f"Unsupported dialect: {dialect}")
