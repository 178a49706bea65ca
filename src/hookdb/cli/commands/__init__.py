"""CLI command modules."""

from . import config

__all__ = ["config"]
