"""HTTP endpoints for hookdb."""

from hookdb.api.health import create_health_router

__all__ = ["create_health_router"]
