"""Health router for hookdb-backed FastAPI applications."""

from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from hookdb.health.check import HealthCheckOptions, check_database_health
from hookdb.health.types import HealthStatus


def create_health_router(
    connection: Any, options: Optional[HealthCheckOptions] = None
) -> APIRouter:
    """Create a router exposing ``GET /health`` for a connection or executor.

    Responds 200 for healthy and degraded results and 503 for unhealthy ones.
    The body is the HealthCheckResult as JSON.

    Example:
        app = FastAPI()
        app.include_router(create_health_router(executor), prefix="/internal")
    """
    router = APIRouter()

    @router.get("/health")
    async def health():
        """Run a database health check."""
        result = await check_database_health(connection, options)
        status_code = 503 if result.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))

    return router
