"""Root API router: probes for the activity logger and the versioned module mount."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from activity_logger import __version__
from activity_logger.api.dependencies import Cache, SessionFactory
from activity_logger.config import settings
from activity_logger.modules import discover_modules


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    """Overall status plus one entry per backing service (``ok`` or the error text)."""

    status: str
    checks: dict[str, str]


api_router = APIRouter()

# Probes live at the root, outside /api/v1
health_router = APIRouter(tags=["health"])


@health_router.get(
    "/health/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Returns 200 while the process can serve requests.",
)
async def liveness() -> HealthResponse:
    return HealthResponse(status="alive")


@health_router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Checks the event store database and the Redis cache. "
    "Returns 503 when either is unreachable.",
)
async def readiness(session_factory: SessionFactory, cache: Cache) -> JSONResponse:
    """Report whether the event store and its cache can be reached.

    Reads still work with Redis down (they bypass the cache), but the
    service is reported as degraded.
    """
    checks: dict[str, str] = {}

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        checks["database"] = str(e)

    try:
        await cache.ping()
        checks["redis"] = "ok"
    except (RedisError, OSError) as e:
        checks["redis"] = str(e)

    healthy = all(result == "ok" for result in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if healthy else "degraded", "checks": checks},
    )


@health_router.get(
    "/info",
    summary="Service info",
    description="Name, release and environment of the activity logger.",
)
async def info() -> dict[str, Any]:
    return {
        "app": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "debug": settings.debug,
    }


v1_router = APIRouter(prefix="/api/v1")

for module_router in discover_modules():
    v1_router.include_router(module_router)

api_router.include_router(health_router)
api_router.include_router(v1_router)
