# groupsync/services/api/app.py
"""
FastAPI приложение groupsync.

Общие локации и статусы участников группы, события геозон.

Endpoints:
- POST /api/v1/groups - создать группу
- POST /api/v1/groups/{group_id}/join - вступить по коду
- GET /api/v1/groups/{group_id} - группа
- GET /api/v1/groups/{group_id}/members - участники
- POST /api/v1/groups/{group_id}/locations - сообщить позицию
- PATCH /api/v1/groups/{group_id}/locations/status - сменить статус
- GET /api/v1/groups/{group_id}/snapshot - снапшот живых позиций
- POST /api/v1/groups/{group_id}/geofence-events - событие геозоны
- WS /ws/groups/{group_id} - push-канал событий геозон
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from groupsync.common.constants import StorageBackend, TypeMsg
from groupsync.common.errors import GroupSyncError
from groupsync.common.logger import log_error, log_info, setup_logging
from groupsync.config import settings
from groupsync.services.api import dependencies
from groupsync.services.api.routes import router
from groupsync.services.realtime_ws import router as ws_router
from groupsync.shared.models import ErrorResponse, HealthStatus

_started_at = time.monotonic()


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    setup_logging()

    redis = None
    needs_redis = (
        settings.presence.STORAGE_BACKEND == StorageBackend.REDIS
        or settings.geofence.RELAY_ENABLED
    )
    if needs_redis:
        from groupsync.infra.redis_client import init_redis
        redis = await init_redis()

    await dependencies.init_dependencies(settings, redis=redis)
    await log_info(f"{settings.system.PROJECT_NAME} API запущен", type_msg=TypeMsg.INFO)

    yield

    await dependencies.cleanup_dependencies()
    if redis is not None:
        from groupsync.infra.redis_client import close_redis
        await close_redis()


# === APP ===

app = FastAPI(
    title="GroupSync API",
    description="Общие локации, статусы и события геозон для небольших групп.",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(router, prefix="/api/v1")
app.include_router(ws_router)


# === ERROR HANDLERS ===

def _error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(GroupSyncError)
async def groupsync_error_handler(request: Request, exc: GroupSyncError) -> JSONResponse:
    if exc.retryable:
        await log_error(f"{request.method} {request.url.path}: {exc.message}")
    return _error_response(
        exc.status_code,
        ErrorResponse(error_code=exc.code, message=exc.message, details=exc.to_details()),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    # loc: ("body", "lat") -> "lat"
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
    field = ".".join(loc) or "body"
    constraint = first.get("msg", "invalid value")
    return _error_response(
        400,
        ErrorResponse(
            error_code="invalid_input",
            message=f"Поле '{field}' нарушает ограничение: {constraint}",
            details={"retryable": False, "field": field, "constraint": constraint},
        ),
    )


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    deps: dict[str, str] = {
        "storage": settings.presence.STORAGE_BACKEND.value,
        "relay": "enabled" if dependencies.get_relay() else "disabled",
    }
    status = "healthy"

    redis = dependencies.get_redis()
    if redis is not None:
        healthy = await redis.health_check()
        deps["redis"] = "healthy" if healthy else "unhealthy"
        if not healthy:
            status = "degraded"

    return HealthStatus(
        service=settings.system.PROJECT_NAME,
        status=status,
        version=settings.system.VERSION,
        uptime_seconds=round(time.monotonic() - _started_at, 3),
        dependencies=deps,
    )


# === STATS ===

@app.get("/stats", tags=["Stats"])
async def get_stats() -> dict[str, Any]:
    """Получить статистику сервиса."""
    relay = dependencies.get_relay()
    return {
        "locations": dependencies.get_location_service().get_stats(),
        "snapshots": dependencies.get_snapshot_service().get_stats(),
        "geofence": dependencies.get_dispatcher().get_stats(),
        "relay": relay.get_stats() if relay else None,
    }


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.deployment.API_HOST, port=settings.deployment.API_PORT)
