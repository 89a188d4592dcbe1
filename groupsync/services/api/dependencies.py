# groupsync/services/api/dependencies.py
"""
Dependency Injection для API groupsync.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

from fastapi import Header

from groupsync.common.constants import StorageBackend, TypeMsg
from groupsync.common.errors import UnauthenticatedError
from groupsync.common.logger import log_info
from groupsync.core.geofence import EventDispatcher, GeofenceRelay
from groupsync.core.groups import GroupService, InMemoryGroupRepository, RedisGroupRepository
from groupsync.core.locations import InMemoryLocationStore, LocationIngestService, RedisLocationStore
from groupsync.core.reconciliation import SnapshotService
from groupsync.infra.clock import Clock, utc_now

if TYPE_CHECKING:
    from groupsync.config.loader import Settings
    from groupsync.infra.redis_client import RedisClient


# Синглтоны
_redis: "RedisClient | None" = None
_group_service: GroupService | None = None
_location_service: LocationIngestService | None = None
_snapshot_service: SnapshotService | None = None
_dispatcher: EventDispatcher | None = None
_relay: GeofenceRelay | None = None


async def init_dependencies(
    settings: "Settings",
    redis: "RedisClient | None" = None,
    clock: Clock = utc_now,
) -> None:
    """
    Инициализировать зависимости при старте приложения.

    Args:
        settings: Настройки проекта
        redis: Подключённый клиент Redis (нужен для backend redis и relay)
        clock: Часы сервера
    """
    global _redis, _group_service, _location_service, _snapshot_service, _dispatcher, _relay
    _redis = redis

    presence = settings.presence
    if presence.STORAGE_BACKEND == StorageBackend.REDIS:
        if redis is None:
            raise RuntimeError("STORAGE_BACKEND=redis требует подключённый Redis")
        group_repository = RedisGroupRepository(redis)
        location_store = RedisLocationStore(redis)
    else:
        group_repository = InMemoryGroupRepository()
        location_store = InMemoryLocationStore()

    _group_service = GroupService(
        group_repository,
        code_length=presence.GROUP_CODE_LENGTH,
        code_attempts=presence.GROUP_CODE_ATTEMPTS,
        name_max_length=presence.GROUP_NAME_MAX_LENGTH,
        clock=clock,
    )
    _location_service = LocationIngestService(
        location_store,
        _group_service,
        ttl_seconds=presence.LOCATION_TTL,
        default_accuracy=presence.DEFAULT_ACCURACY,
        status_max_length=presence.STATUS_MAX_LENGTH,
        timeout=settings.timeouts.OPERATION_TIMEOUT,
        clock=clock,
    )
    _snapshot_service = SnapshotService(
        location_store,
        _group_service,
        online_window=presence.ONLINE_WINDOW,
        min_display_radius=presence.MIN_DISPLAY_RADIUS,
        max_display_radius=presence.MAX_DISPLAY_RADIUS,
        timeout=settings.timeouts.OPERATION_TIMEOUT,
        clock=clock,
    )
    _dispatcher = EventDispatcher(
        _group_service,
        queue_size=settings.geofence.SUBSCRIBER_QUEUE_SIZE,
    )

    _relay = None
    if settings.geofence.RELAY_ENABLED:
        if redis is None:
            raise RuntimeError("RELAY_ENABLED требует подключённый Redis")
        _relay = GeofenceRelay(redis, _dispatcher, settings.geofence.RELAY_CHANNEL_PREFIX)
        await _relay.start()

    await log_info(
        f"Зависимости инициализированы (backend={presence.STORAGE_BACKEND.value}, "
        f"relay={'on' if _relay else 'off'})",
        type_msg=TypeMsg.INFO,
    )


def get_group_service() -> GroupService:
    """Получить реестр групп."""
    if _group_service is None:
        raise RuntimeError("GroupService не инициализирован. Вызовите init_dependencies()")
    return _group_service


def get_location_service() -> LocationIngestService:
    """Получить сервис приёма локаций."""
    if _location_service is None:
        raise RuntimeError("LocationIngestService не инициализирован. Вызовите init_dependencies()")
    return _location_service


def get_snapshot_service() -> SnapshotService:
    """Получить сервис снапшотов."""
    if _snapshot_service is None:
        raise RuntimeError("SnapshotService не инициализирован. Вызовите init_dependencies()")
    return _snapshot_service


def get_dispatcher() -> EventDispatcher:
    """Получить диспетчер событий геозон."""
    if _dispatcher is None:
        raise RuntimeError("EventDispatcher не инициализирован. Вызовите init_dependencies()")
    return _dispatcher


def get_relay() -> Optional[GeofenceRelay]:
    return _relay


def get_publisher() -> Union[EventDispatcher, GeofenceRelay]:
    """Публикация идёт через relay, если он включён, иначе напрямую в диспетчер."""
    return _relay or get_dispatcher()


def get_redis() -> "RedisClient | None":
    return _redis


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Идентичность вызывающего из заголовка X-User-Id.

    Raises:
        UnauthenticatedError: заголовок отсутствует или пуст
    """
    if x_user_id is None or not x_user_id.strip():
        raise UnauthenticatedError("Заголовок X-User-Id обязателен")
    return x_user_id.strip()


async def cleanup_dependencies() -> None:
    """Очистить ресурсы при остановке приложения."""
    global _relay, _group_service, _location_service, _snapshot_service, _dispatcher, _redis
    if _relay:
        await _relay.stop()
    _relay = None
    _group_service = None
    _location_service = None
    _snapshot_service = None
    _dispatcher = None
    _redis = None
