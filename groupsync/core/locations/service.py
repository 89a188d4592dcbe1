# groupsync/core/locations/service.py
"""
Бизнес-логика приёма геолокации и статуса участников группы.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Optional

from groupsync.common.constants import TypeMsg
from groupsync.common.errors import InvalidInputError, NotFoundError
from groupsync.common.logger import log_info
from groupsync.core.groups.service import GroupService
from groupsync.core.locations.models import LocationRecord
from groupsync.core.locations.store import LocationStore
from groupsync.infra.clock import Clock, utc_now
from groupsync.infra.keyed_locks import KeyedLocks
from groupsync.infra.timeouts import bounded


# Минимальный шаг времени сервера между двумя записями одной пары
_TICK = timedelta(microseconds=1)


def _require_number(field: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidInputError(field, "must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(field, "must be a number") from None
    if not math.isfinite(number):
        raise InvalidInputError(field, "must be finite")
    return number


def validate_coordinates(lat: Any, lng: Any) -> tuple[float, float]:
    """
    Проверяет координаты. Значения вне диапазона отклоняются, не зажимаются.

    Raises:
        InvalidInputError: с указанием поля и нарушенного ограничения
    """
    lat_value = _require_number("lat", lat)
    if not -90 <= lat_value <= 90:
        raise InvalidInputError("lat", "must be within [-90, 90]")

    lng_value = _require_number("lng", lng)
    if not -180 <= lng_value <= 180:
        raise InvalidInputError("lng", "must be within [-180, 180]")

    return lat_value, lng_value


class LocationIngestService:
    """
    Сервис приёма отчётов о позиции.

    Ответственности:
    - Валидация координат, точности и статуса
    - Атомарная замена записи пары (group_id, user_id) с продлением TTL
    - Сериализация записей одной пары без блокировок между парами
    - Статистика приёма
    """

    # Сколько групп держим в статистике по группам
    MAX_TRACKED_GROUPS = 1000

    def __init__(
        self,
        store: LocationStore,
        groups: GroupService,
        *,
        ttl_seconds: int = 900,
        default_accuracy: float = 30.0,
        status_max_length: int = 140,
        timeout: float | None = 3.0,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._groups = groups
        self._ttl = timedelta(seconds=ttl_seconds)
        self._default_accuracy = default_accuracy
        self._status_max_length = status_max_length
        self._timeout = timeout
        self._clock = clock
        self._locks = KeyedLocks()

        # Статистика. Счётчики по группам ограничены MAX_TRACKED_GROUPS
        self._total_updates = 0
        self._updates_per_group: dict[str, int] = {}

    async def report_location(
        self,
        group_id: str,
        user_id: str,
        lat: float,
        lng: float,
        accuracy: float | None = None,
        status: str | None = None,
        client_timestamp: datetime | None = None,
    ) -> LocationRecord:
        """
        Сохраняет позицию участника.

        updated_at ставится по часам сервера, client_timestamp
        сохраняется только для справки.
        status=None оставляет прежний статус живой записи.

        Raises:
            InvalidInputError: координаты, точность или статус некорректны
            NotFoundError: группы нет или пользователь в ней не состоит
            UnavailableError: хранилище недоступно или истёк таймаут
        """
        lat_value, lng_value = validate_coordinates(lat, lng)
        accuracy_value = self._validate_accuracy(accuracy)
        self._validate_status(status)

        return await bounded(
            self._commit_report(group_id, user_id, lat_value, lng_value, accuracy_value, status, client_timestamp),
            self._timeout,
            "report_location",
        )

    async def update_status(self, group_id: str, user_id: str, status: str) -> LocationRecord:
        """
        Меняет только статус живой записи, координаты сохраняются.

        Raises:
            NotFoundError: у пользователя нет живой записи в группе
        """
        if status is None:
            raise InvalidInputError("status", "is required")
        self._validate_status(status)

        return await bounded(
            self._commit_status(group_id, user_id, status),
            self._timeout,
            "update_status",
        )

    async def get_location(self, group_id: str, user_id: str) -> Optional[LocationRecord]:
        """Живая запись участника или None."""
        group = await self._groups.get_group(group_id)
        return await self._store.get(group.group_id, user_id, self._clock())

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "total_updates": self._total_updates,
            "active_groups": len(self._updates_per_group),
            "top_groups": sorted(
                self._updates_per_group.items(),
                key=lambda x: x[1],
                reverse=True,
            )[:10],
        }

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def _commit_report(
        self,
        group_id: str,
        user_id: str,
        lat: float,
        lng: float,
        accuracy: float,
        status: str | None,
        client_timestamp: datetime | None,
    ) -> LocationRecord:
        group_id = await self._require_member(group_id, user_id)

        def build(previous: LocationRecord | None) -> LocationRecord:
            updated_at = self._next_timestamp(now, previous)
            return LocationRecord(
                group_id=group_id,
                user_id=user_id,
                lat=lat,
                lng=lng,
                accuracy=accuracy,
                status=status if status is not None else (previous.status if previous else ""),
                updated_at=updated_at,
                expires_at=updated_at + self._ttl,
                client_timestamp=client_timestamp,
            )

        async with self._locks.acquire((group_id, user_id)):
            now = self._clock()
            record = await self._store.apply(group_id, user_id, now, build)

        self._count(group_id)
        await log_info(
            f"Локация {user_id} в группе {group_id} обновлена",
            type_msg=TypeMsg.DEBUG,
            extra={"group_id": group_id, "user_id": user_id},
        )
        return record

    async def _commit_status(self, group_id: str, user_id: str, status: str) -> LocationRecord:
        group_id = await self._require_member(group_id, user_id)

        def build(previous: LocationRecord | None) -> LocationRecord:
            if previous is None:
                raise NotFoundError(
                    f"У пользователя {user_id} нет актуальной позиции в группе {group_id}",
                    field="location",
                )
            updated_at = self._next_timestamp(now, previous)
            return previous.model_copy(
                update={
                    "status": status,
                    "updated_at": updated_at,
                    "expires_at": updated_at + self._ttl,
                }
            )

        async with self._locks.acquire((group_id, user_id)):
            now = self._clock()
            record = await self._store.apply(group_id, user_id, now, build)

        self._count(group_id)
        await log_info(f"Статус {user_id} в группе {group_id} обновлён", type_msg=TypeMsg.DEBUG)
        return record

    async def _require_member(self, group_id: str, user_id: str) -> str:
        group = await self._groups.get_group(group_id)
        if not await self._groups.is_member(group.group_id, user_id):
            raise NotFoundError(
                f"Пользователь {user_id} не состоит в группе {group.group_id}",
                field="membership",
            )
        return group.group_id

    @staticmethod
    def _next_timestamp(now: datetime, previous: LocationRecord | None) -> datetime:
        """Время новой записи строго больше предыдущего, даже если часы сдвинулись назад."""
        if previous is not None and now <= previous.updated_at:
            return previous.updated_at + _TICK
        return now

    def _validate_accuracy(self, accuracy: float | None) -> float:
        if accuracy is None:
            return self._default_accuracy
        value = _require_number("accuracy", accuracy)
        if value < 0:
            raise InvalidInputError("accuracy", "must be >= 0")
        return value

    def _validate_status(self, status: str | None) -> None:
        if status is None:
            return
        if not isinstance(status, str):
            raise InvalidInputError("status", "must be a string")
        if len(status) > self._status_max_length:
            raise InvalidInputError("status", f"max length is {self._status_max_length}")

    def _count(self, group_id: str) -> None:
        self._total_updates += 1
        if group_id not in self._updates_per_group and len(self._updates_per_group) >= self.MAX_TRACKED_GROUPS:
            # Вытесняем группу с наименьшим счётчиком
            coldest = min(self._updates_per_group, key=self._updates_per_group.__getitem__)
            del self._updates_per_group[coldest]
        self._updates_per_group[group_id] = self._updates_per_group.get(group_id, 0) + 1
