# groupsync/core/locations/store.py
"""
Хранилище последних позиций участников с истечением по TTL.

Истечение проверяется лениво при чтении: просроченная запись считается
отсутствующей независимо от того, удалена ли она физически.

Запись идёт через apply(): чтение живой записи пары и замена её новой
выполняются атомарно, в том числе между экземплярами сервиса на общем Redis.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from groupsync.common.errors import UnavailableError
from groupsync.common.logger import log_error, log_warning
from groupsync.core.locations.models import LocationRecord
from groupsync.infra.redis_client import RedisClient, redis_unavailable


# previous (живая запись или None) -> новая запись
RecordUpdate = Callable[[Optional[LocationRecord]], LocationRecord]

# SREM только для отсутствующих ключей, атомарно с проверкой EXISTS.
# KEYS[1] индекс, KEYS[i+1] ключ записи ARGV[i]
_REAP_SCRIPT = """
local removed = 0
for i, user_id in ipairs(ARGV) do
    if redis.call('EXISTS', KEYS[i + 1]) == 0 then
        removed = removed + redis.call('SREM', KEYS[1], user_id)
    end
end
return removed
"""


class LocationStore(ABC):
    """Контракт хранилища LocationRecord."""

    @abstractmethod
    async def apply(self, group_id: str, user_id: str, now: datetime, update: RecordUpdate) -> LocationRecord:
        """
        Атомарно заменяет запись пары результатом update(previous).

        previous: живая на момент now запись пары или None.
        Исключение из update отменяет запись и пробрасывается.

        Returns:
            LocationRecord: сохранённая запись
        """

    @abstractmethod
    async def get(self, group_id: str, user_id: str, now: datetime) -> Optional[LocationRecord]:
        """Живая запись пары или None."""

    @abstractmethod
    async def list_live(self, group_id: str, now: datetime) -> list[LocationRecord]:
        """Все непросроченные записи группы."""


class InMemoryLocationStore(LocationStore):
    """
    Хранилище в памяти процесса.

    Замена значения в dict атомарна для event loop, поэтому читатели
    никогда не видят половину записи и не ждут писателей.
    Между чтением previous и записью в apply() нет await.
    """

    def __init__(self) -> None:
        # group_id -> user_id -> LocationRecord
        self._records: dict[str, dict[str, LocationRecord]] = {}

    async def apply(self, group_id: str, user_id: str, now: datetime, update: RecordUpdate) -> LocationRecord:
        previous = self._records.get(group_id, {}).get(user_id)
        if previous is not None and previous.is_expired(now):
            previous = None

        record = update(previous)
        self._records.setdefault(group_id, {})[user_id] = record
        return record

    async def get(self, group_id: str, user_id: str, now: datetime) -> Optional[LocationRecord]:
        record = self._records.get(group_id, {}).get(user_id)
        if record is None or record.is_expired(now):
            return None
        return record

    async def list_live(self, group_id: str, now: datetime) -> list[LocationRecord]:
        group_records = self._records.get(group_id)
        if not group_records:
            return []

        live = []
        expired = []
        for user_id, record in group_records.items():
            if record.is_expired(now):
                expired.append(user_id)
            else:
                live.append(record)

        # Попутная уборка мусора
        for user_id in expired:
            del group_records[user_id]
        if not group_records:
            del self._records[group_id]

        return live

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())


class RedisLocationStore(LocationStore):
    """
    Хранилище в Redis.

    Ключи:
    - loc:{group_id}:{user_id}: JSON записи, PEXPIREAT на expires_at
    - loc:{group_id}:index: множество user_id с записями
    """

    LOCATION_PREFIX = "loc:"
    MAX_ATTEMPTS = 5

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    def _record_key(self, group_id: str, user_id: str) -> str:
        return f"{self.LOCATION_PREFIX}{group_id}:{user_id}"

    def _index_key(self, group_id: str) -> str:
        return f"{self.LOCATION_PREFIX}{group_id}:index"

    async def apply(self, group_id: str, user_id: str, now: datetime, update: RecordUpdate) -> LocationRecord:
        """
        Оптимистичная транзакция WATCH/MULTI.

        Если ключ пары изменил другой экземпляр между чтением и EXEC,
        Redis отменяет транзакцию, и update вызывается заново со свежей записью.

        Raises:
            UnavailableError: Redis недоступен или попытки исчерпаны
        """
        record_key = self._redis.make_key(self._record_key(group_id, user_id))
        index_key = self._redis.make_key(self._index_key(group_id))

        async with redis_unavailable("apply_location"):
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, self.MAX_ATTEMPTS + 1):
                    try:
                        await pipe.watch(record_key)
                        previous = await self._parse(await pipe.get(record_key))
                        if previous is not None and previous.is_expired(now):
                            previous = None

                        record = update(previous)

                        # Запись, TTL и индекс применяются вместе
                        pipe.multi()
                        pipe.set(record_key, record.model_dump_json())
                        pipe.pexpireat(record_key, int(record.expires_at.timestamp() * 1000))
                        pipe.sadd(index_key, user_id)
                        await pipe.execute()
                        return record
                    except WatchError:
                        await log_warning(
                            f"Конкурентная запись локации {user_id} в группе {group_id}, попытка {attempt}"
                        )

        raise UnavailableError(f"Не удалось записать локацию {user_id}: ключ постоянно меняется")

    async def get(self, group_id: str, user_id: str, now: datetime) -> Optional[LocationRecord]:
        async with redis_unavailable("get_location"):
            raw = await self._redis.get(self._record_key(group_id, user_id))

        record = await self._parse(raw)
        if record is None or record.is_expired(now):
            return None
        return record

    async def list_live(self, group_id: str, now: datetime) -> list[LocationRecord]:
        async with redis_unavailable("list_locations"):
            user_ids = sorted(await self._redis.smembers(self._index_key(group_id)))
            if not user_ids:
                return []
            raws = await self._redis.mget([self._record_key(group_id, u) for u in user_ids])

        live = []
        stale = []
        for user_id, raw in zip(user_ids, raws):
            record = await self._parse(raw)
            if record is None or record.is_expired(now):
                stale.append(user_id)
            else:
                live.append(record)

        if stale:
            await self._reap(group_id, stale)

        return live

    async def _reap(self, group_id: str, user_ids: list[str]) -> None:
        """
        Убирает из индекса пользователей, чей ключ уже удалён Redis по TTL.
        Корректность чтения от уборки не зависит, поэтому ошибки только логируются.
        """
        keys = [self._index_key(group_id)] + [self._record_key(group_id, u) for u in user_ids]
        try:
            await self._redis.eval(_REAP_SCRIPT, keys, user_ids)
        except RedisError as e:
            await log_error(f"Не удалось очистить индекс локаций группы {group_id}: {e}")

    async def _parse(self, raw: str | None) -> Optional[LocationRecord]:
        if raw is None:
            return None
        try:
            return LocationRecord.model_validate_json(raw)
        except ValidationError as e:
            await log_error(f"Повреждённая запись локации: {e}")
            return None
