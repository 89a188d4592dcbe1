# tests/core/test_locations_store.py
"""
Тесты для хранилищ LocationRecord.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from groupsync.common.errors import NotFoundError, UnavailableError
from groupsync.core.locations import InMemoryLocationStore, LocationRecord, LocationStore, RedisLocationStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_record(user_id: str = "u1", group_id: str = "ABC123", age: float = 0, **kwargs) -> LocationRecord:
    updated_at = NOW - timedelta(seconds=age)
    values = {
        "group_id": group_id,
        "user_id": user_id,
        "lat": 50.45,
        "lng": 30.52,
        "accuracy": 12.0,
        "status": "",
        "updated_at": updated_at,
        "expires_at": updated_at + timedelta(seconds=900),
    }
    values.update(kwargs)
    return LocationRecord(**values)


async def put(store: LocationStore, record: LocationRecord) -> LocationRecord:
    """Безусловная замена записи пары."""
    return await store.apply(record.group_id, record.user_id, NOW, lambda previous: record)


class TestLocationRecord:
    """Тесты модели LocationRecord."""

    def test_expired_exactly_at_expires_at(self) -> None:
        record = make_record()
        assert not record.is_expired(record.expires_at - timedelta(microseconds=1))
        assert record.is_expired(record.expires_at)

    def test_online_window(self) -> None:
        record = make_record()
        assert record.is_online(NOW + timedelta(seconds=59), 60)
        assert not record.is_online(NOW + timedelta(seconds=60), 60)

    @pytest.mark.parametrize(
        ("accuracy", "expected"),
        [(0.0, 10.0), (3.0, 10.0), (55.5, 55.5), (200.0, 200.0), (5000.0, 200.0)],
    )
    def test_clamped_radius(self, accuracy: float, expected: float) -> None:
        """Радиус зажимается только при чтении, accuracy хранится как есть."""
        record = make_record(accuracy=accuracy)
        assert record.clamped_radius(10.0, 200.0) == expected
        assert record.accuracy == accuracy


class TestInMemoryLocationStore:
    """Тесты для InMemoryLocationStore."""

    @pytest.mark.asyncio
    async def test_apply_replaces_record(self) -> None:
        store = InMemoryLocationStore()
        await put(store, make_record(lat=1.0))
        await put(store, make_record(lat=2.0))

        record = await store.get("ABC123", "u1", NOW)
        assert record.lat == 2.0
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_apply_sees_live_previous(self) -> None:
        store = InMemoryLocationStore()
        first = await put(store, make_record(status="дома"))
        seen: list = []

        def update(previous):
            seen.append(previous)
            return make_record(lat=3.0, status=previous.status)

        record = await store.apply("ABC123", "u1", NOW, update)

        assert seen == [first]
        assert record.status == "дома"

    @pytest.mark.asyncio
    async def test_apply_expired_previous_is_none(self) -> None:
        store = InMemoryLocationStore()
        await put(store, make_record(age=900))
        seen: list = []

        def update(previous):
            seen.append(previous)
            return make_record()

        await store.apply("ABC123", "u1", NOW, update)

        assert seen == [None]

    @pytest.mark.asyncio
    async def test_apply_update_error_keeps_store_untouched(self) -> None:
        store = InMemoryLocationStore()

        def update(previous):
            raise NotFoundError("нет записи", field="location")

        with pytest.raises(NotFoundError):
            await store.apply("ABC123", "u1", NOW, update)
        assert len(store) == 0
        assert await store.list_live("ABC123", NOW) == []

    @pytest.mark.asyncio
    async def test_get_expired_is_none(self) -> None:
        store = InMemoryLocationStore()
        await put(store, make_record(age=900))

        assert await store.get("ABC123", "u1", NOW) is None

    @pytest.mark.asyncio
    async def test_list_live_filters_and_reaps(self) -> None:
        store = InMemoryLocationStore()
        await put(store, make_record("u1"))
        await put(store, make_record("u2", age=1000))
        await put(store, make_record("u3", group_id="OTHER1"))

        live = await store.list_live("ABC123", NOW)

        assert [r.user_id for r in live] == ["u1"]
        # u2 убран попутно
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_list_live_unknown_group(self) -> None:
        assert await InMemoryLocationStore().list_live("NOPE42", NOW) == []


class TestRedisLocationStore:
    """Тесты для RedisLocationStore."""

    @pytest.fixture
    def store(self, mock_redis: AsyncMock) -> RedisLocationStore:
        return RedisLocationStore(mock_redis)

    @pytest.fixture
    def pipe(self, mock_redis: AsyncMock) -> MagicMock:
        return mock_redis.pipeline.return_value

    @pytest.mark.asyncio
    async def test_apply_transaction(self, store: RedisLocationStore, mock_redis: AsyncMock, pipe: MagicMock) -> None:
        """Ключ пары под WATCH, запись, TTL и индекс уходят одной транзакцией."""
        record = make_record()

        assert await put(store, record) == record

        mock_redis.pipeline.assert_called_once_with(transaction=True)
        pipe.watch.assert_awaited_once_with("test:loc:ABC123:u1")
        pipe.get.assert_awaited_once_with("test:loc:ABC123:u1")
        pipe.multi.assert_called_once()
        pipe.set.assert_called_once_with("test:loc:ABC123:u1", record.model_dump_json())
        pipe.pexpireat.assert_called_once_with(
            "test:loc:ABC123:u1", int(record.expires_at.timestamp() * 1000)
        )
        pipe.sadd.assert_called_once_with("test:loc:ABC123:index", "u1")
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_apply_reads_previous_under_watch(self, store: RedisLocationStore, pipe: MagicMock) -> None:
        previous = make_record(age=5, status="дома")
        pipe.get.return_value = previous.model_dump_json()
        seen: list = []

        def update(prev):
            seen.append(prev)
            return make_record(status=prev.status)

        record = await store.apply("ABC123", "u1", NOW, update)

        assert seen == [previous]
        assert record.status == "дома"

    @pytest.mark.asyncio
    async def test_apply_expired_previous_is_none(self, store: RedisLocationStore, pipe: MagicMock) -> None:
        pipe.get.return_value = make_record(age=901).model_dump_json()
        seen: list = []

        def update(prev):
            seen.append(prev)
            return make_record()

        await store.apply("ABC123", "u1", NOW, update)

        assert seen == [None]

    @pytest.mark.asyncio
    async def test_apply_retries_after_concurrent_write(self, store: RedisLocationStore, pipe: MagicMock) -> None:
        """Другой экземпляр записал пару между чтением и EXEC: update строится заново от его записи."""
        theirs = make_record(updated_at=NOW + timedelta(seconds=9), lat=1.0)
        pipe.get.side_effect = [None, theirs.model_dump_json()]
        pipe.execute.side_effect = [WatchError("changed"), [True, True, 1]]
        seen: list = []

        def update(prev):
            seen.append(prev)
            stamp = NOW if prev is None else max(NOW, prev.updated_at + timedelta(microseconds=1))
            return make_record(updated_at=stamp, lat=2.0)

        record = await store.apply("ABC123", "u1", NOW, update)

        assert seen == [None, theirs]
        assert record.updated_at > theirs.updated_at
        assert pipe.watch.await_count == 2
        assert pipe.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_apply_gives_up_after_attempts(self, store: RedisLocationStore, pipe: MagicMock) -> None:
        pipe.execute.side_effect = WatchError("changed")

        with pytest.raises(UnavailableError) as exc_info:
            await put(store, make_record())

        assert exc_info.value.retryable is True
        assert pipe.execute.await_count == RedisLocationStore.MAX_ATTEMPTS

    @pytest.mark.asyncio
    async def test_apply_update_error_aborts(self, store: RedisLocationStore, pipe: MagicMock) -> None:
        def update(prev):
            raise NotFoundError("нет записи", field="location")

        with pytest.raises(NotFoundError):
            await store.apply("ABC123", "u1", NOW, update)

        pipe.multi.assert_not_called()
        pipe.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get(self, store: RedisLocationStore, mock_redis: AsyncMock) -> None:
        record = make_record()
        mock_redis.get.return_value = record.model_dump_json()

        assert await store.get("ABC123", "u1", NOW) == record
        mock_redis.get.assert_awaited_once_with("loc:ABC123:u1")

    @pytest.mark.asyncio
    async def test_get_filters_expired(self, store: RedisLocationStore, mock_redis: AsyncMock) -> None:
        """Даже если Redis ещё не удалил ключ, просроченная запись отсутствует."""
        mock_redis.get.return_value = make_record(age=901).model_dump_json()

        assert await store.get("ABC123", "u1", NOW) is None

    @pytest.mark.asyncio
    async def test_list_live_reaps_vanished(self, store: RedisLocationStore, mock_redis: AsyncMock) -> None:
        live = make_record("u1")
        mock_redis.smembers.return_value = {"u3", "u1", "u2"}
        mock_redis.mget.return_value = [live.model_dump_json(), None, make_record("u3", age=901).model_dump_json()]

        records = await store.list_live("ABC123", NOW)

        assert records == [live]
        mock_redis.mget.assert_awaited_once_with(["loc:ABC123:u1", "loc:ABC123:u2", "loc:ABC123:u3"])
        script, keys, args = mock_redis.eval.await_args.args
        assert "SREM" in script
        assert keys == ["loc:ABC123:index", "loc:ABC123:u2", "loc:ABC123:u3"]
        assert args == ["u2", "u3"]

    @pytest.mark.asyncio
    async def test_list_live_empty_index(self, store: RedisLocationStore, mock_redis: AsyncMock) -> None:
        mock_redis.smembers.return_value = set()

        assert await store.list_live("ABC123", NOW) == []
        mock_redis.mget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reap_failure_does_not_break_read(
        self, store: RedisLocationStore, mock_redis: AsyncMock
    ) -> None:
        mock_redis.smembers.return_value = {"u2"}
        mock_redis.mget.return_value = [None]
        mock_redis.eval.side_effect = RedisConnectionError("gone")

        assert await store.list_live("ABC123", NOW) == []

    @pytest.mark.asyncio
    async def test_corrupt_record_skipped(self, store: RedisLocationStore, mock_redis: AsyncMock) -> None:
        mock_redis.get.return_value = '{"lat": "north"}'

        assert await store.get("ABC123", "u1", NOW) is None

    @pytest.mark.asyncio
    async def test_redis_down_unavailable(self, store: RedisLocationStore, mock_redis: AsyncMock) -> None:
        mock_redis.pipeline.return_value.execute.side_effect = RedisConnectionError("down")

        with pytest.raises(UnavailableError):
            await put(store, make_record())
