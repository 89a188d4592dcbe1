# tests/core/test_reconciliation.py
"""
Тесты для снапшотов и сверки состояния группы.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from groupsync.common.constants import DiffKind
from groupsync.common.errors import NotFoundError, UnavailableError
from groupsync.core.groups import GroupService, InMemoryGroupRepository
from groupsync.core.locations import InMemoryLocationStore, LocationIngestService, LocationRecord
from groupsync.core.reconciliation import ReconciliationContext, Snapshot, SnapshotService
from groupsync.infra.clock import ManualClock

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def record(user_id: str, seconds: float = 0, lat: float = 1.0) -> LocationRecord:
    updated_at = T0 + timedelta(seconds=seconds)
    return LocationRecord(
        group_id="ABC123",
        user_id=user_id,
        lat=lat,
        lng=2.0,
        accuracy=10.0,
        updated_at=updated_at,
        expires_at=updated_at + timedelta(minutes=15),
    )


class TestReconciliationContext:
    """Тесты клиентского алгоритма сверки."""

    def test_first_snapshot_all_added(self) -> None:
        context = ReconciliationContext()

        diffs = context.apply([record("u2"), record("u1")])

        assert [(d.kind, d.user_id) for d in diffs] == [(DiffKind.ADDED, "u1"), (DiffKind.ADDED, "u2")]
        assert set(context.last_seen) == {"u1", "u2"}

    def test_updated_only_when_strictly_newer(self) -> None:
        context = ReconciliationContext()
        context.apply([record("u1", 0)])

        assert context.apply([record("u1", 0, lat=9.0)]) == []
        diffs = context.apply([record("u1", 5, lat=3.0)])

        assert [(d.kind, d.user_id) for d in diffs] == [(DiffKind.UPDATED, "u1")]
        assert diffs[0].record.lat == 3.0

    def test_monotonic_never_moves_back(self) -> None:
        """Более старая запись после новой не даёт Updated и не откатывает last_seen."""
        context = ReconciliationContext()
        context.apply([record("u1", 10)])

        diffs = context.apply([record("u1", 5)])

        assert diffs == []
        assert context.last_seen["u1"].updated_at == T0 + timedelta(seconds=10)

    def test_removed_exactly_once(self) -> None:
        context = ReconciliationContext()
        context.apply([record("u1"), record("u2")])

        first = context.apply([record("u1")])
        second = context.apply([record("u1")])

        assert [(d.kind, d.user_id, d.record) for d in first] == [(DiffKind.REMOVED, "u2", None)]
        assert second == []

    def test_self_excluded(self) -> None:
        context = ReconciliationContext(self_user_id="u1")

        diffs = context.apply([record("u1"), record("u2")])

        assert [d.user_id for d in diffs] == ["u2"]
        assert "u1" not in context.last_seen

    def test_deterministic_order(self) -> None:
        """Сначала removed, затем added, затем updated, внутри по user_id."""
        context = ReconciliationContext()
        context.apply([record("a"), record("z"), record("m"), record("x")])

        diffs = context.apply([record("m", 5), record("c"), record("b"), record("a", 1)])

        assert [(d.kind.value, d.user_id) for d in diffs] == [
            ("removed", "x"),
            ("removed", "z"),
            ("added", "b"),
            ("added", "c"),
            ("updated", "a"),
            ("updated", "m"),
        ]

    def test_accepts_snapshot_and_reset(self) -> None:
        context = ReconciliationContext()
        context.apply(Snapshot(group_id="ABC123", taken_at=T0, records=[]))
        context.apply([record("u1")])

        context.reset()

        assert len(context) == 0

    def test_independent_contexts(self) -> None:
        """Два клиента одного пользователя держат разные контексты."""
        phone = ReconciliationContext("u1")
        tablet = ReconciliationContext("u1")
        phone.apply([record("u2")])

        assert [d.kind for d in tablet.apply([record("u2")])] == [DiffKind.ADDED]


class TestSnapshotService:
    """Тесты серверного снапшота."""

    @pytest.mark.asyncio
    async def test_unknown_group(self, snapshot_service: SnapshotService) -> None:
        with pytest.raises(NotFoundError):
            await snapshot_service.get_group_snapshot("NOPE42")

    @pytest.mark.asyncio
    async def test_empty_group(self, snapshot_service, group_service, start_time) -> None:
        group = await group_service.create_group("Family", "u1")

        snapshot = await snapshot_service.get_group_snapshot(group.group_id.lower())

        assert snapshot.group_id == group.group_id
        assert snapshot.taken_at == start_time
        assert snapshot.records == []

    @pytest.mark.asyncio
    async def test_report_then_snapshot(self, location_service, snapshot_service, group_service, start_time) -> None:
        group = await group_service.create_group("Family", "u1")
        await location_service.report_location(group.group_id, "u1", 50.45, 30.52, 3.0, "дома")

        snapshot = await snapshot_service.get_group_snapshot(group.group_id)

        [entry] = snapshot.records
        assert (entry.lat, entry.lng, entry.status) == (50.45, 30.52, "дома")
        assert entry.updated_at >= start_time
        assert entry.online is True
        assert entry.display_radius == 10.0
        assert entry.accuracy == 3.0
        # Поле снапшота не перекрывает метод записи
        assert entry.clamped_radius(20.0, 200.0) == 20.0

    @pytest.mark.asyncio
    async def test_online_versus_present(self, location_service, snapshot_service, group_service, clock) -> None:
        """После online window участник ещё в снапшоте, но не в сети."""
        group = await group_service.create_group("Family", "u1")
        await location_service.report_location(group.group_id, "u1", 1.0, 2.0)
        clock.advance(61)

        [entry] = (await snapshot_service.get_group_snapshot(group.group_id)).records

        assert entry.online is False

    @pytest.mark.asyncio
    async def test_timeout(self, group_service, clock) -> None:
        group = await group_service.create_group("Family", "u1")
        store = InMemoryLocationStore()

        async def slow_list(group_id, now):
            await asyncio.sleep(1)
            return []

        store.list_live = slow_list
        service = SnapshotService(store, group_service, timeout=0.05, clock=clock)

        with pytest.raises(UnavailableError):
            await service.get_group_snapshot(group.group_id)


class TestFamilyScenario:
    """Сквозной сценарий: группа Family, участник u2, TTL 15 минут."""

    @pytest.mark.asyncio
    async def test_family_group_expiry(self) -> None:
        clock = ManualClock(T0)
        groups = GroupService(InMemoryGroupRepository(), clock=clock)
        groups.generate_code = lambda: "ABC123"
        store = InMemoryLocationStore()
        ingest = LocationIngestService(store, groups, ttl_seconds=15 * 60, clock=clock)
        snapshots = SnapshotService(store, groups, clock=clock)

        created = await groups.create_group("Family", "u1")
        assert (created.group_id, created.display_name) == ("ABC123", "Family")

        joined = await groups.join_group("ABC123", "u2")
        assert joined.group_id == "ABC123"

        await ingest.report_location("ABC123", "u2", 51.5, -0.12, 15, "OMW!", T0)
        first = await snapshots.get_group_snapshot("ABC123")
        [entry] = first.records
        assert (entry.user_id, entry.lat, entry.lng, entry.accuracy, entry.status) == (
            "u2", 51.5, -0.12, 15, "OMW!",
        )

        context = ReconciliationContext(self_user_id="u1")
        assert [d.kind for d in context.apply(first)] == [DiffKind.ADDED]

        clock.advance(minutes=16)
        second = await snapshots.get_group_snapshot("ABC123")
        assert second.records == []

        diffs = context.apply(second)
        assert [(d.kind, d.user_id) for d in diffs] == [(DiffKind.REMOVED, "u2")]
        assert context.apply(second) == []
