# groupsync/core/reconciliation/engine.py
"""
Сверка состояния группы.

Серверная сторона отдаёт снапшот живых записей, клиентская превращает
последовательность снапшотов в изменения Added/Updated/Removed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from groupsync.common.constants import DiffKind
from groupsync.core.groups.service import GroupService
from groupsync.core.locations.models import LocationRecord
from groupsync.core.locations.store import LocationStore
from groupsync.core.reconciliation.models import MemberDiff, Snapshot, SnapshotRecord
from groupsync.infra.clock import Clock, utc_now
from groupsync.infra.timeouts import bounded


class SnapshotService:
    """
    Чтение снапшота группы.

    Блокировок не берёт: каждая запись читается целиком,
    но снапшот не обязан быть согласован между участниками.
    """

    def __init__(
        self,
        store: LocationStore,
        groups: GroupService,
        *,
        online_window: float = 60.0,
        min_display_radius: float = 10.0,
        max_display_radius: float = 200.0,
        timeout: float | None = 3.0,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._groups = groups
        self._online_window = online_window
        self._min_radius = min_display_radius
        self._max_radius = max_display_radius
        self._timeout = timeout
        self._clock = clock

        self._snapshots_served = 0

    async def get_group_snapshot(self, group_id: str) -> Snapshot:
        """
        Снапшот живых записей группы.

        Raises:
            NotFoundError: группа не существует
            UnavailableError: хранилище недоступно или истёк таймаут
        """
        return await bounded(self._read(group_id), self._timeout, "get_group_snapshot")

    async def _read(self, group_id: str) -> Snapshot:
        group = await self._groups.get_group(group_id)
        now = self._clock()
        records = await self._store.list_live(group.group_id, now)

        self._snapshots_served += 1
        return Snapshot(
            group_id=group.group_id,
            taken_at=now,
            records=[
                self._decorate(record, now)
                for record in sorted(records, key=lambda r: r.user_id)
                if not record.is_expired(now)
            ],
        )

    def _decorate(self, record: LocationRecord, now: datetime) -> SnapshotRecord:
        return SnapshotRecord(
            **record.model_dump(),
            online=record.is_online(now, self._online_window),
            display_radius=record.clamped_radius(self._min_radius, self._max_radius),
        )

    def get_stats(self) -> dict[str, Any]:
        return {"snapshots_served": self._snapshots_served}


class ReconciliationContext:
    """
    Состояние одной клиентской сессии: что клиент уже видел.

    Контекст явный и живёт столько же, сколько сессия;
    два клиента одного пользователя держат разные контексты.
    """

    def __init__(self, self_user_id: str | None = None) -> None:
        self.self_user_id = self_user_id
        self.last_seen: dict[str, LocationRecord] = {}

    def apply(self, records: Snapshot | Iterable[LocationRecord]) -> list[MemberDiff]:
        """
        Сверяет новый снапшот с last_seen и продвигает контекст.

        Порядок результата: removed, added, updated; внутри каждого вида
        по user_id.
        """
        if isinstance(records, Snapshot):
            records = records.records

        incoming = {r.user_id: r for r in records if r.user_id != self.self_user_id}

        removed = sorted(set(self.last_seen) - set(incoming))
        added = []
        updated = []
        for user_id in sorted(incoming):
            record = incoming[user_id]
            previous = self.last_seen.get(user_id)
            if previous is None:
                added.append(record)
            elif record.updated_at > previous.updated_at:
                updated.append(record)
            # Иначе запись не новее увиденной: last_seen не откатываем

        for user_id in removed:
            del self.last_seen[user_id]
        for record in added + updated:
            self.last_seen[record.user_id] = record

        return (
            [MemberDiff(kind=DiffKind.REMOVED, user_id=u) for u in removed]
            + [MemberDiff(kind=DiffKind.ADDED, user_id=r.user_id, record=r) for r in added]
            + [MemberDiff(kind=DiffKind.UPDATED, user_id=r.user_id, record=r) for r in updated]
        )

    def reset(self) -> None:
        """Забывает всё увиденное (например, при смене группы)."""
        self.last_seen.clear()

    def __len__(self) -> int:
        return len(self.last_seen)
