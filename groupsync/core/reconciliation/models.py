# groupsync/core/reconciliation/models.py
"""
Модели снапшота группы и изменений при сверке.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from groupsync.common.constants import DiffKind
from groupsync.core.locations.models import LocationRecord


class SnapshotRecord(LocationRecord):
    """Запись снапшота с производными полями, вычисленными при чтении."""

    online: bool = Field(..., description="Отчитывался в пределах online window")
    display_radius: float = Field(..., ge=0, description="Радиус точности для отрисовки")


class Snapshot(BaseModel):
    """Все непросроченные записи группы на момент taken_at."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    taken_at: datetime
    records: list[SnapshotRecord] = Field(default_factory=list)


class MemberDiff(BaseModel):
    """Одно изменение состава/позиции участника между двумя снапшотами."""

    model_config = ConfigDict(frozen=True)

    kind: DiffKind
    user_id: str
    record: Optional[LocationRecord] = None
