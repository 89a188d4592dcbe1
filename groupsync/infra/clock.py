# groupsync/infra/clock.py
"""
Часы сервера.

Все метки updated_at/expires_at ставятся только по этим часам.
Сервисы принимают Clock в конструкторе, чтобы тесты могли двигать время.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Текущее время UTC (aware)."""
    return datetime.now(timezone.utc)


class ManualClock:
    """Управляемые часы для тестов и симуляций."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0.0, **kwargs: float) -> datetime:
        """Сдвигает время вперёд (или назад при отрицательном значении)."""
        self._now += timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
