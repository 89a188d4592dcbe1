# groupsync/core/locations/models.py
"""
Модель последней известной позиции участника группы.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LocationRecord(BaseModel):
    """
    Последняя позиция пары (group_id, user_id).

    Каждый новый отчёт полностью заменяет предыдущий.
    accuracy хранится как прислал клиент, ограничение радиуса
    применяется только при чтении (clamped_radius).
    """

    model_config = ConfigDict(frozen=True)

    group_id: str
    user_id: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: float = Field(..., ge=0, description="Точность в метрах")
    status: str = ""
    updated_at: datetime = Field(..., description="Время сервера")
    expires_at: datetime
    client_timestamp: Optional[datetime] = Field(None, description="Время клиента, только для справки")

    @property
    def key(self) -> tuple[str, str]:
        return self.group_id, self.user_id

    def is_expired(self, now: datetime) -> bool:
        """Запись считается отсутствующей начиная с момента expires_at."""
        return now >= self.expires_at

    def is_online(self, now: datetime, online_window: float) -> bool:
        """Участник «в сети», если отчитывался не позже online_window секунд назад."""
        return (now - self.updated_at) < timedelta(seconds=online_window)

    def clamped_radius(self, min_radius: float, max_radius: float) -> float:
        """Радиус точности, зажатый в полосу отображения."""
        return min(max(self.accuracy, min_radius), max_radius)
