# groupsync/core/geofence/models.py
"""
События пересечения геозон.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from groupsync.common.constants import GeofenceEventType
from groupsync.infra.clock import utc_now


class GeofenceEvent(BaseModel):
    """
    Вход или выход участника из геозоны.

    Не сохраняется и не упорядочивается относительно обновлений локаций.
    """

    model_config = ConfigDict(frozen=True)

    type: GeofenceEventType
    fence_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    at: datetime = Field(default_factory=utc_now)

    @field_validator("fence_id", "user_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @property
    def identity(self) -> tuple[str, str, str, datetime]:
        """Ключ для подавления повторной доставки."""
        return str(self.type), self.fence_id, self.user_id, self.at


class FeedItem(BaseModel):
    """Элемент ленты уведомлений на стороне клиента."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    event: GeofenceEvent
