# groupsync/shared/models/geofence_dto.py
from typing import Any

from pydantic import BaseModel


class PublishResponse(BaseModel):
    delivered: int


class GeofenceMessage(BaseModel):
    """Сообщение push-канала клиенту."""

    type: str = "geofence"
    data: dict[str, Any]
