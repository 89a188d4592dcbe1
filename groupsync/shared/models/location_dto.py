# groupsync/shared/models/location_dto.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ReportLocationRequest(BaseModel):
    """Диапазоны координат проверяет сервис, чтобы ответ указывал поле и ограничение."""

    lat: float
    lng: float
    accuracy: Optional[float] = None
    status: Optional[str] = None
    client_timestamp: Optional[datetime] = None


class UpdateStatusRequest(BaseModel):
    status: str


class LocationAck(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    group_id: str
    user_id: str
    updated_at: datetime
    expires_at: datetime
