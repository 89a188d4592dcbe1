# groupsync/core/groups/models.py
"""
Модели данных групп и участников.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Group(BaseModel):
    """Группа. Идентичность неизменна, участники хранятся отдельно."""

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(..., description="Короткий код группы")
    display_name: str = Field(..., description="Название группы")
    created_at: datetime = Field(..., description="Время создания (часы сервера)")
    created_by: Optional[str] = Field(None, description="Пользователь, создавший группу")


class Membership(BaseModel):
    """Участие пользователя в группе."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    user_id: str
    member_name: Optional[str] = Field(None, description="Имя участника внутри группы")
    joined_at: datetime
