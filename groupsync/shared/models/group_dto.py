# groupsync/shared/models/group_dto.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateGroupRequest(BaseModel):
    display_name: str


class JoinGroupRequest(BaseModel):
    member_name: Optional[str] = Field(default=None, max_length=64)


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    group_id: str
    display_name: str
    created_at: Optional[datetime] = None


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    member_name: Optional[str] = None
    joined_at: datetime
