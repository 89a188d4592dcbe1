# groupsync/core/groups/__init__.py
"""
Реестр групп.
"""

from groupsync.core.groups.models import Group, Membership
from groupsync.core.groups.repository import GroupRepository, InMemoryGroupRepository, RedisGroupRepository
from groupsync.core.groups.service import GroupService, normalize_group_id

__all__ = [
    "Group",
    "Membership",
    "GroupRepository",
    "InMemoryGroupRepository",
    "RedisGroupRepository",
    "GroupService",
    "normalize_group_id",
]
