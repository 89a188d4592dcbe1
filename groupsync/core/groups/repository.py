# groupsync/core/groups/repository.py
"""
Репозиторий групп и участников.
Реализует паттерн Repository: хранение в памяти процесса или в Redis.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from groupsync.common.logger import log_error
from groupsync.core.groups.models import Group, Membership
from groupsync.infra.redis_client import RedisClient, redis_unavailable


class GroupRepository(ABC):
    """Контракт хранилища групп."""

    @abstractmethod
    async def insert_if_absent(self, group: Group) -> bool:
        """
        Атомарно сохраняет группу, если код ещё свободен.

        Returns:
            True если группа записана, False при коллизии кода
        """

    @abstractmethod
    async def get(self, group_id: str) -> Optional[Group]:
        """Получает группу по коду."""

    @abstractmethod
    async def add_member(self, membership: Membership) -> Membership:
        """
        Добавляет участника, если его ещё нет.

        Returns:
            Итоговая запись участия (существующая при повторном вступлении)
        """

    @abstractmethod
    async def get_member(self, group_id: str, user_id: str) -> Optional[Membership]:
        """Получает участие пользователя в группе."""

    @abstractmethod
    async def list_members(self, group_id: str) -> list[Membership]:
        """Все участники группы."""


class InMemoryGroupRepository(GroupRepository):
    """Хранилище групп в памяти процесса (один инстанс, тесты)."""

    def __init__(self) -> None:
        self._groups: dict[str, Group] = {}
        # group_id -> user_id -> Membership
        self._members: dict[str, dict[str, Membership]] = {}

    async def insert_if_absent(self, group: Group) -> bool:
        # Между проверкой и записью нет await, поэтому операция атомарна для event loop
        if group.group_id in self._groups:
            return False
        self._groups[group.group_id] = group
        self._members.setdefault(group.group_id, {})
        return True

    async def get(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    async def add_member(self, membership: Membership) -> Membership:
        members = self._members.setdefault(membership.group_id, {})
        return members.setdefault(membership.user_id, membership)

    async def get_member(self, group_id: str, user_id: str) -> Optional[Membership]:
        return self._members.get(group_id, {}).get(user_id)

    async def list_members(self, group_id: str) -> list[Membership]:
        return list(self._members.get(group_id, {}).values())


class RedisGroupRepository(GroupRepository):
    """
    Хранилище групп в Redis.

    Ключи:
    - group:{id}: JSON группы (SET NX)
    - group:{id}:members: hash user_id -> JSON участия (HSETNX)
    """

    GROUP_PREFIX = "group:"

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    def _group_key(self, group_id: str) -> str:
        return f"{self.GROUP_PREFIX}{group_id}"

    def _members_key(self, group_id: str) -> str:
        return f"{self.GROUP_PREFIX}{group_id}:members"

    async def insert_if_absent(self, group: Group) -> bool:
        async with redis_unavailable("create_group"):
            return await self._redis.set_model(self._group_key(group.group_id), group, nx=True)

    async def get(self, group_id: str) -> Optional[Group]:
        async with redis_unavailable("get_group"):
            return await self._redis.get_model(self._group_key(group_id), Group)

    async def add_member(self, membership: Membership) -> Membership:
        key = self._members_key(membership.group_id)
        async with redis_unavailable("join_group"):
            created = await self._redis.hsetnx(key, membership.user_id, membership.model_dump_json())
            if created:
                return membership
            raw = await self._redis.hget(key, membership.user_id)

        existing = await self._parse_member(raw)
        return existing or membership

    async def get_member(self, group_id: str, user_id: str) -> Optional[Membership]:
        async with redis_unavailable("get_member"):
            raw = await self._redis.hget(self._members_key(group_id), user_id)
        return await self._parse_member(raw)

    async def list_members(self, group_id: str) -> list[Membership]:
        async with redis_unavailable("list_members"):
            rows = await self._redis.hgetall(self._members_key(group_id))

        members = []
        for raw in rows.values():
            member = await self._parse_member(raw)
            if member is not None:
                members.append(member)
        return members

    async def _parse_member(self, raw: str | None) -> Optional[Membership]:
        if raw is None:
            return None
        try:
            return Membership.model_validate_json(raw)
        except ValidationError as e:
            await log_error(f"Повреждённая запись участника: {e}")
            return None
