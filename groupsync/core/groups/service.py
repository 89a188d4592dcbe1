# groupsync/core/groups/service.py
"""
Реестр групп: создание, вступление по коду, список участников.
"""

from __future__ import annotations

import secrets
from typing import Optional

from groupsync.common.constants import GROUP_CODE_ALPHABET, TypeMsg
from groupsync.common.errors import InvalidInputError, NotFoundError, UnavailableError
from groupsync.common.logger import log_info
from groupsync.core.groups.models import Group, Membership
from groupsync.core.groups.repository import GroupRepository
from groupsync.infra.clock import Clock, utc_now


def normalize_group_id(group_id: str) -> str:
    """Коды вводятся руками, приводим к каноническому виду."""
    return (group_id or "").strip().upper()


class GroupService:
    """
    Сервис реестра групп.

    Ответственности:
    - Генерация коротких кодов без коллизий
    - Идемпотентное вступление в группу
    - Поиск группы и её участников
    """

    def __init__(
        self,
        repository: GroupRepository,
        *,
        code_length: int = 6,
        code_attempts: int = 10,
        name_max_length: int = 64,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._code_length = code_length
        self._code_attempts = code_attempts
        self._name_max_length = name_max_length
        self._clock = clock

    def generate_code(self) -> str:
        """Случайный код группы."""
        return "".join(secrets.choice(GROUP_CODE_ALPHABET) for _ in range(self._code_length))

    async def create_group(self, display_name: str, creator_id: str) -> Group:
        """
        Создаёт группу и добавляет в неё создателя.

        Raises:
            InvalidInputError: пустое или слишком длинное название
            UnavailableError: не удалось подобрать свободный код
        """
        name = (display_name or "").strip()
        if not name:
            raise InvalidInputError("display_name", "must not be empty")
        if len(name) > self._name_max_length:
            raise InvalidInputError("display_name", f"max length is {self._name_max_length}")

        for _ in range(self._code_attempts):
            group = Group(
                group_id=self.generate_code(),
                display_name=name,
                created_at=self._clock(),
                created_by=creator_id,
            )
            if await self._repository.insert_if_absent(group):
                break
        else:
            raise UnavailableError("Не удалось подобрать свободный код группы")

        await self._repository.add_member(
            Membership(group_id=group.group_id, user_id=creator_id, joined_at=group.created_at)
        )
        await log_info(f"Группа {group.group_id} создана пользователем {creator_id}", type_msg=TypeMsg.INFO)
        return group

    async def join_group(self, group_id: str, user_id: str, member_name: Optional[str] = None) -> Group:
        """
        Добавляет пользователя в группу.
        Повторное вступление ничего не меняет и не является ошибкой.
        """
        group = await self.get_group(group_id)

        name = member_name.strip() if member_name else None
        membership = await self._repository.add_member(
            Membership(
                group_id=group.group_id,
                user_id=user_id,
                member_name=name or None,
                joined_at=self._clock(),
            )
        )
        await log_info(
            f"Пользователь {user_id} в группе {group.group_id} (с {membership.joined_at.isoformat()})",
            type_msg=TypeMsg.DEBUG,
        )
        return group

    async def get_group(self, group_id: str) -> Group:
        """
        Raises:
            NotFoundError: группы нет
        """
        code = normalize_group_id(group_id)
        group = await self._repository.get(code) if code else None
        if group is None:
            raise NotFoundError(f"Группа {code or group_id!r} не найдена", field="group_id")
        return group

    async def list_members(self, group_id: str) -> list[Membership]:
        group = await self.get_group(group_id)
        members = await self._repository.list_members(group.group_id)
        return sorted(members, key=lambda m: (m.joined_at, m.user_id))

    async def is_member(self, group_id: str, user_id: str) -> bool:
        membership = await self._repository.get_member(normalize_group_id(group_id), user_id)
        return membership is not None
