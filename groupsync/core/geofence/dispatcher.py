# groupsync/core/geofence/dispatcher.py
"""
Диспетчер событий геозон.
Управляет подписками групп и рассылкой событий.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from pydantic import ValidationError

from groupsync.common.constants import TypeMsg
from groupsync.common.errors import InvalidInputError
from groupsync.common.logger import log_info, log_warning
from groupsync.core.geofence.models import GeofenceEvent
from groupsync.core.groups.service import GroupService, normalize_group_id
from groupsync.infra.keyed_locks import KeyedLocks

# Разбуживает ожидающих receive() при закрытии подписки
_CLOSED = object()


def parse_event(event: GeofenceEvent | dict[str, Any]) -> GeofenceEvent:
    """
    Приводит входные данные к GeofenceEvent.

    Raises:
        InvalidInputError: тип не ENTER/EXIT или пустые fence_id/user_id
    """
    if isinstance(event, GeofenceEvent):
        return event
    try:
        return GeofenceEvent.model_validate(event)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ())) or "event"
        raise InvalidInputError(field, error.get("msg", "invalid value")) from None


class Subscription:
    """
    Подписка на события одной группы.

    Доставка at-most-once: событие попадает только в подписки,
    открытые на момент публикации. Истории нет.
    """

    def __init__(self, dispatcher: EventDispatcher, group_id: str, maxsize: int) -> None:
        self._dispatcher = dispatcher
        self.group_id = group_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: GeofenceEvent) -> bool:
        """Кладёт событие без ожидания. False если подписка закрыта или очередь полна."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def receive(self, timeout: float | None = None) -> Optional[GeofenceEvent]:
        """
        Следующее событие.

        Returns:
            Событие, либо None если истёк timeout или подписка закрыта
        """
        if self._closed and self._queue.empty():
            return None
        try:
            if timeout is None:
                item = await self._queue.get()
            else:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            return None
        return item

    async def close(self) -> None:
        """Снимает регистрацию подписки. Повторный вызов ничего не делает."""
        if self._closed:
            return
        self._closed = True
        await self._dispatcher._unregister(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> GeofenceEvent:
        event = await self.receive()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()


class EventDispatcher:
    """
    Рассылка событий геозон по открытым подпискам группы.

    Поддерживает:
    - Подписку и отписку по группе
    - Fan-out: каждая подписка получает свою копию
    - Ограниченные очереди подписчиков без блокировки публикации
    """

    def __init__(
        self,
        groups: GroupService | None = None,
        *,
        queue_size: int = 100,
    ) -> None:
        """
        Args:
            groups: Реестр групп для проверки существования (None = без проверки)
            queue_size: Размер очереди одной подписки
        """
        self._groups = groups
        self._queue_size = queue_size

        # group_id -> set of Subscription
        self._subscriptions: dict[str, set[Subscription]] = {}
        self._locks = KeyedLocks()

        # Для статистики
        self._total_subscriptions = 0
        self._total_published = 0
        self._total_delivered = 0
        self._total_dropped = 0

    @property
    def active_subscriptions(self) -> int:
        """Количество открытых подписок."""
        return sum(len(subs) for subs in self._subscriptions.values())

    async def subscribe(self, group_id: str) -> Subscription:
        """
        Открыть подписку на события группы.

        Raises:
            NotFoundError: группа не существует
        """
        group_id = await self.resolve_group(group_id)
        subscription = Subscription(self, group_id, self._queue_size)

        async with self._locks.acquire(group_id):
            self._subscriptions.setdefault(group_id, set()).add(subscription)

        self._total_subscriptions += 1
        await log_info(f"Открыта подписка на группу {group_id}", type_msg=TypeMsg.DEBUG)
        return subscription

    async def publish(self, group_id: str, event: GeofenceEvent | dict[str, Any]) -> int:
        """
        Опубликовать событие в группу.

        Returns:
            Количество подписок, получивших событие

        Raises:
            InvalidInputError: событие некорректно
            NotFoundError: группа не существует
        """
        event = parse_event(event)
        group_id = await self.resolve_group(group_id)
        return await self.deliver(group_id, event)

    async def deliver(self, group_id: str, event: GeofenceEvent) -> int:
        """Раздать уже проверенное событие локальным подпискам."""
        async with self._locks.acquire(group_id):
            subscribers = list(self._subscriptions.get(group_id, ()))

        self._total_published += 1
        delivered = 0
        for subscription in subscribers:
            if subscription.offer(event):
                delivered += 1
            elif not subscription.closed:
                self._total_dropped += 1
                await log_warning(
                    f"Очередь подписки группы {group_id} переполнена, событие {event.type} "
                    f"для {event.user_id} отброшено",
                )

        self._total_delivered += delivered
        return delivered

    async def resolve_group(self, group_id: str) -> str:
        """
        Канонический код существующей группы.

        Raises:
            NotFoundError: группа не существует
        """
        if self._groups is None:
            return normalize_group_id(group_id)
        group = await self._groups.get_group(group_id)
        return group.group_id

    def get_group_subscribers(self, group_id: str) -> int:
        """Число открытых подписок группы."""
        return len(self._subscriptions.get(normalize_group_id(group_id), ()))

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_subscriptions": self.active_subscriptions,
            "active_groups": len(self._subscriptions),
            "total_subscriptions_ever": self._total_subscriptions,
            "total_published": self._total_published,
            "total_delivered": self._total_delivered,
            "total_dropped": self._total_dropped,
        }

    async def _unregister(self, subscription: Subscription) -> None:
        group_id = subscription.group_id
        async with self._locks.acquire(group_id):
            subscribers = self._subscriptions.get(group_id)
            if subscribers is None:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscriptions[group_id]
