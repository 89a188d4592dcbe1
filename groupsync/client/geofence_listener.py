# groupsync/client/geofence_listener.py
"""
Push-потребитель событий геозон группы.

Подключается к /ws/groups/{group_id}, складывает события в ограниченную
ленту GeofenceFeed и переподключается при разрыве. События, пришедшие
во время разрыва, теряются: доставка at-most-once.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import httpx
import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed

from groupsync.common.constants import WS_CLOSE_GROUP_NOT_FOUND, WS_CLOSE_UNAUTHENTICATED, TypeMsg
from groupsync.common.errors import NotFoundError, UnauthenticatedError
from groupsync.common.logger import log_error, log_info, log_warning
from groupsync.core.geofence.feed import GeofenceFeed
from groupsync.core.geofence.models import FeedItem, GeofenceEvent

FeedCallback = Callable[[FeedItem], Awaitable[None]]


def group_ws_url(base_url: str, group_id: str, user_id: str) -> str:
    """
    Адрес WebSocket группы по базовому адресу HTTP API.

    http://host:8000/api/v1 -> ws://host:8000/ws/groups/{group_id}?user_id=...
    """
    url = httpx.URL(base_url)
    scheme = "wss" if url.scheme == "https" else "ws"
    return str(url.copy_with(scheme=scheme, path=f"/ws/groups/{group_id}", params={"user_id": user_id}))


class GeofenceListener:
    """Лента уведомлений о геозонах одной группы от имени пользователя."""

    def __init__(
        self,
        group_id: str,
        user_id: str,
        *,
        base_url: Optional[str] = None,
        feed: Optional[GeofenceFeed] = None,
        on_item: Optional[FeedCallback] = None,
        retry_delay: float = 5.0,
    ) -> None:
        """
        Args:
            group_id: Код группы
            user_id: Идентичность пользователя
            base_url: Базовый адрес HTTP API (по умолчанию из настроек)
            feed: Лента (по умолчанию GeofenceFeed на FEED_LIMIT элементов)
            on_item: Callback для каждого нового элемента ленты
            retry_delay: Пауза перед переподключением в секундах
        """
        if base_url is None or feed is None:
            from groupsync.config import settings
            base_url = base_url or settings.deployment.API_BASE_URL
            feed = feed if feed is not None else GeofenceFeed(limit=settings.geofence.FEED_LIMIT)

        self.group_id = group_id
        self.user_id = user_id
        self.url = group_ws_url(base_url, group_id, user_id)
        self.feed = feed
        self._on_item = on_item
        self._retry_delay = retry_delay

    async def run(self) -> None:
        """
        Слушать события до отмены задачи.

        Raises:
            UnauthenticatedError: сервер отклонил идентичность
            NotFoundError: группа не существует
        """
        while True:
            try:
                async with websockets.connect(self.url) as websocket:
                    await log_info(f"Подключено к событиям группы {self.group_id}", type_msg=TypeMsg.INFO)
                    async for raw in websocket:
                        await self.handle_message(raw)
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                code = e.rcvd.code if e.rcvd is not None else None
                if code == WS_CLOSE_UNAUTHENTICATED:
                    raise UnauthenticatedError(f"Сервер отклонил пользователя {self.user_id}") from e
                if code == WS_CLOSE_GROUP_NOT_FOUND:
                    raise NotFoundError(f"Группа {self.group_id} не найдена", field="group_id") from e
                await log_warning(f"Соединение с группой {self.group_id} закрыто (code={code})")
            except Exception as e:
                await log_error(f"Ошибка WS группы {self.group_id}: {e!r}")

            await asyncio.sleep(self._retry_delay)

    async def handle_message(self, raw: str | bytes) -> Optional[FeedItem]:
        """
        Разобрать сообщение сервера и добавить событие в ленту.

        Returns:
            Новый элемент ленты или None (не событие, мусор, повтор)
        """
        try:
            message: Any = json.loads(raw)
            if message.get("type") != "geofence":
                return None
            event = GeofenceEvent.model_validate(message["data"])
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, AttributeError, ValidationError) as e:
            await log_warning(f"Пропущено некорректное сообщение группы {self.group_id}: {e}")
            return None

        known = {item.id for item in self.feed.items}
        item = self.feed.push(event)
        if item.id in known:
            return None

        if self._on_item is not None:
            await self._on_item(item)
        return item
