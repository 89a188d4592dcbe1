# groupsync/core/geofence/relay.py
"""
Мост событий геозон между экземплярами сервиса через Redis Pub/Sub.

Канал: geofence:group:{group_id} (с namespace RedisClient).
Событие публикуется в Redis и после этого раздаётся локальным подпискам,
остальные экземпляры раздают его своим подпискам.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from uuid import uuid4

from pydantic import ValidationError
from redis.exceptions import RedisError

from groupsync.common.constants import TypeMsg
from groupsync.common.logger import log_error, log_info, log_warning
from groupsync.core.geofence.dispatcher import EventDispatcher, parse_event
from groupsync.core.geofence.models import GeofenceEvent
from groupsync.infra.redis_client import RedisClient, redis_unavailable


class GeofenceRelay:
    """
    Подписчик на Redis Pub/Sub для событий геозон.

    Получает сообщения других экземпляров и пересылает их
    в локальный EventDispatcher.
    """

    def __init__(
        self,
        redis: RedisClient,
        dispatcher: EventDispatcher,
        channel_prefix: str = "geofence:group:",
        error_backoff: float = 0.1,
    ) -> None:
        """
        Args:
            redis: Клиент Redis
            dispatcher: Локальный диспетчер
            channel_prefix: Префикс каналов групп
            error_backoff: Пауза после необработанной ошибки в цикле чтения
        """
        self._redis = redis
        self._dispatcher = dispatcher
        self._prefix = channel_prefix
        self._error_backoff = error_backoff
        self._instance_id = uuid4().hex
        self._pubsub = None
        self._task: asyncio.Task | None = None
        self._running = False

        # Статистика
        self._relayed_out = 0
        self._relayed_in = 0
        self._malformed = 0

    @property
    def instance_id(self) -> str:
        return self._instance_id

    def channel_for(self, group_id: str) -> str:
        return f"{self._prefix}{group_id}"

    async def start(self) -> None:
        """Запустить подписчика."""
        if self._running:
            return

        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(self._redis.make_key(f"{self._prefix}*"))
        self._running = True

        self._task = asyncio.create_task(self._listen())
        await log_info("Relay событий геозон запущен", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Остановить подписчика."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub:
            await self._pubsub.punsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None

        await log_info("Relay событий геозон остановлен", type_msg=TypeMsg.INFO)

    async def publish(self, group_id: str, event: GeofenceEvent | dict[str, Any]) -> int:
        """
        Отправить событие другим экземплярам и раздать локально.

        Локальные подписки получают событие только после успешной
        публикации в Redis. При UnavailableError событие не раздано никому.

        Returns:
            Количество локальных подписок, получивших событие

        Raises:
            InvalidInputError: событие некорректно
            NotFoundError: группа не существует
            UnavailableError: Redis недоступен
        """
        event = parse_event(event)
        group_id = await self._dispatcher.resolve_group(group_id)

        envelope = json.dumps(
            {
                "origin": self._instance_id,
                "event": event.model_dump(mode="json"),
            },
            ensure_ascii=False,
        )
        async with redis_unavailable("relay_publish"):
            await self._redis.publish(self.channel_for(group_id), envelope)

        self._relayed_out += 1
        return await self._dispatcher.deliver(group_id, event)

    async def _listen(self) -> None:
        """Слушать сообщения из Redis."""
        while self._running:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )

                if message is None:
                    continue

                await self.process_message(message)

            except asyncio.CancelledError:
                break
            except RedisError as e:
                await log_error(f"Ошибка подписки Redis: {e}")
                await asyncio.sleep(1)
            except Exception as e:
                # Например, не-UTF-8 payload при decode_responses=True
                self._malformed += 1
                await log_error(f"Ошибка обработки сообщения relay: {e!r}")
                await asyncio.sleep(self._error_backoff)

    async def process_message(self, message: dict[str, Any]) -> bool:
        """
        Обработать сообщение из Redis.

        Returns:
            True если событие раздано локальным подпискам
        """
        if message.get("type") not in ("message", "pmessage"):
            return False

        channel = _as_text(message.get("channel", ""))
        prefix = self._redis.make_key(self._prefix)
        if not channel.startswith(prefix):
            return False
        group_id = channel[len(prefix):]

        try:
            payload = json.loads(_as_text(message.get("data", "")))
            if payload.get("origin") == self._instance_id:
                return False
            event = GeofenceEvent.model_validate(payload["event"])
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, ValidationError) as e:
            self._malformed += 1
            await log_warning(f"Пропущено некорректное сообщение в канале {channel}: {e}")
            return False

        await self._dispatcher.deliver(group_id, event)
        self._relayed_in += 1
        return True

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "relayed_out": self._relayed_out,
            "relayed_in": self._relayed_in,
            "malformed": self._malformed,
        }


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
