# groupsync/services/realtime_ws/routes.py
"""
WebSocket push-канал событий геозон.

WebSocket endpoints:
- /ws/groups/{group_id}?user_id=... : события группы

Входящие сообщения:
- {"action": "ping"} -> {"type": "pong"}

Исходящие сообщения:
- {"type": "geofence", "data": GeofenceEvent}
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from groupsync.common.constants import WS_CLOSE_GROUP_NOT_FOUND, WS_CLOSE_UNAUTHENTICATED, TypeMsg
from groupsync.common.errors import NotFoundError
from groupsync.common.logger import log_info
from groupsync.core.geofence import Subscription
from groupsync.services.api.dependencies import get_dispatcher
from groupsync.shared.models import GeofenceMessage

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws/groups/{group_id}")
async def websocket_group(
    websocket: WebSocket,
    group_id: str,
    user_id: str | None = Query(default=None),
) -> None:
    """
    Подписка на события геозон группы.

    Доставка at-most-once: разрыв соединения теряет события,
    переподключение истории не получает.
    """
    if not user_id or not user_id.strip():
        await websocket.accept()
        await websocket.close(code=WS_CLOSE_UNAUTHENTICATED)
        return

    try:
        subscription = await get_dispatcher().subscribe(group_id)
    except NotFoundError:
        await websocket.accept()
        await websocket.close(code=WS_CLOSE_GROUP_NOT_FOUND)
        return

    await websocket.accept()
    await log_info(
        f"WS: {user_id} подписан на группу {subscription.group_id}",
        type_msg=TypeMsg.DEBUG,
    )

    async with subscription:
        sender = asyncio.create_task(_forward_events(websocket, subscription))
        try:
            while True:
                data = await websocket.receive_json()
                await _handle_client_message(websocket, data)

        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            try:
                await sender
            except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                pass

    await log_info(f"WS: {user_id} отключён от группы {subscription.group_id}", type_msg=TypeMsg.DEBUG)


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        message = GeofenceMessage(data=event.model_dump(mode="json"))
        await websocket.send_json(message.model_dump())


async def _handle_client_message(websocket: WebSocket, data: Any) -> None:
    """Обработать сообщение от клиента."""
    if not isinstance(data, dict):
        return

    if data.get("action") == "ping":
        await websocket.send_json({"type": "pong"})
