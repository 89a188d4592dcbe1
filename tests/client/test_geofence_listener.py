# tests/client/test_geofence_listener.py
"""
Тесты push-ленты событий геозон на стороне клиента.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from groupsync.client import GeofenceListener, group_ws_url
from groupsync.client import geofence_listener
from groupsync.common.constants import WS_CLOSE_GROUP_NOT_FOUND, WS_CLOSE_UNAUTHENTICATED
from groupsync.common.errors import NotFoundError, UnauthenticatedError
from groupsync.core.geofence import GeofenceFeed

BASE_URL = "http://groupsync.test:8000/api/v1"


def geofence_message(fence_id: str = "home", user_id: str = "u2", at: str = "2024-06-01T12:05:00Z") -> str:
    return json.dumps(
        {"type": "geofence", "data": {"type": "ENTER", "fence_id": fence_id, "user_id": user_id, "at": at}}
    )


class FakeConnection:
    """Соединение, которое отдаёт заготовленные сообщения и закрывается с кодом."""

    def __init__(self, messages: list[str], close_code: int) -> None:
        self._messages = messages
        self._close_code = close_code

    async def __aenter__(self) -> "FakeConnection":
        return self

    async def __aexit__(self, *exc) -> bool:
        return False

    async def __aiter__(self):
        for message in self._messages:
            yield message
        raise ConnectionClosedError(Close(self._close_code, "closed"), None)


def make_listener(**kwargs) -> GeofenceListener:
    kwargs.setdefault("feed", GeofenceFeed(limit=3))
    return GeofenceListener("ABC123", "u1", base_url=BASE_URL, retry_delay=0, **kwargs)


class TestGroupWsUrl:
    """Адрес WebSocket по адресу HTTP API."""

    def test_http_to_ws(self) -> None:
        assert group_ws_url(BASE_URL, "ABC123", "u1") == "ws://groupsync.test:8000/ws/groups/ABC123?user_id=u1"

    def test_https_to_wss(self) -> None:
        url = group_ws_url("https://example.org/api/v1", "ABC123", "u 1")
        assert url.startswith("wss://example.org/ws/groups/ABC123?user_id=")


class TestGeofenceListener:
    """Тесты для GeofenceListener."""

    def test_default_feed_limit_from_settings(self) -> None:
        from groupsync.config import settings

        listener = GeofenceListener("ABC123", "u1", base_url=BASE_URL)

        assert listener.feed.limit == settings.geofence.FEED_LIMIT

    @pytest.mark.asyncio
    async def test_event_added_to_feed(self) -> None:
        on_item = AsyncMock()
        listener = make_listener(on_item=on_item)

        item = await listener.handle_message(geofence_message())

        assert item is not None
        assert (item.event.fence_id, item.event.user_id) == ("home", "u2")
        assert listener.feed.items == [item]
        on_item.assert_awaited_once_with(item)

    @pytest.mark.asyncio
    async def test_repeated_event_ignored(self) -> None:
        on_item = AsyncMock()
        listener = make_listener(on_item=on_item)

        await listener.handle_message(geofence_message())
        assert await listener.handle_message(geofence_message()) is None

        assert len(listener.feed) == 1
        assert on_item.await_count == 1

    @pytest.mark.asyncio
    async def test_feed_bounded(self) -> None:
        listener = make_listener()

        for i in range(5):
            await listener.handle_message(geofence_message(fence_id=f"fence{i}"))

        assert [item.event.fence_id for item in listener.feed.items] == ["fence4", "fence3", "fence2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            json.dumps({"type": "pong"}),
            "not json",
            b"\xff\xfe",
            json.dumps({"type": "geofence", "data": {"type": "JUMP", "fence_id": "a", "user_id": "b"}}),
            json.dumps(["list"]),
        ],
    )
    async def test_other_messages_skipped(self, raw) -> None:
        listener = make_listener()

        assert await listener.handle_message(raw) is None
        assert len(listener.feed) == 0

    @pytest.mark.asyncio
    async def test_reconnects_until_group_missing(self) -> None:
        """Сетевая ошибка и аварийное закрытие ведут к переподключению, 4404 завершает работу."""
        listener = make_listener()
        connect = MagicMock(
            side_effect=[
                OSError("refused"),
                FakeConnection([geofence_message(fence_id="school")], 1011),
                FakeConnection([geofence_message(fence_id="home")], WS_CLOSE_GROUP_NOT_FOUND),
            ]
        )

        with patch.object(geofence_listener.websockets, "connect", connect):
            with pytest.raises(NotFoundError):
                await listener.run()

        assert connect.call_count == 3
        connect.assert_called_with(listener.url)
        assert [item.event.fence_id for item in listener.feed.items] == ["home", "school"]

    @pytest.mark.asyncio
    async def test_rejected_identity_stops(self) -> None:
        listener = make_listener()
        connect = MagicMock(return_value=FakeConnection([], WS_CLOSE_UNAUTHENTICATED))

        with patch.object(geofence_listener.websockets, "connect", connect):
            with pytest.raises(UnauthenticatedError):
                await listener.run()

        assert connect.call_count == 1
