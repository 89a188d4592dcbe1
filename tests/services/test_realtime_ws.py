# tests/services/test_realtime_ws.py
"""
Тесты WebSocket push-канала событий геозон.
"""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from groupsync.common.constants import WS_CLOSE_GROUP_NOT_FOUND, WS_CLOSE_UNAUTHENTICATED
from groupsync.services.api.app import app


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def group_id(client: TestClient) -> str:
    response = client.post("/api/v1/groups", json={"display_name": "Family"}, headers={"X-User-Id": "u1"})
    return response.json()["group_id"]


class TestGroupWebSocket:
    """Тесты /ws/groups/{group_id}."""

    def test_ping_pong(self, client: TestClient, group_id: str) -> None:
        with client.websocket_connect(f"/ws/groups/{group_id}?user_id=u1") as ws:
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_event_pushed_to_open_subscription(self, client: TestClient, group_id: str) -> None:
        """Событие, опубликованное по HTTP, приходит в открытое соединение."""
        with client.websocket_connect(f"/ws/groups/{group_id.lower()}?user_id=u1") as ws:
            response = client.post(
                f"/api/v1/groups/{group_id}/geofence-events",
                json={"type": "ENTER", "fence_id": "home", "user_id": "u2"},
                headers={"X-User-Id": "u2"},
            )
            assert response.json() == {"delivered": 1}

            message = ws.receive_json()

        assert message["type"] == "geofence"
        assert message["data"]["type"] == "ENTER"
        assert message["data"]["fence_id"] == "home"
        assert message["data"]["user_id"] == "u2"

    def test_missing_user_closed(self, client: TestClient, group_id: str) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/groups/{group_id}") as ws:
                ws.receive_json()

        assert exc_info.value.code == WS_CLOSE_UNAUTHENTICATED

    def test_unknown_group_closed(self, client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/groups/NOPE42?user_id=u1") as ws:
                ws.receive_json()

        assert exc_info.value.code == WS_CLOSE_GROUP_NOT_FOUND
