# groupsync/client/api_client.py
import httpx
from datetime import datetime
from typing import Optional, List, Dict, Any

from groupsync.common.errors import GroupSyncError, UnavailableError, error_from_payload
from groupsync.core.geofence.models import GeofenceEvent
from groupsync.core.reconciliation.models import Snapshot
from groupsync.shared.models.group_dto import GroupResponse, MemberResponse
from groupsync.shared.models.location_dto import LocationAck


class BaseClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise UnavailableError(f"Таймаут запроса {method} {path}") from e
        except httpx.TransportError as e:
            raise UnavailableError(f"Сервис недоступен: {e}") from e

        if response.is_error:
            raise self._to_error(response)
        return response.json()

    async def _get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def _post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("POST", path, json=json)

    async def _patch(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("PATCH", path, json=json)

    @staticmethod
    def _to_error(response: httpx.Response) -> GroupSyncError:
        """ErrorResponse -> исключение той же таксономии, что и на сервере."""
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and "error_code" in payload:
            return error_from_payload(payload)
        if response.status_code >= 500:
            return UnavailableError(f"HTTP {response.status_code}")
        return GroupSyncError(f"HTTP {response.status_code}: {response.text[:200]}")


class GroupSyncClient(BaseClient):
    """HTTP клиент API groupsync от имени одного пользователя."""

    def __init__(
        self,
        user_id: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if base_url is None or timeout is None:
            from groupsync.config import settings
            base_url = base_url or settings.deployment.API_BASE_URL
            timeout = timeout or settings.timeouts.HTTP_CLIENT_TIMEOUT
        self.user_id = user_id
        super().__init__(base_url, timeout, headers={"X-User-Id": user_id}, transport=transport)

    async def create_group(self, display_name: str) -> GroupResponse:
        data = await self._post("/groups", json={"display_name": display_name})
        return GroupResponse(**data)

    async def join_group(self, group_id: str, member_name: Optional[str] = None) -> GroupResponse:
        data = await self._post(f"/groups/{group_id}/join", json={"member_name": member_name})
        return GroupResponse(**data)

    async def get_group(self, group_id: str) -> GroupResponse:
        data = await self._get(f"/groups/{group_id}")
        return GroupResponse(**data)

    async def list_members(self, group_id: str) -> List[MemberResponse]:
        data = await self._get(f"/groups/{group_id}/members")
        return [MemberResponse(**item) for item in data]

    async def report_location(
        self,
        group_id: str,
        lat: float,
        lng: float,
        accuracy: Optional[float] = None,
        status: Optional[str] = None,
        client_timestamp: Optional[datetime] = None,
    ) -> LocationAck:
        body: Dict[str, Any] = {"lat": lat, "lng": lng}
        if accuracy is not None:
            body["accuracy"] = accuracy
        if status is not None:
            body["status"] = status
        if client_timestamp is not None:
            body["client_timestamp"] = client_timestamp.isoformat()
        data = await self._post(f"/groups/{group_id}/locations", json=body)
        return LocationAck(**data)

    async def update_status(self, group_id: str, status: str) -> LocationAck:
        data = await self._patch(f"/groups/{group_id}/locations/status", json={"status": status})
        return LocationAck(**data)

    async def get_snapshot(self, group_id: str) -> Snapshot:
        """Подходит как источник снапшотов для SnapshotPoller."""
        data = await self._get(f"/groups/{group_id}/snapshot")
        return Snapshot.model_validate(data)

    async def publish_geofence_event(self, group_id: str, event: GeofenceEvent) -> int:
        data = await self._post(
            f"/groups/{group_id}/geofence-events",
            json=event.model_dump(mode="json"),
        )
        return data["delivered"]
