# groupsync/services/api/routes.py
"""
HTTP эндпоинты групп, локаций и событий геозон.
"""

from __future__ import annotations

from typing import Union

from fastapi import APIRouter, Depends, status

from groupsync.core.geofence import EventDispatcher, GeofenceEvent, GeofenceRelay
from groupsync.core.groups import GroupService
from groupsync.core.locations import LocationIngestService
from groupsync.core.reconciliation import Snapshot, SnapshotService
from groupsync.services.api.dependencies import (
    get_current_user_id,
    get_group_service,
    get_location_service,
    get_publisher,
    get_snapshot_service,
)
from groupsync.shared.models import (
    CreateGroupRequest,
    ErrorResponse,
    GroupResponse,
    JoinGroupRequest,
    LocationAck,
    MemberResponse,
    PublishResponse,
    ReportLocationRequest,
    UpdateStatusRequest,
)

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

router = APIRouter(prefix="/groups", tags=["Groups"], responses=_ERRORS)


# === GROUPS ===

@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    request: CreateGroupRequest,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    """Создать группу. Создатель сразу становится участником."""
    group = await service.create_group(request.display_name, user_id)
    return GroupResponse.model_validate(group)


@router.post("/{group_id}/join", response_model=GroupResponse)
async def join_group(
    group_id: str,
    request: JoinGroupRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    """Вступить в группу по коду. Повторное вступление ничего не меняет."""
    member_name = request.member_name if request else None
    group = await service.join_group(group_id, user_id, member_name)
    return GroupResponse.model_validate(group)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    return GroupResponse.model_validate(await service.get_group(group_id))


@router.get("/{group_id}/members", response_model=list[MemberResponse])
async def list_members(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service),
):
    members = await service.list_members(group_id)
    return [MemberResponse.model_validate(m) for m in members]


# === LOCATIONS ===

@router.post("/{group_id}/locations", response_model=LocationAck, tags=["Locations"])
async def report_location(
    group_id: str,
    request: ReportLocationRequest,
    user_id: str = Depends(get_current_user_id),
    service: LocationIngestService = Depends(get_location_service),
):
    """
    Сообщить позицию участника.

    updated_at назначается сервером, client_timestamp хранится только для справки.
    """
    record = await service.report_location(
        group_id=group_id,
        user_id=user_id,
        lat=request.lat,
        lng=request.lng,
        accuracy=request.accuracy,
        status=request.status,
        client_timestamp=request.client_timestamp,
    )
    return LocationAck.model_validate(record)


@router.patch("/{group_id}/locations/status", response_model=LocationAck, tags=["Locations"])
async def update_status(
    group_id: str,
    request: UpdateStatusRequest,
    user_id: str = Depends(get_current_user_id),
    service: LocationIngestService = Depends(get_location_service),
):
    record = await service.update_status(group_id, user_id, request.status)
    return LocationAck.model_validate(record)


@router.get("/{group_id}/snapshot", response_model=Snapshot, tags=["Locations"])
async def get_snapshot(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Все непросроченные записи группы с признаком online и радиусом отрисовки."""
    return await service.get_group_snapshot(group_id)


# === GEOFENCE ===

@router.post("/{group_id}/geofence-events", response_model=PublishResponse, tags=["Geofence"])
async def publish_geofence_event(
    group_id: str,
    event: GeofenceEvent,
    user_id: str = Depends(get_current_user_id),
    publisher: Union[EventDispatcher, GeofenceRelay] = Depends(get_publisher),
):
    """
    Разослать событие геозоны открытым подпискам группы.

    Подписки, открытые после публикации, событие не получат.
    """
    delivered = await publisher.publish(group_id, event)
    return PublishResponse(delivered=delivered)
