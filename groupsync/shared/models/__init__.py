# groupsync/shared/models/__init__.py
"""
DTO и общие модели HTTP/WebSocket поверхности.
"""

from groupsync.shared.models.common import ErrorResponse, HealthStatus
from groupsync.shared.models.geofence_dto import GeofenceMessage, PublishResponse
from groupsync.shared.models.group_dto import CreateGroupRequest, GroupResponse, JoinGroupRequest, MemberResponse
from groupsync.shared.models.location_dto import LocationAck, ReportLocationRequest, UpdateStatusRequest

__all__ = [
    "ErrorResponse",
    "HealthStatus",
    "GeofenceMessage",
    "PublishResponse",
    "CreateGroupRequest",
    "GroupResponse",
    "JoinGroupRequest",
    "MemberResponse",
    "LocationAck",
    "ReportLocationRequest",
    "UpdateStatusRequest",
]
