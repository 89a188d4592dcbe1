# groupsync/client/__init__.py
"""
Клиенты API groupsync: HTTP и push-лента событий геозон.
"""

from groupsync.client.api_client import BaseClient, GroupSyncClient
from groupsync.client.geofence_listener import GeofenceListener, group_ws_url

__all__ = ["BaseClient", "GroupSyncClient", "GeofenceListener", "group_ws_url"]
