# groupsync/core/geofence/__init__.py
"""
События геозон: рассылка подписчикам группы, клиентская лента, Redis relay.
"""

from groupsync.core.geofence.dispatcher import EventDispatcher, Subscription, parse_event
from groupsync.core.geofence.feed import GeofenceFeed
from groupsync.core.geofence.models import FeedItem, GeofenceEvent
from groupsync.core.geofence.relay import GeofenceRelay

__all__ = [
    "EventDispatcher",
    "Subscription",
    "parse_event",
    "GeofenceFeed",
    "FeedItem",
    "GeofenceEvent",
    "GeofenceRelay",
]
