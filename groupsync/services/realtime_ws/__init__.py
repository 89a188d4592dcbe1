# groupsync/services/realtime_ws/__init__.py
"""
WebSocket push-канал событий геозон.
"""

from groupsync.services.realtime_ws.routes import router

__all__ = ["router"]
