# groupsync/core/geofence/feed.py
"""
Ограниченная лента уведомлений о геозонах на стороне клиента.
"""

from __future__ import annotations

from collections import deque
from typing import Optional

from groupsync.core.geofence.models import FeedItem, GeofenceEvent


class GeofenceFeed:
    """
    Последние limit уведомлений, новые сверху.

    Повторная доставка того же события (type, fence_id, user_id, at)
    не создаёт второй элемент.
    """

    def __init__(self, limit: int = 6) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit
        self._items: deque[FeedItem] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def items(self) -> list[FeedItem]:
        return list(self._items)

    def push(self, event: GeofenceEvent) -> FeedItem:
        existing = self._find(event)
        if existing is not None:
            return existing

        item = FeedItem(event=event)
        self._items.appendleft(item)
        while len(self._items) > self._limit:
            self._items.pop()
        return item

    def dismiss(self, item_id: str) -> bool:
        """Убирает один элемент по id. False если такого нет."""
        for item in self._items:
            if item.id == item_id:
                self._items.remove(item)
                return True
        return False

    def clear(self) -> None:
        self._items.clear()

    def _find(self, event: GeofenceEvent) -> Optional[FeedItem]:
        identity = event.identity
        for item in self._items:
            if item.event.identity == identity:
                return item
        return None

    def __len__(self) -> int:
        return len(self._items)
