# groupsync/core/locations/__init__.py
"""
Приём и хранение геолокации участников групп.

Обеспечивает:
- Валидацию и атомарную замену позиции с продлением TTL
- Ленивое истечение записей при чтении
- Хранение в памяти процесса или в Redis
"""

from groupsync.core.locations.models import LocationRecord
from groupsync.core.locations.store import InMemoryLocationStore, LocationStore, RedisLocationStore
from groupsync.core.locations.service import LocationIngestService, validate_coordinates

__all__ = [
    "LocationRecord",
    "LocationStore",
    "InMemoryLocationStore",
    "RedisLocationStore",
    "LocationIngestService",
    "validate_coordinates",
]
