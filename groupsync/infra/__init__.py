# groupsync/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: Redis, часы сервера, блокировки по ключу.
"""

from groupsync.infra.redis_client import RedisClient, get_redis
from groupsync.infra.clock import Clock, utc_now
from groupsync.infra.keyed_locks import KeyedLocks

__all__ = [
    "RedisClient",
    "get_redis",
    "Clock",
    "utc_now",
    "KeyedLocks",
]
