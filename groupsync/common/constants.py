# groupsync/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class GeofenceEventType(str, Enum):
    """Тип пересечения границы геозоны."""
    ENTER = "ENTER"
    EXIT = "EXIT"

    def __str__(self) -> str:
        return self.value


class DiffKind(str, Enum):
    """Вид изменения состава группы при сверке снапшотов."""
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"

    def __str__(self) -> str:
        return self.value


class StorageBackend(str, Enum):
    """Поддерживаемые хранилища состояния."""
    MEMORY = "memory"
    REDIS = "redis"


# Алфавит кодов групп: без 0/O и 1/I, чтобы код можно было продиктовать
GROUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# Коды закрытия WebSocket в диапазоне приложения 4000-4999
WS_CLOSE_UNAUTHENTICATED = 4401
WS_CLOSE_GROUP_NOT_FOUND = 4404
