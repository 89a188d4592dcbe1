# groupsync/common/__init__.py
"""
Общие утилиты, константы, ошибки и логгер.
"""

from groupsync.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from groupsync.common.constants import TypeMsg
from groupsync.common.errors import (
    GroupSyncError,
    InvalidInputError,
    NotFoundError,
    UnavailableError,
    UnauthenticatedError,
)

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "GroupSyncError",
    "InvalidInputError",
    "NotFoundError",
    "UnavailableError",
    "UnauthenticatedError",
]
