# groupsync/infra/timeouts.py
"""
Ограничение времени выполнения операций ядра.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from groupsync.common.errors import UnavailableError
from groupsync.common.logger import log_warning

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float | None, operation: str) -> T:
    """
    Выполняет операцию с таймаутом.

    Raises:
        UnavailableError: операция не уложилась в timeout (retryable)
    """
    if timeout is None or timeout <= 0:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        await log_warning(f"Операция {operation} превысила таймаут {timeout}с")
        raise UnavailableError(f"Операция {operation} не завершилась за {timeout}с") from e
