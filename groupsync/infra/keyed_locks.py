# groupsync/infra/keyed_locks.py
"""
Реестр asyncio-блокировок по ключу.

Записи для разных ключей не координируются между собой,
записи для одного ключа выполняются строго по очереди.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    """
    Блокировка на ключ с автоматической очисткой.

    Запись удаляется из реестра, когда последний ожидающий её отпустил,
    поэтому реестр не растёт с числом когда-либо писавших пар.
    """

    def __init__(self) -> None:
        # key -> (lock, число держателей и ожидающих)
        self._locks: dict[Hashable, tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        """Захватывает блокировку ключа на время контекста."""
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)

        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)
