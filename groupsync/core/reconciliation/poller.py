# groupsync/core/reconciliation/poller.py
"""
Цикл опроса снапшотов группы.

Раз в poll_interval читает снапшот из источника (HTTP клиент или
SnapshotService в том же процессе), сверяет его с контекстом и отдаёт
изменения в callback.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from groupsync.common.constants import TypeMsg
from groupsync.common.errors import GroupSyncError
from groupsync.common.logger import log_error, log_info, log_warning
from groupsync.core.reconciliation.engine import ReconciliationContext
from groupsync.core.reconciliation.models import MemberDiff, Snapshot

SnapshotSource = Callable[[str], Awaitable[Snapshot]]
DiffCallback = Callable[[list[MemberDiff]], Awaitable[None]]


class SnapshotPoller:
    """
    Фоновый опрос снапшотов одной группы.

    Ошибка чтения означает «изменений в этом цикле нет»:
    контекст не трогается, цикл продолжается на следующем тике.
    """

    def __init__(
        self,
        group_id: str,
        source: SnapshotSource,
        on_diff: DiffCallback,
        *,
        context: ReconciliationContext | None = None,
        poll_interval: float = 5.0,
        timeout: float | None = None,
    ) -> None:
        """
        Args:
            group_id: Код группы
            source: Корутина, возвращающая снапшот группы
            on_diff: Callback со списком изменений (вызывается только если он не пуст)
            context: Контекст сессии (по умолчанию новый пустой)
            poll_interval: Интервал опроса в секундах
            timeout: Таймаут одного чтения (None = без ограничения)
        """
        self._group_id = group_id
        self._source = source
        self._on_diff = on_diff
        self.context = context or ReconciliationContext()
        self._poll_interval = poll_interval
        self._timeout = timeout

        self._task: asyncio.Task | None = None
        self._running = False

        # Статистика
        self._polls = 0
        self._failures = 0
        self._callback_errors = 0
        self._diffs_delivered = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запустить опрос."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        await log_info(f"Опрос группы {self._group_id} запущен", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Остановить опрос."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await log_info(f"Опрос группы {self._group_id} остановлен", type_msg=TypeMsg.INFO)

    async def poll_once(self) -> list[MemberDiff]:
        """
        Один цикл: чтение, сверка, callback.

        Исключения источника и callback не выходят наружу,
        они считаются в статистике и логируются.

        Returns:
            Список изменений (пустой при ошибке чтения)
        """
        self._polls += 1
        try:
            if self._timeout:
                snapshot = await asyncio.wait_for(self._source(self._group_id), timeout=self._timeout)
            else:
                snapshot = await self._source(self._group_id)
        except (GroupSyncError, asyncio.TimeoutError) as e:
            self._failures += 1
            await log_warning(f"Снапшот группы {self._group_id} не получен: {e}")
            return []
        except Exception as e:
            # Например, некорректное тело ответа
            self._failures += 1
            await log_error(f"Ошибка чтения снапшота группы {self._group_id}: {e!r}")
            return []

        diffs = self.context.apply(snapshot)
        if diffs:
            self._diffs_delivered += len(diffs)
            try:
                await self._on_diff(diffs)
            except Exception as e:
                self._callback_errors += 1
                await log_error(f"Ошибка обработчика изменений группы {self._group_id}: {e!r}")
        return diffs

    async def _loop(self) -> None:
        while self._running:
            await self.poll_once()
            await asyncio.sleep(self._poll_interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            "polls": self._polls,
            "failures": self._failures,
            "callback_errors": self._callback_errors,
            "diffs_delivered": self._diffs_delivered,
            "tracked_members": len(self.context),
        }
