#!/usr/bin/env python3
# main.py
"""
Главная точка входа groupsync.
Запускает HTTP/WebSocket API, консольный опрос снапшотов или ленту событий геозон.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from groupsync.config import settings
from groupsync.common.logger import setup_logging, log_info, log_error
from groupsync.common.constants import TypeMsg


# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_api() -> None:
    """Запускает HTTP API и WebSocket push-канал."""
    import uvicorn

    await log_info(
        f"Запуск GroupSync API на порту {settings.deployment.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "groupsync.services.api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("GroupSync API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_poller(group_id: str, user_id: str) -> None:
    """
    Опрашивает снапшот группы через HTTP API и печатает изменения.
    Удобно для ручной проверки работающего сервиса.
    """
    from groupsync.client import GroupSyncClient
    from groupsync.core.reconciliation import ReconciliationContext, SnapshotPoller

    async def print_diffs(diffs) -> None:
        for diff in diffs:
            if diff.record is None:
                print(f"[{diff.kind}] {diff.user_id}")
            else:
                r = diff.record
                print(f"[{diff.kind}] {diff.user_id}: {r.lat:.5f},{r.lng:.5f} ±{r.accuracy:.0f}м {r.status!r}")

    async with GroupSyncClient(user_id) as client:
        poller = SnapshotPoller(
            group_id,
            client.get_snapshot,
            print_diffs,
            context=ReconciliationContext(self_user_id=user_id),
            poll_interval=settings.timeouts.POLL_INTERVAL,
            timeout=settings.timeouts.HTTP_CLIENT_TIMEOUT,
        )
        await poller.start()
        try:
            await _shutdown_event.wait()
        finally:
            await poller.stop()


async def run_listener(group_id: str, user_id: str) -> None:
    """Слушает события геозон группы и печатает новые элементы ленты."""
    from groupsync.client import GeofenceListener

    async def print_item(item) -> None:
        event = item.event
        print(f"[{event.type}] {event.user_id} {event.fence_id} {event.at:%H:%M:%S} (в ленте {len(listener.feed)})")

    listener = GeofenceListener(group_id, user_id, on_item=print_item)
    listen_task = asyncio.create_task(listener.run())
    stop_task = asyncio.create_task(_shutdown_event.wait())
    done, _ = await asyncio.wait({listen_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    for task in (listen_task, stop_task):
        if not task.done():
            task.cancel()
    await asyncio.gather(listen_task, stop_task, return_exceptions=True)

    if listen_task in done:
        # Группа не найдена или пользователь отклонён
        listen_task.result()


async def main(mode: str = "api", args: list[str] | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска (api, poll, listen)
        args: Аргументы режима (для poll и listen: group_id user_id)
    """
    setup_logging()
    setup_signal_handlers()
    args = args or []

    await log_info(
        f"GroupSync v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "api":
            api_task = asyncio.create_task(run_api())
            stop_task = asyncio.create_task(_shutdown_event.wait())
            await asyncio.wait({api_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            for task in (api_task, stop_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(api_task, stop_task, return_exceptions=True)
        elif mode == "poll":
            if len(args) < 2:
                print_usage()
                return
            await run_poller(args[0], args[1])
        elif mode == "listen":
            if len(args) < 2:
                print_usage()
                return
            await run_listener(args[0], args[1])
        else:
            print_usage()
    except asyncio.CancelledError:
        await log_info("Задача отменена, выполняется graceful shutdown", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}")
        raise
    finally:
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print(f"""
GroupSync v{settings.system.VERSION}: общие локации и события геозон для групп

Использование:
    python main.py [mode] [args]

Режимы:
    api                          HTTP API + WebSocket (:{settings.deployment.API_PORT})
    poll <group_id> <user_id>    Опрос снапшотов группы через API
    listen <group_id> <user_id>  Лента событий геозон группы через WebSocket

Примеры:
    python main.py
    python main.py poll ABC123 u1
    python main.py listen ABC123 u1
    STORAGE_BACKEND=redis python main.py api
    """)


if __name__ == "__main__":
    mode = "api"
    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        mode = arg

    try:
        asyncio.run(main(mode, sys.argv[2:]))
    except KeyboardInterrupt:
        print("\nЗавершение работы...")
