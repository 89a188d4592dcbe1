#!/usr/bin/env python3
"""
Entrypoint для GroupSync API.

Запуск:
    python entrypoint_api.py

Порт по умолчанию: 8095
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from groupsync.config import settings


def main() -> None:
    """Запустить GroupSync API."""
    uvicorn.run(
        "groupsync.services.api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
