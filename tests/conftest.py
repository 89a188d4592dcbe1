# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["RELAY_ENABLED"] = "false"
os.environ.setdefault("REDIS_PASSWORD", "")

from groupsync.core.groups import GroupService, InMemoryGroupRepository
from groupsync.core.locations import InMemoryLocationStore, LocationIngestService
from groupsync.core.reconciliation import SnapshotService
from groupsync.infra.clock import ManualClock


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "игнорируется",
        "PROJECT_NAME": "groupsync_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "API_HOST": "127.0.0.1",
        "API_PORT": 9000,
        "API_BASE_URL": "http://127.0.0.1:9000/api/v1",
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_PASSWORD": "",
        "REDIS_NAMESPACE": "groupsync_test",
        "REDIS_MAX_CONNECTIONS": 10,
        "STORAGE_BACKEND": "memory",
        "LOCATION_TTL": 900,
        "ONLINE_WINDOW": 60,
        "MIN_DISPLAY_RADIUS": 10.0,
        "MAX_DISPLAY_RADIUS": 200.0,
        "DEFAULT_ACCURACY": 30.0,
        "STATUS_MAX_LENGTH": 140,
        "GROUP_NAME_MAX_LENGTH": 64,
        "GROUP_CODE_LENGTH": 6,
        "GROUP_CODE_ATTEMPTS": 10,
        "OPERATION_TIMEOUT": 3.0,
        "POLL_INTERVAL": 5.0,
        "HTTP_CLIENT_TIMEOUT": 10.0,
        "FEED_LIMIT": 6,
        "SUBSCRIBER_QUEUE_SIZE": 100,
        "RELAY_ENABLED": False,
        "RELAY_CHANNEL_PREFIX": "geofence:group:",
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок RedisClient: namespace добавляется как в настоящем клиенте."""
    redis = AsyncMock()
    redis.make_key = MagicMock(side_effect=lambda key: f"test:{key}")
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.mget = AsyncMock(return_value=[])
    redis.get_model = AsyncMock(return_value=None)
    redis.set_model = AsyncMock(return_value=True)
    redis.hget = AsyncMock(return_value=None)
    redis.hsetnx = AsyncMock(return_value=True)
    redis.hgetall = AsyncMock(return_value={})
    redis.smembers = AsyncMock(return_value=set())
    redis.eval = AsyncMock(return_value=0)
    redis.publish = AsyncMock(return_value=1)

    # WATCH/MULTI пайплайн: async with, немедленные watch/get, буферизованные команды после multi()
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.watch = AsyncMock(return_value=True)
    pipe.get = AsyncMock(return_value=None)
    pipe.execute = AsyncMock(return_value=[True, True, 1])
    redis.pipeline = MagicMock(return_value=pipe)
    return redis


# =============================================================================
# ФИКСТУРЫ ЯДРА
# =============================================================================

@pytest.fixture
def start_time() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time: datetime) -> ManualClock:
    """Управляемые часы сервера."""
    return ManualClock(start_time)


@pytest.fixture
def group_service(clock: ManualClock) -> GroupService:
    return GroupService(InMemoryGroupRepository(), clock=clock)


@pytest.fixture
def location_store() -> InMemoryLocationStore:
    return InMemoryLocationStore()


@pytest.fixture
def location_service(
    location_store: InMemoryLocationStore,
    group_service: GroupService,
    clock: ManualClock,
) -> LocationIngestService:
    return LocationIngestService(location_store, group_service, clock=clock)


@pytest.fixture
def snapshot_service(
    location_store: InMemoryLocationStore,
    group_service: GroupService,
    clock: ManualClock,
) -> SnapshotService:
    return SnapshotService(location_store, group_service, clock=clock)
