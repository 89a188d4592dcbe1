# groupsync/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секреты и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from groupsync.common.constants import StorageBackend


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить GROUPSYNC_CONFIG)."""
    override = os.getenv("GROUPSYNC_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "groupsync"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Настройки развертывания API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8095
    API_BASE_URL: str = "http://localhost:8095/api/v1"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "groupsync"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class PresenceSettings(BaseModel):
    """Параметры присутствия и хранения локаций."""
    STORAGE_BACKEND: StorageBackend = StorageBackend.MEMORY
    LOCATION_TTL: int = 900  # 15 минут
    ONLINE_WINDOW: int = 60
    MIN_DISPLAY_RADIUS: float = 10.0
    MAX_DISPLAY_RADIUS: float = 200.0
    DEFAULT_ACCURACY: float = 30.0
    STATUS_MAX_LENGTH: int = 140
    GROUP_NAME_MAX_LENGTH: int = 64
    GROUP_CODE_LENGTH: int = 6
    GROUP_CODE_ATTEMPTS: int = 10

    @model_validator(mode="after")
    def check_windows(self) -> "PresenceSettings":
        """Окно online короче TTL, полоса радиуса не пустая."""
        if self.ONLINE_WINDOW >= self.LOCATION_TTL:
            raise ValueError("ONLINE_WINDOW должен быть меньше LOCATION_TTL")
        if self.MIN_DISPLAY_RADIUS > self.MAX_DISPLAY_RADIUS:
            raise ValueError("MIN_DISPLAY_RADIUS больше MAX_DISPLAY_RADIUS")
        return self


class TimeoutSettings(BaseModel):
    """Настройки таймаутов и интервалов."""
    OPERATION_TIMEOUT: float = 3.0
    POLL_INTERVAL: float = 5.0
    HTTP_CLIENT_TIMEOUT: float = 10.0


class GeofenceSettings(BaseModel):
    """Настройки доставки событий геозон."""
    FEED_LIMIT: int = 6
    SUBSCRIBER_QUEUE_SIZE: int = 100
    RELAY_ENABLED: bool = False
    RELAY_CHANNEL_PREFIX: str = "geofence:group:"


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    presence: PresenceSettings = Field(default_factory=PresenceSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    geofence: GeofenceSettings = Field(default_factory=GeofenceSettings)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Плоские ключи раскладываются по секциям, переменные окружения
        имеют приоритет для инфраструктурных параметров.
        """
        data = load_config_json(path)

        def pick(section: type[BaseModel], env_keys: tuple[str, ...] = ()) -> dict[str, Any]:
            values = {name: data[name] for name in section.model_fields if name in data}
            for key in env_keys:
                env_value = os.getenv(key)
                if env_value:
                    values[key] = env_value
            return values

        return cls(
            system=SystemSettings(**pick(SystemSettings, ("ENVIRONMENT",))),
            deployment=DeploymentSettings(**pick(DeploymentSettings, ("API_HOST", "API_PORT", "API_BASE_URL"))),
            logging=LoggingSettings(**pick(LoggingSettings, ("LOG_LEVEL",))),
            redis=RedisSettings(**pick(RedisSettings, ("REDIS_HOST", "REDIS_PORT", "REDIS_DB", "REDIS_PASSWORD"))),
            presence=PresenceSettings(**pick(PresenceSettings, ("STORAGE_BACKEND",))),
            timeouts=TimeoutSettings(**pick(TimeoutSettings)),
            geofence=GeofenceSettings(**pick(GeofenceSettings, ("RELAY_ENABLED",))),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
