# groupsync/infra/redis_client.py
"""
Клиент Redis для хранения групп, локаций и Pub/Sub геозон.
Поддерживает типизированные операции с Pydantic моделями.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, TypeVar, Type

import redis.asyncio as redis
from pydantic import BaseModel
from redis.exceptions import RedisError

from groupsync.common.errors import UnavailableError
from groupsync.common.logger import get_logger, log_error, log_info
from groupsync.common.constants import TypeMsg

logger = get_logger("redis")

T = TypeVar("T", bound=BaseModel)


class RedisClient:
    """
    Асинхронный клиент Redis.
    Поддерживает:
    - Типизированные get/set с Pydantic моделями
    - Hash и Set операции
    - Пайплайны (MULTI/EXEC) для атомарной записи
    - Публикацию и подписку Pub/Sub
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "groupsync"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей
        """
        if self._client is not None:
            return

        if url is None:
            from groupsync.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            namespace = namespace or settings.redis.REDIS_NAMESPACE

        if namespace:
            self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )

        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self.client.get(self.make_key(key))

    async def set(
        self,
        key: str,
        value: str,
        ttl: int | None = None,
        nx: bool = False,
    ) -> bool:
        """
        Устанавливает значение.

        Args:
            key: Ключ
            value: Значение
            ttl: Время жизни в секундах
            nx: Записать, только если ключа ещё нет

        Returns:
            True если значение записано
        """
        result = await self.client.set(
            self.make_key(key),
            value,
            ex=ttl,
            nx=nx,
        )
        return bool(result)

    async def mget(self, keys: list[str]) -> list[str | None]:
        """Получает несколько значений за один запрос."""
        if not keys:
            return []
        return await self.client.mget([self.make_key(k) for k in keys])

    async def eval(self, script: str, keys: list[str], args: list[str]) -> Any:
        """Выполняет Lua-скрипт атомарно. Ключи получают namespace."""
        namespaced = [self.make_key(k) for k in keys]
        return await self.client.eval(script, len(namespaced), *namespaced, *args)

    def pipeline(self, transaction: bool = True) -> Any:
        """Создаёт пайплайн. Ключи внутри пайплайна нужно оборачивать make_key()."""
        return self.client.pipeline(transaction=transaction)

    # =========================================================================
    # ТИПИЗИРОВАННЫЕ ОПЕРАЦИИ (PYDANTIC)
    # =========================================================================

    async def get_model(self, key: str, model_class: Type[T]) -> T | None:
        """
        Получает и десериализует Pydantic модель.

        Returns:
            Экземпляр модели или None
        """
        data = await self.get(key)
        if data is None:
            return None

        try:
            return model_class.model_validate_json(data)
        except Exception as e:
            await log_error(f"Ошибка десериализации модели {model_class.__name__}: {e}")
            return None

    async def set_model(
        self,
        key: str,
        model: BaseModel,
        ttl: int | None = None,
        nx: bool = False,
    ) -> bool:
        """Сериализует и сохраняет Pydantic модель."""
        return await self.set(key, model.model_dump_json(), ttl=ttl, nx=nx)

    # =========================================================================
    # HASH ОПЕРАЦИИ
    # =========================================================================

    async def hget(self, name: str, key: str) -> str | None:
        """Получает значение из хеша."""
        return await self.client.hget(self.make_key(name), key)

    async def hsetnx(self, name: str, key: str, value: str) -> bool:
        """Устанавливает поле хеша, только если его ещё нет."""
        return bool(await self.client.hsetnx(self.make_key(name), key, value))

    async def hgetall(self, name: str) -> dict[str, str]:
        """Получает все поля хеша."""
        return await self.client.hgetall(self.make_key(name))

    # =========================================================================
    # SET ОПЕРАЦИИ
    # =========================================================================

    async def smembers(self, key: str) -> set[str]:
        """Возвращает все элементы множества."""
        return await self.client.smembers(self.make_key(key))

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    async def publish(self, channel: str, message: str) -> int:
        """Публикует сообщение в канал (с namespace)."""
        return await self.client.publish(self.make_key(channel), message)

    def pubsub(self) -> Any:
        """Создаёт объект подписки Pub/Sub."""
        return self.client.pubsub()

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к Redis.

        Returns:
            True если подключение работает
        """
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


@asynccontextmanager
async def redis_unavailable(operation: str) -> AsyncIterator[None]:
    """
    Переводит ошибки соединения Redis в retryable UnavailableError.

    Args:
        operation: Название операции для лога и сообщения
    """
    try:
        yield
    except RedisError as e:
        await log_error(f"Redis недоступен при операции {operation}: {e}")
        raise UnavailableError(f"Хранилище временно недоступно ({operation})") from e


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> RedisClient:
    """
    Инициализирует подключение к Redis.
    Использует настройки из конфигурации.
    """
    from groupsync.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return redis_client


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    redis_client = get_redis()
    await redis_client.disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)
