# groupsync/__init__.py
"""
groupsync: общие локации, статусы и события геозон для небольших групп.

Модули:
- core: реестр групп, приём локаций, сверка снапшотов, события геозон
- services: HTTP API и WebSocket push-канал
- client: HTTP клиент для приложений и SnapshotPoller
- config, common, infra: конфигурация, логирование, Redis
"""

__version__ = "1.0.0"
