# groupsync/core/__init__.py
"""
Ядро: реестр групп, приём локаций, сверка снапшотов, события геозон.
"""
