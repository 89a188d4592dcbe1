# groupsync/services/api/__init__.py
"""
HTTP API groupsync (FastAPI).
Приложение: groupsync.services.api.app:app
"""
