# groupsync/services/__init__.py
