# groupsync/shared/__init__.py
