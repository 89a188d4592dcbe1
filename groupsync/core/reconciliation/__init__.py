# groupsync/core/reconciliation/__init__.py
"""
Сверка состояния группы: снапшоты, диффы, цикл опроса.
"""

from groupsync.core.reconciliation.engine import ReconciliationContext, SnapshotService
from groupsync.core.reconciliation.models import MemberDiff, Snapshot, SnapshotRecord
from groupsync.core.reconciliation.poller import SnapshotPoller

__all__ = [
    "ReconciliationContext",
    "SnapshotService",
    "MemberDiff",
    "Snapshot",
    "SnapshotRecord",
    "SnapshotPoller",
]
