"""Database models"""

from prioritysync.models.base import Base
from prioritysync.models.checkpoint import ScanCheckpoint
from prioritysync.models.issue_state import IssueLabelState
from prioritysync.models.pending_task import PendingTask
from prioritysync.models.sync_log import SyncLog

__all__ = [
    "Base",
    "ScanCheckpoint",
    "IssueLabelState",
    "PendingTask",
    "SyncLog",
]
