"""Sync log model"""
import enum

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text

from prioritysync.models.base import Base
from prioritysync.models.checkpoint import utcnow


class SyncStatus(str, enum.Enum):
    """Sync status enumeration"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncDirection(str, enum.Enum):
    """Sync direction enumeration"""
    NOTION_TO_GITHUB = "notion_to_github"
    GITHUB_TO_NOTION = "github_to_notion"


class SyncLog(Base):
    """Log of sync operations"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Linked pair
    issue_url = Column(String, nullable=True, index=True)
    task_id = Column(String, nullable=True)

    # Sync details
    status = Column(Enum(SyncStatus), nullable=False)
    direction = Column(Enum(SyncDirection), nullable=True)
    message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<SyncLog(status={self.status}, direction={self.direction})>"
