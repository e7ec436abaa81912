"""Scan checkpoint model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from prioritysync.models.base import Base


def utcnow() -> datetime:
    """UTC 'now' as tz-naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ScanCheckpoint(Base):
    """Durable resume marker for one incremental scanner"""

    __tablename__ = "scan_checkpoints"

    # e.g. "task-feed" or "repo-scan:owner/repo:open"
    key = Column(String, primary_key=True)

    # Opaque pagination cursor of the walk in progress (None between walks)
    cursor = Column(String, nullable=True)
    # Sort key already fully processed (ISO timestamp)
    watermark = Column(String, nullable=True)
    # Update time of the last item delivered by the walk in progress
    last_seen_at = Column(String, nullable=True)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ScanCheckpoint(key='{self.key}', cursor={self.cursor!r}, watermark={self.watermark!r})>"
