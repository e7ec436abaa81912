"""Cached label state of a GitHub issue or pull request"""
from sqlalchemy import Column, DateTime, String, Text

from prioritysync.models.base import Base
from prioritysync.models.checkpoint import utcnow


class IssueLabelState(Base):
    """Label timeline cache entry, keyed by canonical issue/PR URL"""

    __tablename__ = "issue_label_states"

    url = Column(String, primary_key=True)

    # Issue side (overwritten by every scan)
    labels = Column(Text, nullable=True)  # JSON list of label names
    timeline = Column(Text, nullable=True)  # JSON list of events, most recent first
    issue_updated_at = Column(String, nullable=True)
    issue_state = Column(String, nullable=True)
    last_scanned_at = Column(DateTime, nullable=True)

    # Task side (reverse index, refreshed by the task feed)
    linked_task_id = Column(String, nullable=True, index=True)
    last_known_priority = Column(String, nullable=True)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<IssueLabelState(url='{self.url}', linked_task_id={self.linked_task_id!r})>"
