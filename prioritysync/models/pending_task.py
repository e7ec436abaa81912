"""Tasks whose last sync attempt failed"""
from sqlalchemy import Column, DateTime, Integer, String, Text

from prioritysync.models.base import Base
from prioritysync.models.checkpoint import utcnow


class PendingTask(Base):
    """Retry queue entry for a task the feed checkpoint may already have passed"""

    __tablename__ = "pending_tasks"

    task_id = Column(String, primary_key=True)
    issue_url = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<PendingTask(task_id='{self.task_id}', attempts={self.attempts})>"
