"""Checkpoint store and label timeline cache on top of SQLAlchemy"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from prioritysync.models import IssueLabelState, PendingTask, ScanCheckpoint
from prioritysync.models.checkpoint import utcnow
from prioritysync.services.errors import PersistenceError
from prioritysync.services.refs import canonical_issue_url
from prioritysync.services.timeline import TimelineEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkpoint:
    cursor: Optional[str] = None
    watermark: Optional[str] = None
    last_seen_at: Optional[str] = None


@dataclass
class IssueState:
    url: str
    labels: Optional[List[str]] = None
    # Most recent first; None means the timeline was never fetched.
    timeline: Optional[List[TimelineEvent]] = None
    linked_task_id: Optional[str] = None
    last_known_priority: Optional[str] = None
    issue_updated_at: Optional[str] = None
    issue_state: Optional[str] = None
    last_scanned_at: Optional[datetime] = None


class _SessionStore:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, what: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist {what}: {e}")
            raise PersistenceError(f"Failed to persist {what}: {e}") from e

    def _get(self, model, key, what: str):
        try:
            return self.db.get(model, key)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to read {what}: {e}") from e


class CheckpointStore(_SessionStore):
    """Durable per-scanner resume markers"""

    def get(self, key: str) -> Optional[Checkpoint]:
        row = self._get(ScanCheckpoint, key, f"checkpoint {key}")
        if row is None:
            return None
        return Checkpoint(cursor=row.cursor, watermark=row.watermark, last_seen_at=row.last_seen_at)

    def set(self, key: str, checkpoint: Checkpoint) -> None:
        row = self._get(ScanCheckpoint, key, f"checkpoint {key}")
        if row is None:
            row = ScanCheckpoint(key=key)
            self.db.add(row)
        row.cursor = checkpoint.cursor
        row.watermark = checkpoint.watermark
        row.last_seen_at = checkpoint.last_seen_at
        self._commit(f"checkpoint {key}")

    def all(self) -> List[ScanCheckpoint]:
        try:
            return self.db.query(ScanCheckpoint).order_by(ScanCheckpoint.key).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to list checkpoints: {e}") from e


def _dump_timeline(events: Optional[Iterable[TimelineEvent]]) -> Optional[str]:
    if events is None:
        return None
    return json.dumps([e.to_dict() for e in events])


def _load_timeline(raw: Optional[str]) -> Optional[List[TimelineEvent]]:
    if raw is None:
        return None
    return [TimelineEvent.from_dict(d) for d in json.loads(raw)]


class IssueStateCache(_SessionStore):
    """Label timeline cache: issue/PR URL -> labels, recent label events, linked task.

    Keys are canonical issue URLs; lookups also accept non-canonical forms.
    """

    def _row(self, url: str) -> Optional[IssueLabelState]:
        row = self._get(IssueLabelState, url, f"issue state {url}")
        if row is None:
            key = canonical_issue_url(url)
            if key != url:
                row = self._get(IssueLabelState, key, f"issue state {key}")
        return row

    def _row_for_write(self, url: str) -> IssueLabelState:
        key = canonical_issue_url(url)
        row = self._get(IssueLabelState, key, f"issue state {key}")
        if row is None:
            row = IssueLabelState(url=key)
            self.db.add(row)
        return row

    @staticmethod
    def _to_state(row: IssueLabelState) -> IssueState:
        return IssueState(
            url=row.url,
            labels=json.loads(row.labels) if row.labels is not None else None,
            timeline=_load_timeline(row.timeline),
            linked_task_id=row.linked_task_id,
            last_known_priority=row.last_known_priority,
            issue_updated_at=row.issue_updated_at,
            issue_state=row.issue_state,
            last_scanned_at=row.last_scanned_at,
        )

    def get(self, url: str) -> Optional[IssueState]:
        row = self._row(url)
        return self._to_state(row) if row is not None else None

    def put_scan(
        self,
        url: str,
        *,
        labels: List[str],
        timeline: List[TimelineEvent],
        updated_at: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        """Overwrite the issue-side snapshot, keeping the task linkage."""
        row = self._row_for_write(url)
        row.labels = json.dumps(list(labels))
        row.timeline = _dump_timeline(timeline)
        row.issue_updated_at = updated_at
        row.issue_state = state
        row.last_scanned_at = utcnow()
        self._commit(f"issue state {row.url}")

    def put_labels(self, url: str, labels: List[str], timeline: Optional[List[TimelineEvent]]) -> None:
        """Record labels we just wrote ourselves."""
        row = self._row_for_write(url)
        row.labels = json.dumps(list(labels))
        row.timeline = _dump_timeline(timeline)
        self._commit(f"issue state {row.url}")

    def link_task(self, url: str, task_id: str, priority: Optional[str]) -> None:
        """Refresh the reverse index entry (issue URL -> task id, priority)."""
        row = self._row_for_write(url)
        row.linked_task_id = task_id
        row.last_known_priority = priority
        self._commit(f"issue state {row.url}")

    def list_states(self, linked: Optional[bool] = None, limit: int = 100) -> List[IssueLabelState]:
        """Most recently updated entries; ``linked`` filters on having a task."""
        try:
            query = self.db.query(IssueLabelState).order_by(IssueLabelState.updated_at.desc())
            if linked is True:
                query = query.filter(IssueLabelState.linked_task_id.isnot(None))
            elif linked is False:
                query = query.filter(IssueLabelState.linked_task_id.is_(None))
            return query.limit(limit).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to list issue states: {e}") from e


MAX_TASK_ATTEMPTS = 10


class TaskRetryQueue(_SessionStore):
    """Tasks whose sync failed, retried at the start of every feed pass.

    The feed checkpoint is a watermark: once a later task succeeds it moves
    past a failed one, so failed tasks are kept here until they go through.
    """

    def task_ids(self) -> List[str]:
        try:
            rows = self.db.query(PendingTask).order_by(PendingTask.created_at, PendingTask.task_id).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to list pending tasks: {e}") from e
        return [row.task_id for row in rows]

    def get(self, task_id: str) -> Optional[PendingTask]:
        return self._get(PendingTask, task_id, f"pending task {task_id}")

    def add(self, task_id: str, issue_url: Optional[str], message: str) -> None:
        """Record a failed attempt; gives up on the task after MAX_TASK_ATTEMPTS."""
        row = self.get(task_id)
        if row is None:
            row = PendingTask(task_id=task_id, attempts=0)
            self.db.add(row)
        row.attempts = (row.attempts or 0) + 1
        row.message = message
        if issue_url:
            row.issue_url = issue_url

        if row.attempts > MAX_TASK_ATTEMPTS:
            logger.error(f"Giving up on task {task_id} ({row.issue_url}) after {MAX_TASK_ATTEMPTS} attempts: {message}")
            self.db.delete(row)
        self._commit(f"pending task {task_id}")

    def remove(self, task_id: str) -> None:
        row = self.get(task_id)
        if row is None:
            return
        self.db.delete(row)
        self._commit(f"pending task {task_id}")
