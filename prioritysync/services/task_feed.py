"""Incremental reader over the Notion task feed"""

import logging
from typing import Iterator, Optional

from prioritysync.services.notion_client import NotionTaskClient, TaskRecord
from prioritysync.services.stores import Checkpoint, CheckpointStore, IssueStateCache
from prioritysync.services.timeline import parse_timestamp

logger = logging.getLogger(__name__)

TASK_FEED_CHECKPOINT = "task-feed"


class TaskFeedReader:
    """Streams linked tasks by edit time ascending, starting after the checkpoint.

    Every record with a linked URL refreshes the reverse index before any
    filtering; only records with a title and a link are yielded. The caller
    calls ``advance`` once a record is fully processed.
    """

    def __init__(
        self,
        notion: NotionTaskClient,
        cache: IssueStateCache,
        checkpoints: CheckpointStore,
        *,
        page_size: int = 100,
        checkpoint_key: str = TASK_FEED_CHECKPOINT,
    ):
        self.notion = notion
        self.cache = cache
        self.checkpoints = checkpoints
        self.page_size = page_size
        self.checkpoint_key = checkpoint_key
        self._checkpoint: Optional[Checkpoint] = None

    def records(self) -> Iterator[TaskRecord]:
        self._checkpoint = self.checkpoints.get(self.checkpoint_key)
        checkpoint = self._checkpoint or Checkpoint()
        logger.info(f"[notion] task scan resuming from checkpoint: {checkpoint}")

        start_cursor = None
        while True:
            page = self.notion.query_tasks(
                edited_since=checkpoint.watermark,
                start_cursor=start_cursor,
                page_size=self.page_size,
            )
            for record in page.records:
                # Already processed
                if checkpoint.cursor and record.task_id == checkpoint.cursor:
                    continue
                if record.linked_issue_url:
                    self.cache.link_task(record.linked_issue_url, record.task_id, record.priority)
                if not record.title or not record.linked_issue_url:
                    continue
                yield record

            if not page.has_more or not page.next_cursor:
                break
            start_cursor = page.next_cursor

    def advance(self, record: TaskRecord) -> None:
        """Persist (task id, edited at) as the new checkpoint; never moves backwards."""
        current = self._checkpoint
        if current is not None and current.watermark and record.edited_at:
            if parse_timestamp(record.edited_at) < parse_timestamp(current.watermark):
                logger.warning(
                    f"[notion] not moving checkpoint back from {current.watermark} to "
                    f"{record.edited_at} (task {record.task_id})"
                )
                return
        checkpoint = Checkpoint(cursor=record.task_id, watermark=record.edited_at or (current and current.watermark))
        self.checkpoints.set(self.checkpoint_key, checkpoint)
        self._checkpoint = checkpoint
