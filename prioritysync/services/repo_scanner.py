"""Incremental, resumable scan of repository issues/PRs into the label cache"""

import logging
from typing import Iterator, Optional

from prioritysync.services.github_client import GitHubClient, IssueSnapshot
from prioritysync.services.refs import RepoRef
from prioritysync.services.stores import Checkpoint, CheckpointStore, IssueStateCache
from prioritysync.services.timeline import parse_timestamp

logger = logging.getLogger(__name__)

ISSUE_STATES = ("open", "closed")


class RepositoryScanner:
    """Walks the issue search API for one repository/state and keeps the cache current.

    Progress is a two-level cursor. ``cursor`` continues the page walk in
    progress (ordered by update time ascending, filtered to updates at or after
    ``watermark``). When a walk runs out of pages the cursor is cleared and the
    watermark moves to the update time of the last item seen, so the next walk
    starts from there. The checkpoint is written after every item, so a crash
    resumes right after the last cached item.
    """

    def __init__(
        self,
        github: GitHubClient,
        cache: IssueStateCache,
        checkpoints: CheckpointStore,
        *,
        page_size: int = 100,
        timeline_window: int = 100,
    ):
        self.github = github
        self.cache = cache
        self.checkpoints = checkpoints
        self.page_size = page_size
        self.timeline_window = timeline_window

    @staticmethod
    def checkpoint_key(repo: RepoRef, state: str) -> str:
        return f"repo-scan:{repo.full_name}:{state}"

    def scan(self, repo: RepoRef, state: str) -> Iterator[IssueSnapshot]:
        """Yield every issue/PR updated since the stored checkpoint, caching each one."""
        if state not in ISSUE_STATES:
            raise ValueError(f"Unknown issue state: {state}")

        key = self.checkpoint_key(repo, state)
        checkpoint = self.checkpoints.get(key) or Checkpoint()
        logger.info(f"[github] {repo} is:{state} resuming from checkpoint: {checkpoint}")

        cursor = checkpoint.cursor
        watermark = checkpoint.watermark
        last_seen_at = checkpoint.last_seen_at if cursor else None

        while True:
            advanced = False
            while True:
                page = self.github.search_issues(
                    repo,
                    state,
                    updated_since=watermark,
                    after=cursor,
                    first=self.page_size,
                    timeline_window=self.timeline_window,
                )
                logger.debug(
                    f"[github] {repo} is:{state}: fetched {len(page.items)}/{page.total_count} "
                    f"updated since {watermark or 'the beginning'}"
                )
                for snapshot in page.items:
                    self.cache.put_scan(
                        snapshot.url,
                        labels=snapshot.labels,
                        timeline=snapshot.timeline[: self.timeline_window],
                        updated_at=snapshot.updated_at,
                        state=snapshot.state,
                    )
                    if snapshot.cursor:
                        cursor = snapshot.cursor
                    if snapshot.updated_at:
                        last_seen_at = snapshot.updated_at
                        if _is_after(snapshot.updated_at, watermark):
                            advanced = True
                    self.checkpoints.set(
                        key, Checkpoint(cursor=cursor, watermark=watermark, last_seen_at=last_seen_at)
                    )
                    yield snapshot

                if not page.has_next_page or not page.items:
                    break
                cursor = page.end_cursor

            # Walk exhausted: start the next walk from the last update time seen.
            watermark = last_seen_at or watermark
            cursor = None
            last_seen_at = None
            self.checkpoints.set(key, Checkpoint(cursor=None, watermark=watermark))

            # Search caps a walk at 1000 results; keep walking while time moves forward.
            if not advanced:
                break


def _is_after(updated_at: str, watermark: Optional[str]) -> bool:
    if watermark is None:
        return True
    a, b = parse_timestamp(updated_at), parse_timestamp(watermark)
    return a is not None and b is not None and a > b
