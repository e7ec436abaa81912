"""Bidirectional priority synchronization service"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from prioritysync.config import Settings
from prioritysync.models import SyncLog
from prioritysync.models.sync_log import SyncDirection, SyncStatus
from prioritysync.services.errors import MissingLinkageError, PersistenceError, catching
from prioritysync.services.github_client import GitHubClient
from prioritysync.services.mutation_applier import ApplyOutcome, MutationApplier
from prioritysync.services.notion_client import NotionTaskClient, TaskRecord
from prioritysync.services.priority_mapping import PriorityMapping
from prioritysync.services.refs import IssueRef, RepoRef, canonical_issue_url
from prioritysync.services.repo_scanner import ISSUE_STATES, RepositoryScanner
from prioritysync.services.resolver import TieBreak, resolve
from prioritysync.services.stores import CheckpointStore, IssueState, IssueStateCache, TaskRetryQueue
from prioritysync.services.task_feed import TaskFeedReader
from prioritysync.services.timeline import TimelineEvent, latest_label_event_at, parse_timestamp

logger = logging.getLogger(__name__)


def _new_stats() -> Dict[str, int]:
    return {
        "scanned": 0,
        "tasks": 0,
        "labels_updated": 0,
        "priorities_updated": 0,
        "skipped": 0,
        "errors": 0,
    }


class PrioritySyncService:
    """One run of the Notion <-> GitHub priority sync.

    Phases, in order:
      1. scan every (repository x state) into the label cache
      2. stream the Notion task feed through the resolver (Notion -> GitHub)
      3. re-resolve every scanned issue linked to a task (GitHub -> Notion)
    """

    def __init__(
        self,
        db: Session,
        github: GitHubClient,
        notion: NotionTaskClient,
        settings: Settings,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.db = db
        self.github = github
        self.notion = notion
        self.settings = settings
        self.session_factory = session_factory

        self.mapping = PriorityMapping.parse(settings.priority_labels)
        self.tie_break = TieBreak(settings.tie_break.lower())
        self.cache = IssueStateCache(db)
        self.checkpoints = CheckpointStore(db)
        self.retries = TaskRetryQueue(db)
        self.applier = MutationApplier(github, notion, self.cache)

        self.stats = _new_stats()
        # Task ids already resolved in this run
        self._resolved: Set[str] = set()

    # -- bookkeeping -------------------------------------------------------

    def _log_sync(
        self,
        status: SyncStatus,
        direction: Optional[SyncDirection] = None,
        message: str = "",
        issue_url: Optional[str] = None,
        task_id: Optional[str] = None,
    ):
        """Log sync operation"""
        log = SyncLog(
            status=status,
            direction=direction,
            message=message,
            issue_url=issue_url,
            task_id=task_id,
        )
        try:
            self.db.add(log)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to write sync log: {e}") from e

    # -- phase 1: repositories --------------------------------------------

    def _scan(
        self,
        repo: RepoRef,
        state: str,
        cache: IssueStateCache,
        checkpoints: CheckpointStore,
        touched: List[str],
    ) -> bool:
        scanner = RepositoryScanner(
            self.github,
            cache,
            checkpoints,
            page_size=self.settings.page_size,
            timeline_window=self.settings.timeline_window,
        )
        # Yielded items are already cached and checkpointed; keep them if a later page fails.
        for snapshot in scanner.scan(repo, state):
            touched.append(snapshot.url)
        return True

    def _scan_in_own_session(self, job: Tuple[RepoRef, str]) -> Tuple[List[str], bool]:
        db = self.session_factory()
        try:
            return self._scan_job(job, IssueStateCache(db), CheckpointStore(db))
        finally:
            db.close()

    def _scan_job(
        self, job: Tuple[RepoRef, str], cache: IssueStateCache, checkpoints: CheckpointStore
    ) -> Tuple[List[str], bool]:
        """Scan one (repository, state); returns the URLs touched and whether the scan finished."""
        repo, state = job
        touched: List[str] = []

        def on_error(e: Exception, _job) -> bool:
            logger.error(f"Failed to scan {repo} is:{state} after {len(touched)} items: {e}")
            return False

        ok = catching(lambda j: self._scan(j[0], j[1], cache, checkpoints, touched), on_error)(job)
        return touched, ok

    def prefetch_repositories(self) -> List[str]:
        """Scan all configured repositories; returns the URLs touched, in order."""
        jobs = [(RepoRef.parse(r), state) for r in self.settings.repository_list() for state in ISSUE_STATES]
        workers = max(1, int(self.settings.scan_concurrency or 1))

        if workers > 1 and self.session_factory is not None and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(self._scan_in_own_session, jobs))
        else:
            results = [self._scan_job(job, self.cache, self.checkpoints) for job in jobs]

        touched: List[str] = []
        for (repo, state), (urls, ok) in zip(jobs, results):
            logger.info(f"[github] {repo} is:{state}: {len(urls)} issues/PRs refreshed")
            touched.extend(urls)
            if not ok:
                self.stats["errors"] += 1
                self._log_sync(SyncStatus.FAILED, message=f"Failed to scan {repo} is:{state} after {len(urls)} items")

        touched = list(dict.fromkeys(touched))
        self.stats["scanned"] += len(touched)
        return touched

    # -- issue side inputs --------------------------------------------------

    def _timeline_is_sufficient(self, state: IssueState) -> bool:
        """Whether the cached timeline window is enough to date the last priority change."""
        if state.timeline is None:
            return False
        if latest_label_event_at(state.timeline, self.mapping.labels) is not None:
            return True
        if self.mapping.priority_labels_in(state.labels or []):
            # A priority label with no event in the window: it was added earlier.
            return False
        return len(state.timeline) < self.settings.timeline_window

    def load_issue_side(self, issue_url: str) -> Tuple[List[str], List[TimelineEvent]]:
        """Current labels and label timeline, from cache or (fallback) from GitHub."""
        state = self.cache.get(issue_url)
        ref = None

        if state is not None and state.labels is not None:
            labels = list(state.labels)
        else:
            ref = IssueRef.parse(issue_url)
            labels = self.github.list_issue_labels(ref)

        if state is not None and self._timeline_is_sufficient(state):
            return labels, list(state.timeline)

        ref = ref or IssueRef.parse(issue_url)
        logger.debug(f"Fetching full timeline for {issue_url}")
        timeline = self.github.list_timeline_events(ref)
        if self.mapping.priority_labels_in(labels) and latest_label_event_at(timeline, self.mapping.labels) is None:
            raise MissingLinkageError(
                f"{issue_url} has priority label(s) {self.mapping.priority_labels_in(labels)} "
                f"but no priority label event in its timeline"
            )
        return labels, timeline

    # -- one linked pair -----------------------------------------------------

    def sync_task(self, task: TaskRecord, issue_url: Optional[str] = None) -> ApplyOutcome:
        """Resolve and apply one linked pair."""
        issue_url = issue_url or task.linked_issue_url
        self._resolved.add(task.task_id)
        labels, timeline = self.load_issue_side(issue_url)

        resolution = resolve(
            task.priority,
            parse_timestamp(task.edited_at),
            labels,
            timeline,
            self.mapping,
            self.tie_break,
        )
        logger.info(
            f"+Task: {task.task_id} Issue: {issue_url} Title: {task.title} | "
            f"notion {task.priority or '-'} @ {task.edited_at}, "
            f"labels {self.mapping.priority_labels_in(labels)} @ {resolution.issue_priority_edited_at} "
            f"-> {resolution.reason}"
        )
        if resolution.ambiguous:
            logger.warning(
                f"{issue_url} carries several priority labels {self.mapping.priority_labels_in(labels)}; "
                f"using {self.mapping.priority_labels_in(labels)[0]}"
            )

        outcome = self.applier.apply(
            resolution,
            issue_url=issue_url,
            task_id=task.task_id,
            current_labels=labels,
            timeline=timeline,
        )

        if not outcome.ok:
            self.stats["errors"] += 1
            self._log_sync(
                SyncStatus.FAILED,
                resolution.direction,
                "; ".join(outcome.errors),
                issue_url=issue_url,
                task_id=task.task_id,
            )
        elif outcome.changed:
            if outcome.priority_updated:
                self.stats["priorities_updated"] += 1
                message = f"Priority set to {resolution.desired_priority!r}"
            else:
                self.stats["labels_updated"] += 1
                message = "Labels " + " ".join(
                    ["+" + l for l in outcome.labels_added] + ["-" + l for l in outcome.labels_removed]
                )
            self._log_sync(SyncStatus.SUCCESS, resolution.direction, message, issue_url=issue_url, task_id=task.task_id)
        return outcome

    def _on_item_error(self, e: Exception, item: Any) -> None:
        if isinstance(item, TaskRecord):
            context = f"task {item.task_id} - {item.linked_issue_url}"
            issue_url, task_id = item.linked_issue_url, item.task_id
        else:
            context = str(item)
            issue_url = str(item)
            state = self.cache.get(issue_url)
            task_id = state.linked_task_id if state is not None else None

        if isinstance(e, MissingLinkageError):
            logger.warning(f"Skipping {context}: {e}")
            if task_id:
                self.retries.remove(task_id)
            self.stats["skipped"] += 1
            self._log_sync(SyncStatus.SKIPPED, message=str(e), issue_url=issue_url, task_id=task_id)
            return None

        logger.error(f"Error processing {context}: {e}")
        self.stats["errors"] += 1
        if task_id:
            self.retries.add(task_id, issue_url, f"{type(e).__name__}: {e}")
        self._log_sync(SyncStatus.FAILED, message=f"{type(e).__name__}: {e}", issue_url=issue_url, task_id=task_id)
        return None

    # -- phase 2: Notion -> GitHub -------------------------------------------

    def _process_task(self, record: TaskRecord, reader: Optional[TaskFeedReader] = None) -> None:
        outcome = self.sync_task(record)
        if outcome.ok:
            self.retries.remove(record.task_id)
            if reader is not None:
                reader.advance(record)
        else:
            # Later tasks may still move the watermark past this one.
            self.retries.add(record.task_id, record.linked_issue_url, "; ".join(outcome.errors))

    def _on_retry_fetch_error(self, e: Exception, task_id: str) -> None:
        logger.error(f"Failed to fetch pending task {task_id}: {e}")
        self.stats["errors"] += 1
        self.retries.add(task_id, None, f"{type(e).__name__}: {e}")
        self._log_sync(SyncStatus.FAILED, message=f"{type(e).__name__}: {e}", task_id=task_id)
        return None

    def retry_pending_tasks(self) -> int:
        """Re-sync tasks whose sync failed in an earlier pass; returns the count."""
        task_ids = self.retries.task_ids()
        if not task_ids:
            return 0
        logger.info(f"[notion] retrying {len(task_ids)} pending tasks")

        fetch = catching(self.notion.get_task, self._on_retry_fetch_error)
        process_safely = catching(self._process_task, self._on_item_error)
        for task_id in task_ids:
            task = fetch(task_id)
            if task is None:
                continue
            if not task.title or not task.linked_issue_url:
                logger.info(f"Dropping pending task {task_id}: no longer titled and linked")
                self.retries.remove(task_id)
                continue
            process_safely(task)
        return len(task_ids)

    def sync_task_feed(self) -> int:
        """Process every task edited since the feed checkpoint; returns the count."""
        self.retry_pending_tasks()

        reader = TaskFeedReader(self.notion, self.cache, self.checkpoints, page_size=self.settings.page_size)
        process_safely = catching(lambda record: self._process_task(record, reader), self._on_item_error)
        count = 0
        for record in reader.records():
            process_safely(record)
            count += 1
        self.stats["tasks"] += count
        logger.info(f"[notion] processed {count} tasks")
        return count

    # -- phase 3: GitHub -> Notion -------------------------------------------

    def _sync_touched_issue(self, issue_url: str) -> None:
        state = self.cache.get(issue_url)
        if state is None or not state.linked_task_id:
            return None  # no linked task yet
        if state.linked_task_id in self._resolved:
            return None

        task = self.notion.get_task(state.linked_task_id)
        if not task.linked_issue_url or canonical_issue_url(task.linked_issue_url) != canonical_issue_url(issue_url):
            logger.debug(f"Task {task.task_id} no longer links to {issue_url}; skipping")
            self.stats["skipped"] += 1
            return None
        outcome = self.sync_task(task, issue_url)
        if outcome.ok:
            self.retries.remove(task.task_id)
        else:
            self.retries.add(task.task_id, issue_url, "; ".join(outcome.errors))

    def sync_touched_issues(self, issue_urls: List[str]) -> None:
        process_safely = catching(self._sync_touched_issue, self._on_item_error)
        for url in issue_urls:
            process_safely(url)

    # -- run --------------------------------------------------------------------

    def run(self) -> Dict[str, Any]:
        """Run all three phases once. PersistenceError aborts the run."""
        logger.info("Starting priority sync")
        self.stats = _new_stats()
        self._resolved = set()

        touched = self.prefetch_repositories()

        try:
            self.sync_task_feed()
        except PersistenceError:
            raise
        except Exception as e:
            # Feed query failure: what was processed is checkpointed already.
            logger.error(f"Task feed failed: {e}")
            self.stats["errors"] += 1
            self._log_sync(SyncStatus.FAILED, SyncDirection.NOTION_TO_GITHUB, f"Task feed failed: {e}")

        self.sync_touched_issues(touched)

        status = "success" if self.stats["errors"] == 0 else "partial"
        logger.info(f"Priority sync completed ({status}): {self.stats}")
        self._log_sync(
            SyncStatus.SUCCESS if status == "success" else SyncStatus.FAILED,
            message=f"Sync completed: {self.stats}",
        )
        return {"status": status, "stats": dict(self.stats)}
