"""Test doubles shared by the test modules"""

from datetime import datetime
from typing import Dict, List, Optional

from prioritysync.models.base import create_db_engine, create_session_factory, init_db
from prioritysync.services.github_client import IssueSnapshot, SearchPage
from prioritysync.services.notion_client import TaskPage, TaskRecord
from prioritysync.services.timeline import TimelineEvent, TimelineEventKind, parse_timestamp


def memory_session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    return create_session_factory(engine)


def labeled(label: str, at: str, actor: str = "alice") -> TimelineEvent:
    return TimelineEvent(TimelineEventKind.LABELED, at, label, actor)


def unlabeled(label: str, at: str, actor: str = "alice") -> TimelineEvent:
    return TimelineEvent(TimelineEventKind.UNLABELED, at, label, actor)


def ts(minute: int) -> str:
    """Deterministic ISO timestamp, one minute per unit."""
    return f"2025-01-01T{minute // 60:02d}:{minute % 60:02d}:00Z"


class FakeGitHub:
    """In-memory stand-in for GitHubClient"""

    def __init__(self):
        # (repo full name, state) -> snapshots
        self.issues: Dict[tuple, List[IssueSnapshot]] = {}
        self.labels: Dict[str, List[str]] = {}
        self.timelines: Dict[str, List[TimelineEvent]] = {}
        self.search_calls = []
        self.added = []
        self.removed = []
        self.timeline_calls = []
        self.fail_add = False
        self.fail_add_for = set()
        self.fail_search_for = set()
        # Fail every search that continues a page walk
        self.fail_next_pages = False
        # Time stamped on issues touched by add_labels/remove_label
        self.now = ts(500)

    def add_issue(self, repo: str, state: str, url: str, labels, timeline, updated_at):
        self.issues.setdefault((repo, state), []).append(
            IssueSnapshot(url=url, labels=list(labels), timeline=list(timeline), updated_at=updated_at, state=state.upper())
        )

    def set_issue(self, url: str, labels, timeline, updated_at):
        """Replace an issue's labels and timeline, as if edited on GitHub."""
        for snapshots in self.issues.values():
            for i, s in enumerate(snapshots):
                if s.url == url:
                    snapshots[i] = IssueSnapshot(
                        url=url, labels=list(labels), timeline=list(timeline), updated_at=updated_at, state=s.state
                    )
        self.labels[url] = list(labels)

    def _relabel(self, url: str, event: TimelineEvent):
        for snapshots in self.issues.values():
            for s in snapshots:
                if s.url != url:
                    continue
                labels = [l for l in s.labels if l != event.label]
                if event.kind == TimelineEventKind.LABELED:
                    labels.append(event.label)
                self.set_issue(url, labels, [event] + s.timeline, self.now)
                return

    def search_issues(self, repo, state, *, updated_since=None, after=None, first=100, timeline_window=100):
        self.search_calls.append({"repo": repo.full_name, "state": state, "updated_since": updated_since, "after": after})
        if (repo.full_name, state) in self.fail_search_for:
            raise RuntimeError("search unavailable")
        if after and self.fail_next_pages:
            raise RuntimeError("search timed out")
        since = parse_timestamp(updated_since)
        items = sorted(self.issues.get((repo.full_name, state), []), key=lambda s: parse_timestamp(s.updated_at))
        items = [s for s in items if since is None or parse_timestamp(s.updated_at) >= since]
        start = int(after[1:]) + 1 if after else 0
        window = items[start : start + first]
        page = [
            IssueSnapshot(
                url=s.url,
                labels=s.labels,
                timeline=s.timeline,
                updated_at=s.updated_at,
                state=s.state,
                cursor=f"c{start + i}",
            )
            for i, s in enumerate(window)
        ]
        has_next = start + first < len(items)
        return SearchPage(
            items=page,
            end_cursor=page[-1].cursor if page else None,
            has_next_page=has_next,
            total_count=len(items),
        )

    def list_issue_labels(self, ref):
        return list(self.labels.get(ref.url, []))

    def list_timeline_events(self, ref):
        self.timeline_calls.append(ref.url)
        return list(self.timelines.get(ref.url, []))

    def add_labels(self, ref, labels):
        if self.fail_add or ref.url in self.fail_add_for:
            raise RuntimeError("boom")
        self.added.append((ref.url, list(labels)))
        for label in labels:
            self._relabel(ref.url, TimelineEvent(TimelineEventKind.LABELED, self.now, label, "prioritysync"))

    def remove_label(self, ref, name):
        self.removed.append((ref.url, name))
        self._relabel(ref.url, TimelineEvent(TimelineEventKind.UNLABELED, self.now, name, "prioritysync"))
        return True

    def close(self):
        pass


class FakeNotion:
    """In-memory stand-in for NotionTaskClient"""

    def __init__(self, tasks: Optional[List[TaskRecord]] = None):
        self.tasks: List[TaskRecord] = list(tasks or [])
        self.queries = []
        self.updates = []
        self.fail_update = False
        self.fail_get = False

    def query_tasks(self, *, edited_since=None, start_cursor=None, page_size=100):
        self.queries.append({"edited_since": edited_since, "start_cursor": start_cursor})
        since = parse_timestamp(edited_since)
        items = [t for t in self.tasks if t.linked_issue_url]
        items = [t for t in items if since is None or parse_timestamp(t.edited_at) >= since]
        items.sort(key=lambda t: parse_timestamp(t.edited_at) or datetime.min)
        start = int(start_cursor) if start_cursor else 0
        window = items[start : start + page_size]
        more = start + page_size < len(items)
        return TaskPage(records=window, next_cursor=str(start + page_size) if more else None, has_more=more)

    def get_task(self, task_id):
        if self.fail_get:
            raise RuntimeError("notion down")
        for t in self.tasks:
            if t.task_id == task_id:
                return t
        raise KeyError(task_id)

    def close(self):
        pass

    def set_priority(self, task_id, value):
        if self.fail_update:
            raise RuntimeError("notion down")
        self.updates.append((task_id, value))
