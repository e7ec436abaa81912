"""Apply a resolution to GitHub labels or the Notion priority property"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from prioritysync.models.checkpoint import utcnow
from prioritysync.models.sync_log import SyncDirection
from prioritysync.services.github_client import GitHubClient
from prioritysync.services.notion_client import NotionTaskClient
from prioritysync.services.refs import IssueRef
from prioritysync.services.resolver import Resolution
from prioritysync.services.stores import IssueStateCache
from prioritysync.services.timeline import TimelineEvent, TimelineEventKind, format_timestamp

logger = logging.getLogger(__name__)

ACTOR = "prioritysync"


@dataclass
class ApplyOutcome:
    labels_added: List[str] = field(default_factory=list)
    labels_removed: List[str] = field(default_factory=list)
    priority_updated: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def changed(self) -> bool:
        return bool(self.labels_added or self.labels_removed or self.priority_updated)


class MutationApplier:
    """Turns a Resolution into the minimal set of API calls.

    Each call's failure is logged and recorded on the outcome; nothing here
    raises for an API error. Successful writes are mirrored into the cache.
    """

    def __init__(
        self,
        github: GitHubClient,
        notion: NotionTaskClient,
        cache: IssueStateCache,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.github = github
        self.notion = notion
        self.cache = cache
        self.clock = clock

    def apply(
        self,
        resolution: Resolution,
        *,
        issue_url: str,
        task_id: str,
        current_labels: List[str],
        timeline: Optional[List[TimelineEvent]] = None,
    ) -> ApplyOutcome:
        outcome = ApplyOutcome()
        if resolution.is_noop:
            return outcome

        if resolution.direction == SyncDirection.NOTION_TO_GITHUB:
            self._apply_labels(resolution, issue_url, task_id, current_labels, timeline, outcome)
        elif resolution.direction == SyncDirection.GITHUB_TO_NOTION:
            self._apply_priority(resolution, issue_url, task_id, outcome)
        return outcome

    def _apply_labels(
        self,
        resolution: Resolution,
        issue_url: str,
        task_id: str,
        current_labels: List[str],
        timeline: Optional[List[TimelineEvent]],
        outcome: ApplyOutcome,
    ):
        ref = IssueRef.parse(issue_url)
        logger.info(
            f"[Notion->GitHub] {issue_url}: "
            + " ".join(["+" + l for l in resolution.add_labels] + ["-" + l for l in resolution.remove_labels])
        )

        if resolution.add_labels:
            try:
                self.github.add_labels(ref, list(resolution.add_labels))
                outcome.labels_added.extend(resolution.add_labels)
            except Exception as e:
                msg = f"Failed to add labels {list(resolution.add_labels)} to {issue_url} (task {task_id}): {e}"
                logger.error(msg)
                outcome.errors.append(msg)

        for name in resolution.remove_labels:
            try:
                self.github.remove_label(ref, name)
                outcome.labels_removed.append(name)
            except Exception as e:
                msg = f"Failed to remove label '{name}' from {issue_url} (task {task_id}): {e}"
                logger.error(msg)
                outcome.errors.append(msg)

        if outcome.changed:
            labels = [l for l in current_labels if l not in outcome.labels_removed]
            labels += [l for l in outcome.labels_added if l not in labels]
            at = format_timestamp(self.clock())
            events = [TimelineEvent(TimelineEventKind.LABELED, at, l, ACTOR) for l in outcome.labels_added]
            events += [TimelineEvent(TimelineEventKind.UNLABELED, at, l, ACTOR) for l in outcome.labels_removed]
            self.cache.put_labels(issue_url, labels, events + list(timeline or []))

    def _apply_priority(self, resolution: Resolution, issue_url: str, task_id: str, outcome: ApplyOutcome):
        logger.info(f"[GitHub->Notion] task {task_id} ({issue_url}): Priority -> {resolution.desired_priority!r}")
        try:
            self.notion.set_priority(task_id, resolution.desired_priority)
        except Exception as e:
            msg = f"Failed to set priority {resolution.desired_priority!r} on task {task_id} ({issue_url}): {e}"
            logger.error(msg)
            outcome.errors.append(msg)
            return
        outcome.priority_updated = True
        self.cache.link_task(issue_url, task_id, resolution.desired_priority)
