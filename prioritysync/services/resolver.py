"""Last-write-wins priority conflict resolution for one linked pair.

Everything in this module is pure: no I/O, no clock reads. The issue-side
edit time is derived from the label timeline: it is the time of the most
recent labeled/unlabeled event for any priority label.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from prioritysync.models.sync_log import SyncDirection
from prioritysync.services.priority_mapping import PriorityMapping
from prioritysync.services.timeline import TimelineEvent, latest_label_event_at


class TieBreak(str, enum.Enum):
    """What to do when both sides were edited at the same instant"""
    NONE = "none"
    NOTION = "notion"
    GITHUB = "github"


@dataclass(frozen=True)
class Resolution:
    direction: Optional[SyncDirection]
    add_labels: Tuple[str, ...] = ()
    remove_labels: Tuple[str, ...] = ()
    desired_priority: Optional[str] = None
    update_priority: bool = False
    issue_priority_edited_at: Optional[datetime] = None
    # More than one priority label was present on the issue
    ambiguous: bool = False
    reason: str = ""

    @property
    def is_noop(self) -> bool:
        return not (self.add_labels or self.remove_labels or self.update_priority)


@dataclass
class LinkedPair:
    """Both sides of one task <-> issue link, as inputs to ``resolve``."""
    notion_priority: Optional[str]
    notion_edited_at: Optional[datetime]
    current_labels: List[str]
    timeline: List[TimelineEvent] = field(default_factory=list)


def issue_priority_edited_at(timeline: Iterable[TimelineEvent], mapping: PriorityMapping) -> Optional[datetime]:
    return latest_label_event_at(timeline, mapping.labels)


def pick_direction(
    notion_edited_at: Optional[datetime],
    issue_edited_at: Optional[datetime],
    tie_break: TieBreak = TieBreak.NONE,
) -> Optional[SyncDirection]:
    if notion_edited_at is not None and (issue_edited_at is None or notion_edited_at > issue_edited_at):
        return SyncDirection.NOTION_TO_GITHUB
    if issue_edited_at is not None and (notion_edited_at is None or issue_edited_at > notion_edited_at):
        return SyncDirection.GITHUB_TO_NOTION
    if notion_edited_at is not None and notion_edited_at == issue_edited_at:
        if tie_break == TieBreak.NOTION:
            return SyncDirection.NOTION_TO_GITHUB
        if tie_break == TieBreak.GITHUB:
            return SyncDirection.GITHUB_TO_NOTION
    return None


def resolve(
    notion_priority: Optional[str],
    notion_edited_at: Optional[datetime],
    current_labels: Iterable[str],
    timeline: Iterable[TimelineEvent],
    mapping: PriorityMapping,
    tie_break: TieBreak = TieBreak.NONE,
) -> Resolution:
    """Decide sync direction and the minimal change for one linked pair.

    Raises UnknownPriorityError if Notion wins and its priority isn't mapped.
    """
    current_labels = list(current_labels)
    issue_edited_at = issue_priority_edited_at(timeline, mapping)
    present = mapping.priority_labels_in(current_labels)
    ambiguous = len(present) > 1
    direction = pick_direction(notion_edited_at, issue_edited_at, tie_break)

    if direction == SyncDirection.NOTION_TO_GITHUB:
        desired = [mapping.label_for(notion_priority)] if notion_priority else []
        add = tuple(l for l in desired if l not in current_labels)
        remove = tuple(l for l in present if l not in desired)
        return Resolution(
            direction=direction,
            add_labels=add,
            remove_labels=remove,
            desired_priority=notion_priority,
            issue_priority_edited_at=issue_edited_at,
            ambiguous=ambiguous,
            reason="notion is newer",
        )

    if direction == SyncDirection.GITHUB_TO_NOTION:
        desired_priority, ambiguous = mapping.pick_value(current_labels)
        return Resolution(
            direction=direction,
            desired_priority=desired_priority,
            update_priority=desired_priority != notion_priority,
            issue_priority_edited_at=issue_edited_at,
            ambiguous=ambiguous,
            reason="github is newer",
        )

    return Resolution(
        direction=None,
        desired_priority=notion_priority,
        issue_priority_edited_at=issue_edited_at,
        ambiguous=ambiguous,
        reason="same edit time" if notion_edited_at is not None else "no edit times",
    )


def resolve_pair(pair: LinkedPair, mapping: PriorityMapping, tie_break: TieBreak = TieBreak.NONE) -> Resolution:
    return resolve(
        pair.notion_priority,
        pair.notion_edited_at,
        pair.current_labels,
        pair.timeline,
        mapping,
        tie_break,
    )
