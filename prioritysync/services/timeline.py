"""Issue timeline events and timestamp helpers"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional


def parse_timestamp(value: Optional[Any]) -> Optional[datetime]:
    """Parse an ISO8601 timestamp (GitHub or Notion) into a UTC tz-naive datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def format_timestamp(dt: datetime) -> str:
    """Format a UTC datetime the way GitHub does (second precision, 'Z')."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


class TimelineEventKind(str, enum.Enum):
    """Closed set of timeline event kinds we keep"""
    LABELED = "labeled"
    UNLABELED = "unlabeled"
    COMMENTED = "commented"


# GraphQL __typename and REST `event` names -> kind
_KIND_BY_SOURCE_NAME = {
    "LabeledEvent": TimelineEventKind.LABELED,
    "UnlabeledEvent": TimelineEventKind.UNLABELED,
    "IssueComment": TimelineEventKind.COMMENTED,
    "labeled": TimelineEventKind.LABELED,
    "unlabeled": TimelineEventKind.UNLABELED,
    "commented": TimelineEventKind.COMMENTED,
}


@dataclass(frozen=True)
class TimelineEvent:
    kind: TimelineEventKind
    occurred_at: str
    label: Optional[str] = None
    actor: Optional[str] = None

    @property
    def is_label_event(self) -> bool:
        return self.kind in (TimelineEventKind.LABELED, TimelineEventKind.UNLABELED)

    @property
    def occurred_at_dt(self) -> Optional[datetime]:
        return parse_timestamp(self.occurred_at)

    @classmethod
    def from_graphql(cls, node: Dict[str, Any]) -> Optional["TimelineEvent"]:
        """Build from a GraphQL timeline node, or None for kinds we don't track."""
        kind = _KIND_BY_SOURCE_NAME.get(node.get("event") or node.get("__typename") or "")
        occurred_at = node.get("createdAt")
        if kind is None or not occurred_at:
            return None
        return cls(
            kind=kind,
            occurred_at=occurred_at,
            label=(node.get("label") or {}).get("name"),
            actor=(node.get("actor") or {}).get("login"),
        )

    @classmethod
    def from_rest(cls, event: Dict[str, Any]) -> Optional["TimelineEvent"]:
        """Build from a REST timeline event, or None for kinds we don't track."""
        kind = _KIND_BY_SOURCE_NAME.get(event.get("event") or "")
        occurred_at = event.get("created_at")
        if kind is None or not occurred_at:
            return None
        actor = event.get("actor") or event.get("user") or {}
        return cls(
            kind=kind,
            occurred_at=occurred_at,
            label=(event.get("label") or {}).get("name"),
            actor=actor.get("login"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "occurred_at": self.occurred_at,
            "label": self.label,
            "actor": self.actor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineEvent":
        return cls(
            kind=TimelineEventKind(data["kind"]),
            occurred_at=data["occurred_at"],
            label=data.get("label"),
            actor=data.get("actor"),
        )


def newest_first(events: Iterable[TimelineEvent], limit: Optional[int] = None) -> List[TimelineEvent]:
    """Sort events most recent first, optionally keeping only ``limit`` of them."""
    ordered = sorted(events, key=lambda e: e.occurred_at_dt or datetime.min, reverse=True)
    return ordered[:limit] if limit is not None else ordered


def latest_label_event_at(events: Iterable[TimelineEvent], labels: Iterable[str]) -> Optional[datetime]:
    """Time of the most recent labeled/unlabeled event for any of ``labels``."""
    wanted = set(labels)
    latest = None
    for ev in events:
        if not ev.is_label_event or ev.label not in wanted:
            continue
        at = ev.occurred_at_dt
        if at is not None and (latest is None or at > latest):
            latest = at
    return latest
