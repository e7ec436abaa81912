"""Notion task database client wrapper"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from notion_client import APIResponseError, Client

from prioritysync.services.errors import NotionClientError
from prioritysync.services.retry import with_retries

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TaskRecord:
    task_id: str
    title: Optional[str]
    priority: Optional[str]
    linked_issue_url: Optional[str]
    edited_at: Optional[str]


@dataclass
class TaskPage:
    records: List[TaskRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class NotionTaskClient:
    """Reads and updates tasks in one Notion database"""

    def __init__(
        self,
        token: Optional[str] = None,
        database_id: str = "",
        *,
        title_property: str = "Task",
        priority_property: str = "Priority",
        link_property: str = "GitHub Link",
        client: Any = None,
    ):
        self.client = client if client is not None else Client(auth=token)
        self.database_id = database_id
        self.title_property = title_property
        self.priority_property = priority_property
        self.link_property = link_property

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()

    def _call(self, what: str, fn: Callable[[], T]) -> T:
        try:
            return with_retries(fn)
        except APIResponseError as e:
            logger.error(f"Notion {what} failed: {e}")
            raise NotionClientError(f"Notion {what} failed: {e}", status_code=getattr(e, "status", None)) from e

    def task_from_page(self, page: Dict[str, Any]) -> TaskRecord:
        props = page.get("properties") or {}

        title_parts = (props.get(self.title_property) or {}).get("title") or []
        title = "".join(p.get("plain_text") or "" for p in title_parts).strip() or None

        select = (props.get(self.priority_property) or {}).get("select") or {}
        priority = select.get("name") or None

        url = (props.get(self.link_property) or {}).get("url") or ""
        linked_issue_url = url.strip() or None

        return TaskRecord(
            task_id=page["id"],
            title=title,
            priority=priority,
            linked_issue_url=linked_issue_url,
            edited_at=page.get("last_edited_time"),
        )

    def query_tasks(
        self,
        *,
        edited_since: Optional[str] = None,
        start_cursor: Optional[str] = None,
        page_size: int = 100,
    ) -> TaskPage:
        """One page of linked tasks, ordered by last edit time ascending."""
        conditions: List[Dict[str, Any]] = [
            {"property": self.link_property, "url": {"is_not_empty": True}},
        ]
        if edited_since:
            conditions.append(
                {"timestamp": "last_edited_time", "last_edited_time": {"on_or_after": edited_since}}
            )
        kwargs: Dict[str, Any] = {
            "database_id": self.database_id,
            "filter": {"and": conditions},
            "sorts": [{"timestamp": "last_edited_time", "direction": "ascending"}],
            "page_size": page_size,
        }
        if start_cursor:
            kwargs["start_cursor"] = start_cursor

        res = self._call("database query", lambda: self.client.databases.query(**kwargs))
        return TaskPage(
            records=[self.task_from_page(p) for p in res.get("results") or [] if p.get("object", "page") == "page"],
            next_cursor=res.get("next_cursor"),
            has_more=bool(res.get("has_more")),
        )

    def get_task(self, task_id: str) -> TaskRecord:
        page = self._call(f"retrieve of page {task_id}", lambda: self.client.pages.retrieve(page_id=task_id))
        return self.task_from_page(page)

    def set_priority(self, task_id: str, value: Optional[str]) -> None:
        properties = {self.priority_property: {"select": {"name": value} if value else None}}
        self._call(
            f"update of page {task_id}",
            lambda: self.client.pages.update(page_id=task_id, properties=properties),
        )
        logger.info(f"Set {self.priority_property} of task {task_id} to {value!r}")
