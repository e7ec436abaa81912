"""GitHub API client (GraphQL search + REST label operations)"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from prioritysync.services.errors import GitHubClientError
from prioritysync.services.refs import IssueRef, RepoRef
from prioritysync.services.retry import with_retries
from prioritysync.services.timeline import TimelineEvent, newest_first

logger = logging.getLogger(__name__)

_ISSUE_FIELDS = """
        number
        __typename
        updatedAt
        state
        repository { name owner { login } }
        labels(first: 100) { nodes { name } }
        timelineItems(last: $timeline, itemTypes: [LABELED_EVENT, UNLABELED_EVENT]) {
          nodes {
            __typename
            ... on LabeledEvent { createdAt actor { login } label { name } }
            ... on UnlabeledEvent { createdAt actor { login } label { name } }
          }
        }
"""

SEARCH_ISSUE_LABELS_QUERY = (
    """
query SearchIssueLabels($q: String!, $first: Int!, $after: String, $timeline: Int!) {
  search(query: $q, type: ISSUE, first: $first, after: $after) {
    issueCount
    pageInfo { hasNextPage endCursor }
    edges {
      cursor
      node {
        ... on Issue {"""
    + _ISSUE_FIELDS
    + """        }
        ... on PullRequest {"""
    + _ISSUE_FIELDS
    + """        }
      }
    }
  }
}
"""
)


@dataclass
class IssueSnapshot:
    """Current labels and recent label events of one issue/PR, as returned by search."""

    url: str
    labels: List[str]
    timeline: List[TimelineEvent]  # most recent first
    updated_at: Optional[str]
    state: Optional[str] = None
    cursor: Optional[str] = None


@dataclass
class SearchPage:
    items: List[IssueSnapshot] = field(default_factory=list)
    end_cursor: Optional[str] = None
    has_next_page: bool = False
    total_count: int = 0


def build_search_query(repo: RepoRef, state: str, updated_since: Optional[str]) -> str:
    q = f"repo:{repo.full_name} is:{state} sort:updated-asc"
    if updated_since:
        q += f" updated:>={updated_since}"
    return q


def snapshot_from_node(node: Dict[str, Any], cursor: Optional[str] = None) -> Optional[IssueSnapshot]:
    """Convert a search result node; returns None for nodes that aren't issues/PRs."""
    if not node or "number" not in node:
        return None
    ref = IssueRef(
        owner=node["repository"]["owner"]["login"],
        repo=node["repository"]["name"],
        number=int(node["number"]),
        is_pull=node.get("__typename") == "PullRequest",
    )
    events = [
        ev
        for ev in (TimelineEvent.from_graphql(n) for n in (node.get("timelineItems") or {}).get("nodes") or [])
        if ev is not None
    ]
    return IssueSnapshot(
        url=ref.url,
        labels=[l["name"] for l in (node.get("labels") or {}).get("nodes") or []],
        timeline=newest_first(events),
        updated_at=node.get("updatedAt"),
        state=node.get("state"),
        cursor=cursor,
    )


class GitHubClient:
    """Thin wrapper around the GitHub GraphQL and REST APIs"""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        if self.api_url.endswith("/api/v3"):
            # GitHub Enterprise Server
            self._graphql_url = self.api_url[: -len("/v3")] + "/graphql"
        else:
            self._graphql_url = self.api_url + "/graphql"
        self._client = httpx.Client(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        start_time = time.monotonic()
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise GitHubClientError(f"Request failed: {e}") from e

        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.debug("%s %s: HTTP %d (%.0fms)", method, url, response.status_code, elapsed_ms)

        if response.status_code == 403 and "rate limit" in response.text.lower():
            # Secondary rate limits come back as 403; treat them like 429 so they're retried.
            raise GitHubClientError("GitHub API rate limit exceeded", status_code=429)
        if response.status_code >= 400:
            raise GitHubClientError(
                f"{method} {url}: HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL query and return its 'data' field."""
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        response = with_retries(lambda: self._request("POST", self._graphql_url, json=payload))
        try:
            result = response.json()
        except ValueError as e:
            raise GitHubClientError(f"Invalid JSON response: {e}") from e
        if result.get("errors"):
            messages = [e.get("message", str(e)) for e in result["errors"]]
            raise GitHubClientError(f"GraphQL errors: {'; '.join(messages)}")
        return result.get("data") or {}

    def search_issues(
        self,
        repo: RepoRef,
        state: str,
        *,
        updated_since: Optional[str] = None,
        after: Optional[str] = None,
        first: int = 100,
        timeline_window: int = 100,
    ) -> SearchPage:
        """One page of issues/PRs in ``state`` ("open"/"closed") ordered by update time ascending."""
        data = self.graphql(
            SEARCH_ISSUE_LABELS_QUERY,
            {
                "q": build_search_query(repo, state, updated_since),
                "first": first,
                "after": after,
                "timeline": timeline_window,
            },
        )
        search = data.get("search") or {}
        page_info = search.get("pageInfo") or {}
        items = []
        for edge in search.get("edges") or []:
            snapshot = snapshot_from_node(edge.get("node") or {}, cursor=edge.get("cursor"))
            if snapshot is not None:
                items.append(snapshot)
        return SearchPage(
            items=items,
            end_cursor=page_info.get("endCursor"),
            has_next_page=bool(page_info.get("hasNextPage")),
            total_count=int(search.get("issueCount") or 0),
        )

    def _paginate(self, path: str) -> List[Any]:
        results: List[Any] = []
        url: Optional[str] = path
        params: Optional[Dict[str, Any]] = {"per_page": 100}
        while url:
            response = with_retries(lambda: self._request("GET", url, params=params))
            results.extend(response.json())
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string.
            params = None
        return results

    @staticmethod
    def _issue_path(ref: IssueRef) -> str:
        # Pull requests share the issues endpoints for labels and timeline.
        return f"/repos/{ref.owner}/{ref.repo}/issues/{ref.number}"

    def list_issue_labels(self, ref: IssueRef) -> List[str]:
        return [label["name"] for label in self._paginate(self._issue_path(ref) + "/labels")]

    def list_timeline_events(self, ref: IssueRef) -> List[TimelineEvent]:
        """Full timeline of an issue/PR (tracked kinds only), most recent first."""
        raw = self._paginate(self._issue_path(ref) + "/timeline")
        return newest_first(ev for ev in (TimelineEvent.from_rest(e) for e in raw) if ev is not None)

    def add_labels(self, ref: IssueRef, labels: List[str]) -> None:
        with_retries(lambda: self._request("POST", self._issue_path(ref) + "/labels", json={"labels": list(labels)}))
        logger.info(f"Added labels {labels} to {ref.url}")

    def remove_label(self, ref: IssueRef, name: str) -> bool:
        """Remove a label; returns False if it wasn't on the issue."""
        path = self._issue_path(ref) + "/labels/" + quote(name, safe="")
        try:
            with_retries(lambda: self._request("DELETE", path))
        except GitHubClientError as e:
            if e.status_code == 404:
                logger.debug(f"Label '{name}' already absent from {ref.url}")
                return False
            raise
        logger.info(f"Removed label '{name}' from {ref.url}")
        return True
