import json
import logging
import unittest
from unittest.mock import patch

import httpx

from prioritysync.services.errors import GitHubClientError
from prioritysync.services.github_client import GitHubClient, build_search_query
from prioritysync.services.refs import IssueRef, RepoRef
from prioritysync.services.timeline import TimelineEventKind

logging.disable(logging.CRITICAL)

REPO = RepoRef("octo", "app")
ISSUE = IssueRef("octo", "app", 12)


def _label_event(typename, label, at):
    return {"__typename": typename, "createdAt": at, "actor": {"login": "alice"}, "label": {"name": label}}


def _search_payload():
    return {
        "data": {
            "search": {
                "issueCount": 2,
                "pageInfo": {"hasNextPage": True, "endCursor": "Y3Vyc29yOjI="},
                "edges": [
                    {
                        "cursor": "Y3Vyc29yOjE=",
                        "node": {
                            "number": 12,
                            "__typename": "Issue",
                            "updatedAt": "2025-01-02T00:00:00Z",
                            "state": "OPEN",
                            "repository": {"name": "app", "owner": {"login": "octo"}},
                            "labels": {"nodes": [{"name": "High-Priority"}, {"name": "bug"}]},
                            "timelineItems": {
                                "nodes": [
                                    _label_event("LabeledEvent", "bug", "2025-01-01T00:00:00Z"),
                                    _label_event("LabeledEvent", "High-Priority", "2025-01-01T10:00:00Z"),
                                ]
                            },
                        },
                    },
                    {
                        "cursor": "Y3Vyc29yOjI=",
                        "node": {
                            "number": 3,
                            "__typename": "PullRequest",
                            "updatedAt": "2025-01-03T00:00:00Z",
                            "state": "OPEN",
                            "repository": {"name": "app", "owner": {"login": "octo"}},
                            "labels": {"nodes": []},
                            "timelineItems": {"nodes": []},
                        },
                    },
                ],
            }
        }
    }


class GitHubClientTests(unittest.TestCase):
    def setUp(self):
        self.requests = []
        self.responses = []

    def _client(self, api_url="https://api.github.com"):
        def handler(request):
            self.requests.append(request)
            return self.responses.pop(0)

        return GitHubClient("t0ken", api_url=api_url, transport=httpx.MockTransport(handler))

    def test_build_search_query(self):
        self.assertEqual(build_search_query(REPO, "open", None), "repo:octo/app is:open sort:updated-asc")
        self.assertEqual(
            build_search_query(REPO, "closed", "2025-01-01T00:00:00Z"),
            "repo:octo/app is:closed sort:updated-asc updated:>=2025-01-01T00:00:00Z",
        )

    def test_search_issues_parses_page(self):
        self.responses.append(httpx.Response(200, json=_search_payload()))
        client = self._client()

        page = client.search_issues(REPO, "open", updated_since="2025-01-01T00:00:00Z", after="abc", first=50)

        sent = json.loads(self.requests[0].content)
        self.assertEqual(str(self.requests[0].url), "https://api.github.com/graphql")
        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer t0ken")
        self.assertEqual(sent["variables"]["after"], "abc")
        self.assertEqual(sent["variables"]["first"], 50)
        self.assertIn("updated:>=2025-01-01T00:00:00Z", sent["variables"]["q"])

        self.assertTrue(page.has_next_page)
        self.assertEqual(page.end_cursor, "Y3Vyc29yOjI=")
        self.assertEqual(page.total_count, 2)
        issue, pull = page.items
        self.assertEqual(issue.url, "https://github.com/octo/app/issues/12")
        self.assertEqual(issue.cursor, "Y3Vyc29yOjE=")
        self.assertEqual(issue.labels, ["High-Priority", "bug"])
        self.assertEqual([e.label for e in issue.timeline], ["High-Priority", "bug"])
        self.assertEqual(issue.timeline[0].kind, TimelineEventKind.LABELED)
        self.assertEqual(pull.url, "https://github.com/octo/app/pull/3")

    def test_graphql_errors_raise(self):
        self.responses.append(httpx.Response(200, json={"errors": [{"message": "Bad credentials"}]}))

        with self.assertRaises(GitHubClientError):
            self._client().search_issues(REPO, "open")

    def test_enterprise_graphql_url(self):
        self.responses.append(httpx.Response(200, json={"data": {"search": {}}}))
        self._client(api_url="https://ghe.example.com/api/v3").search_issues(REPO, "open")

        self.assertEqual(str(self.requests[0].url), "https://ghe.example.com/api/graphql")

    def test_timeline_follows_link_header(self):
        next_url = "https://api.github.com/repos/octo/app/issues/12/timeline?per_page=100&page=2"
        self.responses.append(
            httpx.Response(
                200,
                json=[
                    {"event": "labeled", "created_at": "2025-01-01T00:00:00Z", "label": {"name": "Low-Priority"}, "actor": {"login": "a"}},
                    {"event": "committed", "sha": "abc"},
                ],
                headers={"Link": f'<{next_url}>; rel="next"'},
            )
        )
        self.responses.append(
            httpx.Response(
                200,
                json=[{"event": "unlabeled", "created_at": "2025-01-05T00:00:00Z", "label": {"name": "Low-Priority"}, "actor": {"login": "b"}}],
            )
        )

        events = self._client().list_timeline_events(ISSUE)

        self.assertEqual(len(self.requests), 2)
        self.assertEqual(str(self.requests[1].url), next_url)
        self.assertEqual([e.kind for e in events], [TimelineEventKind.UNLABELED, TimelineEventKind.LABELED])

    def test_add_labels_posts_once(self):
        self.responses.append(httpx.Response(200, json=[{"name": "High-Priority"}]))

        self._client().add_labels(ISSUE, ["High-Priority"])

        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/repos/octo/app/issues/12/labels")
        self.assertEqual(json.loads(request.content), {"labels": ["High-Priority"]})

    def test_remove_label_escapes_name_and_tolerates_404(self):
        self.responses.append(httpx.Response(404, json={"message": "Label does not exist"}))

        removed = self._client().remove_label(ISSUE, "Medium Priority")

        self.assertFalse(removed)
        self.assertEqual(self.requests[0].method, "DELETE")
        self.assertTrue(str(self.requests[0].url).endswith("/labels/Medium%20Priority"))

    def test_remove_label_other_errors_raise(self):
        self.responses.append(httpx.Response(422, json={"message": "nope"}))

        with self.assertRaises(GitHubClientError) as ctx:
            self._client().remove_label(ISSUE, "x")
        self.assertEqual(ctx.exception.status_code, 422)

    @patch("prioritysync.services.retry.time.sleep")
    def test_rate_limit_is_retried(self, sleep):
        self.responses.append(httpx.Response(403, text="API rate limit exceeded for user"))
        self.responses.append(httpx.Response(502, text="bad gateway"))
        self.responses.append(httpx.Response(200, json=[{"name": "bug"}]))

        labels = self._client().list_issue_labels(ISSUE)

        self.assertEqual(labels, ["bug"])
        self.assertEqual(len(self.requests), 3)
        self.assertEqual(sleep.call_count, 2)


if __name__ == "__main__":
    unittest.main()
