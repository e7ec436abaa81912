import logging
import unittest

from fakes import FakeGitHub, labeled, memory_session_factory, ts

from prioritysync.services.refs import RepoRef
from prioritysync.services.repo_scanner import RepositoryScanner
from prioritysync.services.stores import Checkpoint, CheckpointStore, IssueStateCache

logging.disable(logging.CRITICAL)

REPO = RepoRef("octo", "app")
KEY = "repo-scan:octo/app:open"


def issue_url(n: int) -> str:
    return f"https://github.com/octo/app/issues/{n}"


class _RecordingCheckpoints(CheckpointStore):
    def __init__(self, db):
        super().__init__(db)
        self.writes = []

    def set(self, key, checkpoint):
        self.writes.append((key, checkpoint))
        super().set(key, checkpoint)


class RepositoryScannerTests(unittest.TestCase):
    def setUp(self):
        self.db = memory_session_factory()()
        self.cache = IssueStateCache(self.db)
        self.checkpoints = _RecordingCheckpoints(self.db)
        self.github = FakeGitHub()

    def tearDown(self):
        self.db.close()

    def _scanner(self, page_size=10):
        return RepositoryScanner(self.github, self.cache, self.checkpoints, page_size=page_size)

    def _seed(self, count):
        for n in range(1, count + 1):
            self.github.add_issue(
                "octo/app", "open", issue_url(n), ["bug"], [labeled("bug", ts(n))], updated_at=ts(n)
            )

    def test_checkpoint_key(self):
        self.assertEqual(RepositoryScanner.checkpoint_key(REPO, "closed"), "repo-scan:octo/app:closed")

    def test_rejects_unknown_state(self):
        with self.assertRaises(ValueError):
            list(self._scanner().scan(REPO, "merged"))

    def test_full_scan_caches_every_item_and_advances_watermark(self):
        self._seed(25)

        urls = [s.url for s in self._scanner().scan(REPO, "open")]

        # The second walk starts at the last update time and re-delivers the boundary item.
        self.assertEqual(urls[:25], [issue_url(n) for n in range(1, 26)])
        self.assertEqual(urls[25:], [issue_url(25)])
        self.assertEqual(self.cache.get(issue_url(7)).labels, ["bug"])
        self.assertEqual(self.checkpoints.get(KEY), Checkpoint(cursor=None, watermark=ts(25)))

    def test_checkpoint_written_after_every_item(self):
        self._seed(3)
        scanner = self._scanner()

        for snapshot in scanner.scan(REPO, "open"):
            if snapshot.url == issue_url(2):
                # Cached and checkpointed before the item is handed out.
                self.assertIsNotNone(self.cache.get(issue_url(2)))
                self.assertEqual(self.checkpoints.get(KEY).last_seen_at, ts(2))
                break

        item_writes = [cp for _, cp in self.checkpoints.writes]
        self.assertEqual([cp.last_seen_at for cp in item_writes], [ts(1), ts(2)])

    def test_resume_after_crash_mid_page(self):
        self._seed(100)
        processed = []

        gen = self._scanner(page_size=100).scan(REPO, "open")
        for snapshot in gen:
            processed.append(snapshot.url)
            if len(processed) == 40:
                break
        gen.close()  # simulated crash: nothing after item 40 ran

        resumed = [s.url for s in self._scanner(page_size=100).scan(REPO, "open")]

        self.assertEqual(resumed[0], issue_url(41))
        self.assertTrue(set(processed).isdisjoint(resumed))
        self.assertEqual(self.github.search_calls[1]["after"], "c39")
        self.assertIsNone(self.github.search_calls[1]["updated_since"])

    def test_incremental_run_only_sees_newer_items(self):
        self._seed(5)
        list(self._scanner().scan(REPO, "open"))

        self.github.add_issue("octo/app", "open", issue_url(99), ["High-Priority"], [], updated_at=ts(50))
        urls = [s.url for s in self._scanner().scan(REPO, "open")]

        self.assertNotIn(issue_url(1), urls)
        self.assertIn(issue_url(99), urls)
        self.assertEqual(self.checkpoints.get(KEY).watermark, ts(50))

    def test_empty_repository_keeps_empty_checkpoint(self):
        self.assertEqual(list(self._scanner().scan(REPO, "open")), [])
        self.assertEqual(self.checkpoints.get(KEY), Checkpoint())

    def test_timeline_is_trimmed_to_window(self):
        events = [labeled("bug", ts(n)) for n in range(10, 0, -1)]
        self.github.add_issue("octo/app", "open", issue_url(1), ["bug"], events, updated_at=ts(1))
        scanner = RepositoryScanner(self.github, self.cache, self.checkpoints, timeline_window=3)

        list(scanner.scan(REPO, "open"))

        self.assertEqual([e.occurred_at for e in self.cache.get(issue_url(1)).timeline], [ts(10), ts(9), ts(8)])


if __name__ == "__main__":
    unittest.main()
