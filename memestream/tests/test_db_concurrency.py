import os
import tempfile
import threading
import unittest

from memestream.db import InMemoryMemeStore, MemeRecord, SqlMemeStore
from memestream.service import same_user_id

DISTINCT_USERS = [f"user-{n}" for n in range(6)]
# Each distinct user toggles an odd number of times and ends up liking the
# meme; the shared user toggles an even number of times and ends up not.
TOGGLES_PER_USER = 3
SHARED_USER = "bob"
SHARED_TOGGLES = 8


def run_in_threads(calls):
    barrier = threading.Barrier(len(calls))
    errors = []

    def worker(fn, args):
        barrier.wait()
        try:
            fn(*args)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=call) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return errors


class ConcurrentUpdatesMixin:
    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()
        self.meme = self.store.create(
            MemeRecord(
                image_url="https://example.test/media/a.jpg",
                media_id="memestream/a.jpg",
                caption="caption",
                category="Dank",
                owner_id="alice",
            )
        )

    def test_concurrent_toggles_keep_count_consistent(self):
        calls = [
            (self.store.toggle_like, (self.meme.id, user))
            for user in DISTINCT_USERS
            for _ in range(TOGGLES_PER_USER)
        ]
        calls += [
            (self.store.toggle_like, (self.meme.id, SHARED_USER))
            for _ in range(SHARED_TOGGLES)
        ]
        errors = run_in_threads(calls)
        self.assertEqual(errors, [])

        stored = self.store.get(self.meme.id)
        self.assertEqual(stored.likes, len(stored.liked_by))
        self.assertEqual(sorted(stored.liked_by), sorted(DISTINCT_USERS))

    def test_concurrent_reports_by_one_user_count_once(self):
        calls = [
            (self.store.add_report, (self.meme.id, SHARED_USER, f"reason {n}", same_user_id))
            for n in range(8)
        ]
        errors = run_in_threads(calls)
        self.assertEqual(errors, [])

        stored = self.store.get(self.meme.id)
        self.assertEqual(stored.report_count, 1)
        self.assertEqual(len(stored.reported_by), 1)

    def test_reads_during_toggles(self):
        calls = [
            (self.store.toggle_like, (self.meme.id, user)) for user in DISTINCT_USERS
        ]
        calls += [(self.store.list_memes, ()) for _ in range(4)]
        calls += [(self.store.trending, (0.0,)) for _ in range(2)]
        errors = run_in_threads(calls)
        self.assertEqual(errors, [])
        self.assertEqual(self.store.get(self.meme.id).likes, len(DISTINCT_USERS))


class InMemoryConcurrencyTests(ConcurrentUpdatesMixin, unittest.TestCase):
    def make_store(self):
        return InMemoryMemeStore()


class SqliteFileConcurrencyTests(ConcurrentUpdatesMixin, unittest.TestCase):
    """Threads need a file-backed database; each :memory: connection is separate."""

    def make_store(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self._tmpdir.name, "memes.sqlite3")
        return SqlMemeStore(f"sqlite+pysqlite:///{path}")

    def tearDown(self):
        self.store.engine.dispose()
        self._tmpdir.cleanup()


if __name__ == "__main__":
    unittest.main()
