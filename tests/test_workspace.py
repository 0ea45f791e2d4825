"""Unit tests for per-job workspaces: uniqueness, cleanup on every path, purge and sweep."""

import os
import tempfile
import time
import unittest

from codepassport.services.workspace import WorkspaceError, WorkspaceManager


class TestAcquire(unittest.TestCase):
    """acquire() yields a fresh directory and always removes it."""

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.manager = WorkspaceManager(self.tmp.name)

    def test_removed_after_success(self) -> None:
        with self.manager.acquire("job-1") as path:
            self.assertTrue(os.path.isdir(path))
            self.assertTrue(os.path.basename(path).startswith("scan-job-1-"))
            with open(os.path.join(path, "file.txt"), "w") as fh:
                fh.write("x")
        self.assertFalse(os.path.exists(path))

    def test_removed_after_exception(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.manager.acquire("job-2") as path:
                raise RuntimeError("scanner crashed")
        self.assertFalse(os.path.exists(path))

    def test_unique_per_acquire(self) -> None:
        with self.manager.acquire("job-3") as first, self.manager.acquire("job-3") as second:
            self.assertNotEqual(first, second)

    def test_unusable_root(self) -> None:
        blocker = os.path.join(self.tmp.name, "not-a-dir")
        with open(blocker, "w") as fh:
            fh.write("x")
        manager = WorkspaceManager(os.path.join(blocker, "nested"))
        with self.assertRaises(WorkspaceError):
            with manager.acquire("job-4"):
                pass


class TestPurgeAndSweep(unittest.TestCase):
    """Leftovers from crashed attempts are removed."""

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.manager = WorkspaceManager(self.tmp.name)

    def _leftover(self, name: str, age_sec: float = 0) -> str:
        path = os.path.join(self.tmp.name, name)
        os.makedirs(path)
        if age_sec:
            past = time.time() - age_sec
            os.utime(path, (past, past))
        return path

    def test_purge_only_matching_job(self) -> None:
        mine = self._leftover("scan-job-1-abc")
        other = self._leftover("scan-job-10-abc")
        unrelated = self._leftover("cache")
        self.assertEqual(self.manager.purge("job-1"), 1)
        self.assertFalse(os.path.exists(mine))
        self.assertTrue(os.path.exists(other))
        self.assertTrue(os.path.exists(unrelated))

    def test_sweep_by_age(self) -> None:
        old = self._leftover("scan-a-1", age_sec=7200)
        fresh = self._leftover("scan-b-1")
        self.assertEqual(self.manager.sweep(3600), 1)
        self.assertFalse(os.path.exists(old))
        self.assertTrue(os.path.exists(fresh))

    def test_missing_root(self) -> None:
        manager = WorkspaceManager(os.path.join(self.tmp.name, "missing"))
        self.assertEqual(manager.purge("job"), 0)
        self.assertEqual(manager.sweep(0), 0)


if __name__ == "__main__":
    unittest.main()
