"""Per-job scratch directories that are always removed when the job finishes."""

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "scan-"


class WorkspaceError(Exception):
    """Raised when a workspace directory cannot be created."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class WorkspaceManager:
    """Allocates `scan-<job_id>-<random>` directories under a root directory."""

    def __init__(self, root: str | None = None) -> None:
        self.root = root or tempfile.gettempdir()

    @contextmanager
    def acquire(self, job_id: str) -> Iterator[str]:
        """Yield a fresh directory for job_id; it is deleted on every exit path."""
        try:
            os.makedirs(self.root, exist_ok=True)
            path = tempfile.mkdtemp(prefix=f"{WORKSPACE_PREFIX}{job_id}-", dir=self.root)
        except OSError as e:
            raise WorkspaceError(f"Could not create workspace: {e}") from e
        logger.debug("Workspace acquired", extra={"job_id": job_id, "workspace": path})
        try:
            yield path
        finally:
            self._remove(path)

    def _remove(self, path: str) -> None:
        shutil.rmtree(path, ignore_errors=True)
        if os.path.exists(path):
            logger.warning("Workspace could not be fully removed", extra={"workspace": path})

    def _entries(self) -> Iterator[os.DirEntry]:
        try:
            with os.scandir(self.root) as it:
                for entry in it:
                    if entry.name.startswith(WORKSPACE_PREFIX) and entry.is_dir(follow_symlinks=False):
                        yield entry
        except FileNotFoundError:
            return

    def purge(self, job_id: str) -> int:
        """Remove directories left by earlier attempts of job_id; returns how many were removed."""
        prefix = f"{WORKSPACE_PREFIX}{job_id}-"
        removed = 0
        for entry in list(self._entries()):
            if entry.name.startswith(prefix):
                self._remove(entry.path)
                removed += 1
        if removed:
            logger.info("Purged stale workspaces", extra={"job_id": job_id, "count": removed})
        return removed

    def sweep(self, max_age_sec: float) -> int:
        """Remove any workspace older than max_age_sec (run at worker start-up)."""
        cutoff = time.time() - max_age_sec
        removed = 0
        for entry in list(self._entries()):
            try:
                mtime = entry.stat(follow_symlinks=False).st_mtime
            except FileNotFoundError:
                continue
            if mtime < cutoff:
                self._remove(entry.path)
                removed += 1
        if removed:
            logger.info("Swept stale workspaces", extra={"count": removed})
        return removed
