"""Fixed-size pool of worker threads that claim and process scan jobs."""

import logging
import os
import socket
import threading

from sqlalchemy.exc import SQLAlchemyError

from codepassport.services.pipeline import ScanPipeline, ScanPipelineError
from codepassport.services.scan_repository import ScanRepository

logger = logging.getLogger(__name__)


def default_worker_prefix() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class ScanWorkerPool:
    """
    Runs `concurrency` threads; each claims one job, processes it fully, then claims
    the next. At most `concurrency` jobs run at once in this process. Idle threads
    sleep `poll_interval_sec` between claims.
    """

    def __init__(
        self,
        repository: ScanRepository,
        pipeline: ScanPipeline,
        concurrency: int = 2,
        poll_interval_sec: float = 2.0,
        worker_prefix: str | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.repository = repository
        self.pipeline = pipeline
        self.concurrency = concurrency
        self.poll_interval_sec = poll_interval_sec
        self.worker_prefix = worker_prefix or default_worker_prefix()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> int:
        return sum(1 for t in self._threads if t.is_alive())

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("Worker pool already started")
        self._stop_event.clear()
        for index in range(self.concurrency):
            worker_id = f"{self.worker_prefix}-{index}"
            thread = threading.Thread(
                target=self._loop,
                args=(worker_id,),
                name=f"scan-worker-{index}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        logger.info(
            "Worker pool started",
            extra={"concurrency": self.concurrency, "worker_prefix": self.worker_prefix},
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop claiming new jobs and wait for in-flight jobs to finish."""
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
        logger.info("Worker pool stopped", extra={"still_running": len(self._threads)})

    def wait(self) -> None:
        """Block until stop() is called from another thread or a signal handler."""
        self._stop_event.wait()

    def run_once(self, worker_id: str) -> bool:
        """Claim and process at most one job. Returns True if a job was claimed."""
        job = self.repository.claim_next(worker_id)
        if job is None:
            return False
        try:
            self.pipeline.process(job, worker_id)
        except ScanPipelineError as e:
            logger.error(
                "Scan %s failed: %s",
                job.id,
                e.message,
                extra={"job_id": job.id, "worker_id": worker_id},
            )
        return True

    def _loop(self, worker_id: str) -> None:
        while not self._stop_event.is_set():
            try:
                claimed = self.run_once(worker_id)
                if not claimed:
                    self.repository.expire_stale_leases()
            except SQLAlchemyError:
                logger.exception("Queue access failed", extra={"worker_id": worker_id})
                claimed = False
            except Exception:
                logger.exception("Unexpected worker error", extra={"worker_id": worker_id})
                claimed = False
            if not claimed:
                self._stop_event.wait(self.poll_interval_sec)
