"""
CLI entrypoint for the scan worker process. Run one or more, e.g.:

  python -m codepassport.worker

Each process runs WORKER_CONCURRENCY threads; workers on any number of hosts share
the queue through the scans table. SIGINT/SIGTERM stop claiming and let in-flight
jobs finish.
"""

import argparse
import logging
import signal
import sys

from dotenv import load_dotenv

from codepassport.core.config import get_settings
from codepassport.core.database import build_engine, build_session_factory
from codepassport.services.pipeline import ScanPipeline
from codepassport.services.scan_repository import ScanRepository
from codepassport.services.worker_pool import ScanWorkerPool

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Start the worker pool and block until signalled."""
    parser = argparse.ArgumentParser(description="Run CodePassport scan workers.")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Worker threads (default: WORKER_CONCURRENCY).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one queued job and exit.",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    settings = get_settings()
    engine = build_engine(settings)
    repository = ScanRepository.from_settings(build_session_factory(engine), settings)
    pipeline = ScanPipeline.from_settings(settings, repository)
    pool = ScanWorkerPool(
        repository,
        pipeline,
        concurrency=args.concurrency or settings.WORKER_CONCURRENCY,
        poll_interval_sec=settings.WORKER_POLL_INTERVAL_SEC,
    )

    # Anything older than a lease cannot belong to a live job.
    pipeline.workspaces.sweep(settings.JOB_LEASE_SEC)

    try:
        if args.once:
            claimed = pool.run_once(f"{pool.worker_prefix}-once")
            logger.info("Single run finished: claimed=%s", claimed)
            return 0

        def _shutdown(signum, _frame) -> None:
            logger.info("Received signal %s; draining workers", signum)
            pool.stop()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
        pool.start()
        pool.wait()
        return 0
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        return 1
    finally:
        pipeline.publisher.close()
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
