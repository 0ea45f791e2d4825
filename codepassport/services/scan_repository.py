"""Persistence for scan jobs and the durable queue built on the scans table.

Workers claim rows with SELECT ... FOR UPDATE SKIP LOCKED and hold them under a
time-bounded lease. Every terminal write is a single guarded UPDATE so a job can
never leave COMPLETED, and grade plus artifact links are written only together
with the COMPLETED transition.
"""

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from codepassport.models.base import utcnow
from codepassport.models.scan_job import ScanJob, ScanStatus
from codepassport.services.repo_resolver import canonical_identity

if TYPE_CHECKING:
    from codepassport.core.config import Settings

logger = logging.getLogger(__name__)

LEASE_EXPIRED_MESSAGE = "Worker lease expired before the scan finished"
MAX_ERROR_CHARS = 4000


class ScanRepository:
    """Reads and writes ScanJob rows; each method runs in its own short transaction."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        lease_sec: int = 3600,
        max_attempts: int = 3,
        retry_backoff_sec: int = 30,
        scanner_version: str = "Trivy+Gitleaks",
    ) -> None:
        self._session_factory = session_factory
        self.lease_sec = lease_sec
        self.max_attempts = max_attempts
        self.retry_backoff_sec = retry_backoff_sec
        self.scanner_version = scanner_version

    @classmethod
    def from_settings(
        cls, session_factory: sessionmaker[Session], settings: "Settings"
    ) -> "ScanRepository":
        return cls(
            session_factory,
            lease_sec=settings.JOB_LEASE_SEC,
            max_attempts=settings.JOB_MAX_ATTEMPTS,
            retry_backoff_sec=settings.JOB_RETRY_BACKOFF_SEC,
            scanner_version=settings.SCANNER_VERSION_LABEL,
        )

    def create(
        self,
        repo_url: str,
        token: str | None = None,
        user_id: str | None = None,
    ) -> ScanJob:
        """Insert a QUEUED job. Raises ResolutionError for URLs that cannot be canonicalized."""
        job = ScanJob(
            id=str(uuid.uuid4()),
            repo_url=repo_url,
            repo_identity=canonical_identity(repo_url),
            credential_token=token or None,
            user_id=user_id,
            status=ScanStatus.QUEUED.value,
            attempts=0,
            warnings=[],
            scanner_version=self.scanner_version,
            created_at=utcnow(),
        )
        with self._session_factory() as session:
            session.add(job)
            session.commit()
        logger.info("Scan queued", extra={"job_id": job.id, "repo": job.repo_identity})
        return job

    def get(self, job_id: str) -> ScanJob | None:
        with self._session_factory() as session:
            return session.get(ScanJob, job_id)

    def claim_next(self, worker_id: str) -> ScanJob | None:
        """
        Claim one eligible job for worker_id and return it in RUNNING state.

        Eligible: QUEUED; RUNNING with an expired lease and attempts left (crashed
        worker); ERROR with attempts left whose retry time has come.
        """
        now = utcnow()
        eligible = or_(
            ScanJob.status == ScanStatus.QUEUED.value,
            and_(
                ScanJob.status == ScanStatus.RUNNING.value,
                ScanJob.lease_expires_at < now,
                ScanJob.attempts < self.max_attempts,
            ),
            and_(
                ScanJob.status == ScanStatus.ERROR.value,
                ScanJob.attempts < self.max_attempts,
                ScanJob.next_attempt_at.is_not(None),
                ScanJob.next_attempt_at <= now,
            ),
        )
        stmt = (
            select(ScanJob)
            .where(eligible)
            .order_by(ScanJob.created_at, ScanJob.id)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        with self._session_factory() as session:
            job = session.execute(stmt).scalars().first()
            if job is None:
                session.rollback()
                return None
            reclaimed = job.status != ScanStatus.QUEUED.value
            job.status = ScanStatus.RUNNING.value
            job.attempts = (job.attempts or 0) + 1
            job.worker_id = worker_id
            job.started_at = now
            job.lease_expires_at = now + timedelta(seconds=self.lease_sec)
            job.next_attempt_at = None
            session.commit()
        logger.info(
            "Scan claimed",
            extra={"job_id": job.id, "worker_id": worker_id, "attempt": job.attempts, "reclaimed": reclaimed},
        )
        return job

    def renew_lease(self, job_id: str, worker_id: str) -> bool:
        """Extend the lease of a RUNNING job held by worker_id. Returns False if the job was lost."""
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.id == job_id,
                ScanJob.status == ScanStatus.RUNNING.value,
                ScanJob.worker_id == worker_id,
            )
            .values(lease_expires_at=utcnow() + timedelta(seconds=self.lease_sec))
        )
        with self._session_factory() as session:
            rowcount = session.execute(stmt).rowcount
            session.commit()
        if rowcount != 1:
            logger.warning(
                "Lease renewal rejected; job not RUNNING for this worker",
                extra={"job_id": job_id, "worker_id": worker_id},
            )
            return False
        return True

    def mark_completed(
        self,
        job_id: str,
        worker_id: str,
        risk_grade: str,
        pdf_url: str,
        commit_sha: str | None = None,
        inventory_url: str | None = None,
        warnings: list[str] | None = None,
        findings_summary: dict[str, int] | None = None,
        cached_from_id: str | None = None,
    ) -> bool:
        """Record a successful audit. Returns False if the job is no longer RUNNING for this worker."""
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.id == job_id,
                ScanJob.status == ScanStatus.RUNNING.value,
                ScanJob.worker_id == worker_id,
            )
            .values(
                status=ScanStatus.COMPLETED.value,
                risk_grade=risk_grade,
                pdf_url=pdf_url,
                inventory_url=inventory_url,
                commit_sha=commit_sha,
                warnings=list(warnings or []),
                findings_summary=findings_summary,
                cached_from_id=cached_from_id,
                last_error=None,
                credential_token=None,
                lease_expires_at=None,
                next_attempt_at=None,
                completed_at=utcnow(),
            )
        )
        with self._session_factory() as session:
            rowcount = session.execute(stmt).rowcount
            session.commit()
        if rowcount != 1:
            logger.warning(
                "Completion rejected; job not RUNNING for this worker",
                extra={"job_id": job_id, "worker_id": worker_id},
            )
            return False
        logger.info("Scan completed", extra={"job_id": job_id, "grade": risk_grade})
        return True

    def mark_error(
        self,
        job_id: str,
        message: str,
        worker_id: str | None = None,
        warnings: list[str] | None = None,
    ) -> bool:
        """
        Move a RUNNING job to ERROR with last_error set.

        While attempts remain, next_attempt_at is scheduled with exponential backoff
        and the credential is kept for the retry; otherwise the error is final and
        the credential is scrubbed. No artifact link is written on this path.
        """
        conditions = [ScanJob.id == job_id, ScanJob.status == ScanStatus.RUNNING.value]
        if worker_id is not None:
            conditions.append(ScanJob.worker_id == worker_id)
        now = utcnow()
        with self._session_factory() as session:
            job = session.execute(
                select(ScanJob).where(*conditions).with_for_update()
            ).scalars().first()
            if job is None:
                session.rollback()
                logger.warning("Error transition rejected; job not RUNNING", extra={"job_id": job_id})
                return False
            attempts = job.attempts or 0
            final = attempts >= self.max_attempts
            job.status = ScanStatus.ERROR.value
            job.last_error = (message or "Unknown error")[:MAX_ERROR_CHARS]
            job.lease_expires_at = None
            job.completed_at = now
            if warnings is not None:
                job.warnings = list(warnings)
            if final:
                job.next_attempt_at = None
                job.credential_token = None
            else:
                delay = self.retry_backoff_sec * 2 ** max(attempts - 1, 0)
                job.next_attempt_at = now + timedelta(seconds=delay)
            session.commit()
        logger.info(
            "Scan errored",
            extra={"job_id": job_id, "attempt": attempts, "final": final},
        )
        return True

    def find_completed_by(self, repo_identity: str, commit_sha: str) -> ScanJob | None:
        """Latest COMPLETED job for the same repository identity and commit, if any."""
        stmt = (
            select(ScanJob)
            .where(
                ScanJob.repo_identity == repo_identity,
                ScanJob.commit_sha == commit_sha,
                ScanJob.status == ScanStatus.COMPLETED.value,
                ScanJob.pdf_url.is_not(None),
            )
            .order_by(ScanJob.completed_at.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            return session.execute(stmt).scalars().first()

    def expire_stale_leases(self) -> int:
        """Turn RUNNING jobs with an expired lease and no attempts left into final ERROR."""
        now = utcnow()
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.status == ScanStatus.RUNNING.value,
                ScanJob.lease_expires_at < now,
                ScanJob.attempts >= self.max_attempts,
            )
            .values(
                status=ScanStatus.ERROR.value,
                last_error=LEASE_EXPIRED_MESSAGE,
                credential_token=None,
                lease_expires_at=None,
                next_attempt_at=None,
                completed_at=now,
            )
        )
        with self._session_factory() as session:
            rowcount = session.execute(stmt).rowcount
            session.commit()
        if rowcount:
            logger.info("Expired stale leases", extra={"count": rowcount})
        return rowcount
