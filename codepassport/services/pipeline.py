"""Process one claimed scan job end to end.

resolve -> HEAD commit -> cache lookup -> scanners -> grade -> certificate ->
publish -> COMPLETED. Soft failures (one scanner, HEAD lookup, cache) are recorded
as warnings; hard failures set ERROR and are re-raised as ScanPipelineError. The
job workspace is removed on every path.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from codepassport.core.redaction import redact_url, scrub
from codepassport.models.scan_job import ScanJob
from codepassport.services.artifact_publisher import ArtifactPublisher
from codepassport.services.certificate import render_certificate
from codepassport.services.repo_resolver import RepoResolver, ResolutionError
from codepassport.services.result_cache import ResultCache
from codepassport.services.risk_grade import DEFAULT_VIRAL_LICENSES, assess
from codepassport.services.scan_repository import ScanRepository
from codepassport.services.scanners import ScannerSuite
from codepassport.services.workspace import WorkspaceManager

if TYPE_CHECKING:
    from codepassport.core.config import Settings

logger = logging.getLogger(__name__)


class ScanPipelineError(Exception):
    """Raised when a job cannot produce a certificate; the job has been moved to ERROR."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        self.message = message
        self.job_id = job_id
        super().__init__(message)


@dataclass(frozen=True)
class PipelineOutcome:
    job_id: str
    risk_grade: str
    pdf_url: str
    inventory_url: str | None = None
    commit_sha: str | None = None
    cached_from_id: str | None = None
    warnings: list[str] = field(default_factory=list)


class ScanPipeline:
    """Runs claimed jobs; one instance is shared by all worker threads."""

    def __init__(
        self,
        repository: ScanRepository,
        resolver: RepoResolver,
        suite: ScannerSuite,
        publisher: ArtifactPublisher,
        workspaces: WorkspaceManager,
        cache: ResultCache | None = None,
        viral_licenses: Iterable[str] = DEFAULT_VIRAL_LICENSES,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.suite = suite
        self.publisher = publisher
        self.workspaces = workspaces
        self.cache = cache or ResultCache(repository)
        self.viral_licenses = tuple(viral_licenses)

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        repository: ScanRepository,
        publisher: ArtifactPublisher | None = None,
    ) -> "ScanPipeline":
        return cls(
            repository=repository,
            resolver=RepoResolver(
                hosted_domains=settings.HOSTED_GIT_DOMAINS,
                git_binary=settings.GIT_BINARY,
                ls_remote_timeout_sec=settings.LS_REMOTE_TIMEOUT_SEC,
            ),
            suite=ScannerSuite.from_settings(settings),
            publisher=publisher or ArtifactPublisher.from_settings(settings),
            workspaces=WorkspaceManager(settings.WORKSPACE_ROOT),
            viral_licenses=settings.VIRAL_LICENSES,
        )

    def process(self, job: ScanJob, worker_id: str) -> PipelineOutcome:
        """Run job to COMPLETED, or mark it ERROR and raise ScanPipelineError."""
        token = job.credential_token
        secrets = (token,) if token else ()
        warnings: list[str] = []
        try:
            if (job.attempts or 0) > 1:
                self.workspaces.purge(job.id)
            with self.workspaces.acquire(job.id) as workspace:
                return self._run(job, worker_id, workspace, secrets, warnings)
        except Exception as e:
            message = scrub(getattr(e, "message", None) or str(e) or type(e).__name__, secrets)
            logger.warning(
                "Scan failed",
                extra={"job_id": job.id, "error_type": type(e).__name__},
            )
            try:
                self.repository.mark_error(job.id, message, worker_id=worker_id, warnings=warnings)
            except SQLAlchemyError:
                logger.exception("Could not record scan error", extra={"job_id": job.id})
            raise ScanPipelineError(message, job_id=job.id) from e

    def _run(
        self,
        job: ScanJob,
        worker_id: str,
        workspace: str,
        secrets: tuple[str, ...],
        warnings: list[str],
    ) -> PipelineOutcome:
        repo_label = redact_url(job.repo_url)
        auth_url = self.resolver.resolve(job.repo_url, secrets[0] if secrets else None)

        commit_sha: str | None = None
        try:
            commit_sha = self.resolver.head_commit(auth_url, work_dir=workspace, secrets=secrets)
        except ResolutionError as e:
            warnings.append(scrub(f"commit lookup: {e.message}", secrets))
            logger.info("HEAD commit unavailable; caching disabled for this run", extra={"job_id": job.id})

        entry = self.cache.lookup(job.repo_identity, commit_sha)
        if entry is not None:
            logger.info(
                "Result cache hit",
                extra={"job_id": job.id, "source_job_id": entry.source_job_id, "commit": commit_sha},
            )
            self._complete(
                job.id,
                worker_id,
                risk_grade=entry.risk_grade,
                pdf_url=entry.pdf_url,
                commit_sha=commit_sha,
                inventory_url=entry.inventory_url,
                warnings=warnings + entry.warnings,
                findings_summary=entry.findings_summary,
                cached_from_id=entry.source_job_id,
            )
            return PipelineOutcome(
                job_id=job.id,
                risk_grade=entry.risk_grade,
                pdf_url=entry.pdf_url,
                inventory_url=entry.inventory_url,
                commit_sha=commit_sha,
                cached_from_id=entry.source_job_id,
                warnings=warnings + entry.warnings,
            )

        result = self.suite.run_all(auth_url, workspace, secrets, commit_sha=commit_sha)
        warnings.extend(scrub(w, secrets) for w in result.warnings)
        if result.all_finding_stages_failed:
            raise ScanPipelineError("All scanners failed: " + "; ".join(result.warnings), job_id=job.id)
        # Uploads run after the scanners; restart the lease so they are covered too.
        if not self.repository.renew_lease(job.id, worker_id):
            raise ScanPipelineError("Job is no longer held by this worker", job_id=job.id)

        findings = result.findings()
        assessment = assess(findings, self.viral_licenses)
        pdf = render_certificate(
            assessment.grade,
            assessment.viral_licenses,
            assessment.critical_vulnerabilities,
            assessment.secrets,
            scan_id=job.id,
            repo_url=repo_label,
        )
        pdf_url = self.publisher.publish("certificate", pdf, job.id)
        inventory_url = None
        if result.inventory_path:
            inventory_url = self.publisher.publish_file("inventory", result.inventory_path, job.id)

        summary = assessment.summary(findings)
        self._complete(
            job.id,
            worker_id,
            risk_grade=assessment.grade,
            pdf_url=pdf_url,
            commit_sha=commit_sha,
            inventory_url=inventory_url,
            warnings=warnings,
            findings_summary=summary,
        )
        logger.info(
            "Scan graded",
            extra={"job_id": job.id, "repo": repo_label, "grade": assessment.grade, **summary},
        )
        return PipelineOutcome(
            job_id=job.id,
            risk_grade=assessment.grade,
            pdf_url=pdf_url,
            inventory_url=inventory_url,
            commit_sha=commit_sha,
            warnings=list(warnings),
        )

    def _complete(self, job_id: str, worker_id: str, **fields) -> None:
        if not self.repository.mark_completed(job_id, worker_id, **fields):
            raise ScanPipelineError("Job is no longer held by this worker", job_id=job_id)
