"""Reuse a completed audit when the same repository commit was already scanned."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from codepassport.services.scan_repository import ScanRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Outcome of an earlier completed job for (repo_identity, commit_sha)."""

    source_job_id: str
    risk_grade: str
    pdf_url: str
    inventory_url: str | None = None
    findings_summary: dict[str, int] | None = None
    warnings: list[str] = field(default_factory=list)


class ResultCache:
    """Read-through view over completed jobs; a lookup failure is a miss, never an error."""

    def __init__(self, repository: ScanRepository) -> None:
        self.repository = repository

    def lookup(self, repo_identity: str, commit_sha: str | None) -> CacheEntry | None:
        if not commit_sha:
            return None
        try:
            job = self.repository.find_completed_by(repo_identity, commit_sha)
        except SQLAlchemyError:
            logger.warning(
                "Result cache lookup failed; treating as miss",
                exc_info=True,
                extra={"repo": repo_identity, "commit": commit_sha},
            )
            return None
        if job is None or not job.risk_grade or not job.pdf_url:
            return None
        return CacheEntry(
            source_job_id=job.cached_from_id or job.id,
            risk_grade=job.risk_grade,
            pdf_url=job.pdf_url,
            inventory_url=job.inventory_url,
            findings_summary=dict(job.findings_summary) if job.findings_summary else None,
            warnings=list(job.warnings or []),
        )
