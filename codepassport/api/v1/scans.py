"""Scan endpoints: queue an audit and poll its status."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError

from codepassport.core.redaction import redact_url
from codepassport.models.scan_job import ScanJob
from codepassport.schemas.scan import ScanAccepted, ScanRequest, ScanStatusResponse
from codepassport.services.repo_resolver import ResolutionError
from codepassport.services.scan_repository import ScanRepository

logger = logging.getLogger(__name__)
router = APIRouter()


def get_scan_repository(request: Request) -> ScanRepository:
    """Dependency returning the repository built at app start-up."""
    return request.app.state.scan_repository


def _to_status(job: ScanJob) -> ScanStatusResponse:
    return ScanStatusResponse(
        scan_id=job.id,
        repository_url=redact_url(job.repo_url),
        status=job.status,
        risk_grade=job.risk_grade,
        commit_sha=job.commit_sha,
        pdf_url=job.pdf_url,
        inventory_url=job.inventory_url,
        warnings=list(job.warnings or []),
        findings_summary=job.findings_summary,
        last_error=job.last_error,
        cached_from_id=job.cached_from_id,
        scanner_version=job.scanner_version,
        attempts=job.attempts or 0,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )


@router.post("", response_model=ScanAccepted, status_code=status.HTTP_202_ACCEPTED)
def post_scan(
    body: ScanRequest,
    repository: Annotated[ScanRepository, Depends(get_scan_repository)],
) -> ScanAccepted:
    """
    Queue an audit of repositoryUrl and return its scanId immediately.

    The optional token is kept only until the job reaches a terminal state.
    """
    try:
        job = repository.create(body.repository_url, token=body.token, user_id=body.user_id)
    except ResolutionError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
    except SQLAlchemyError as e:
        logger.exception("Could not queue scan", extra={"repo": redact_url(body.repository_url)})
        raise HTTPException(status_code=503, detail="Scan queue is unavailable; try again later.") from e
    return ScanAccepted(scan_id=job.id, status=job.status)


@router.get("/{scan_id}", response_model=ScanStatusResponse)
def get_scan(
    scan_id: str,
    repository: Annotated[ScanRepository, Depends(get_scan_repository)],
) -> ScanStatusResponse:
    """Return job status, grade and artifact links; credentials are never included."""
    try:
        job = repository.get(scan_id)
    except SQLAlchemyError as e:
        logger.exception("Could not read scan", extra={"job_id": scan_id})
        raise HTTPException(status_code=503, detail="Scan store is unavailable; try again later.") from e
    if job is None:
        raise HTTPException(status_code=404, detail="Scan not found.")
    return _to_status(job)
