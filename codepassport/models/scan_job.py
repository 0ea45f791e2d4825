"""ORM model for audit jobs; the scans table doubles as the durable work queue."""

import enum

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func

from codepassport.models.base import Base, PortableJSON


class ScanStatus(str, enum.Enum):
    """Job lifecycle: QUEUED -> RUNNING -> COMPLETED | ERROR (ERROR may be retried)."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class ScanJob(Base):
    """
    One audit request and its outcome.

    credential_token is held only while the job can still run; it is set to NULL on
    every terminal transition. risk_grade, pdf_url and inventory_url are written only
    together with COMPLETED.
    """

    __tablename__ = "scans"

    id = Column(String(36), primary_key=True)
    repo_url = Column(String(2048), nullable=False)
    repo_identity = Column(String(2048), nullable=False, index=True)
    credential_token = Column(Text, nullable=True)
    user_id = Column(String(255), nullable=True, index=True)
    status = Column(String(16), nullable=False, default=ScanStatus.QUEUED.value, index=True)
    risk_grade = Column(String(1), nullable=True)
    commit_sha = Column(String(64), nullable=True)
    pdf_url = Column(String(2048), nullable=True)
    inventory_url = Column(String(2048), nullable=True)
    last_error = Column(Text, nullable=True)
    warnings = Column(PortableJSON, nullable=True)
    findings_summary = Column(PortableJSON, nullable=True)
    cached_from_id = Column(String(36), nullable=True)
    scanner_version = Column(String(64), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    worker_id = Column(String(255), nullable=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_scans_identity_commit_status", "repo_identity", "commit_sha", "status"),
    )
