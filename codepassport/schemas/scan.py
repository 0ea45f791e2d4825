"""Pydantic schemas for the scan submission and status API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScanRequest(BaseModel):
    """Body for POST /api/v1/scan."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    repository_url: str = Field(
        ...,
        alias="repositoryUrl",
        min_length=1,
        max_length=2048,
        description="HTTP(S) URL of the repository to audit.",
    )
    token: str | None = Field(
        default=None,
        max_length=4096,
        description="Optional access token for private repositories; never echoed back.",
    )
    user_id: str | None = Field(
        default=None,
        alias="userId",
        max_length=255,
        description="Optional owning-user reference stored on the job.",
    )

    @field_validator("repository_url")
    @classmethod
    def validate_repository_url(cls, v: str) -> str:
        s = v.strip()
        if not (s.lower().startswith("http://") or s.lower().startswith("https://")):
            raise ValueError("repositoryUrl must be an http or https URL")
        return s

    @field_validator("token", "user_id")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class ScanAccepted(BaseModel):
    """202 response for a newly queued scan."""

    model_config = ConfigDict(populate_by_name=True)

    scan_id: str = Field(..., alias="scanId", description="Job identifier for status polling.")
    status: str = Field(..., description="Initial job status (QUEUED).")


class ScanStatusResponse(BaseModel):
    """Response for GET /api/v1/scan/{scanId}; credential fields are never included."""

    model_config = ConfigDict(populate_by_name=True)

    scan_id: str = Field(..., alias="scanId")
    repository_url: str = Field(..., alias="repositoryUrl")
    status: str
    risk_grade: str | None = Field(default=None, alias="riskGrade")
    commit_sha: str | None = Field(default=None, alias="commitSha")
    pdf_url: str | None = Field(default=None, alias="pdfUrl")
    inventory_url: str | None = Field(default=None, alias="inventoryUrl")
    warnings: list[str] = Field(default_factory=list)
    findings_summary: dict[str, int] | None = Field(default=None, alias="findingsSummary")
    last_error: str | None = Field(default=None, alias="lastError")
    cached_from_id: str | None = Field(default=None, alias="cachedFromId")
    scanner_version: str | None = Field(default=None, alias="scannerVersion")
    attempts: int = 0
    created_at: datetime | None = Field(default=None, alias="createdAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")
