"""Pydantic schemas for request/response and domain models."""

from codepassport.schemas.findings import (
    LicenseFinding,
    RiskAssessment,
    RiskGrade,
    ScanFindings,
    SecretFinding,
    VulnerabilityFinding,
    worst_grade,
)
from codepassport.schemas.health import HealthResponse
from codepassport.schemas.scan import ScanAccepted, ScanRequest, ScanStatusResponse

__all__ = [
    "HealthResponse",
    "LicenseFinding",
    "RiskAssessment",
    "RiskGrade",
    "ScanAccepted",
    "ScanFindings",
    "ScanRequest",
    "ScanStatusResponse",
    "SecretFinding",
    "VulnerabilityFinding",
    "worst_grade",
]
