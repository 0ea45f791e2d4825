"""Pydantic schemas for scanner findings and the risk grade they roll up into."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Ordered worst-last: A (clean) < C (critical vulnerability) < F (secret or viral license).
RiskGrade = Literal["A", "C", "F"]

GRADE_ORDER: tuple[str, ...] = ("A", "C", "F")


def worst_grade(*grades: RiskGrade) -> RiskGrade:
    """Return the most severe of the given grades; A when none are given."""
    if not grades:
        return "A"
    return max(grades, key=GRADE_ORDER.index)


class LicenseFinding(BaseModel):
    """A package and the license identifier a scanner attributed to it."""

    model_config = ConfigDict(frozen=True)

    package_name: str = Field(..., description="Package or file the license was detected on.")
    license_id: str = Field(..., description="License identifier, usually SPDX (e.g. GPL-3.0-only).")


class VulnerabilityFinding(BaseModel):
    """A known vulnerability in a dependency."""

    model_config = ConfigDict(frozen=True)

    vulnerability_id: str = Field(..., description="Advisory identifier (e.g. CVE-2024-1234, GHSA-...).")
    package_name: str = Field(..., description="Affected package name.")
    severity: str = Field(..., description="Scanner-reported severity (CRITICAL, HIGH, ...).")
    installed_version: str | None = Field(default=None, description="Installed package version.")
    title: str | None = Field(default=None, description="Short advisory title.")


class SecretFinding(BaseModel):
    """A hard-coded credential; only a masked snippet is ever held."""

    model_config = ConfigDict(frozen=True)

    rule: str = Field(..., description="Detection rule that matched (e.g. aws-access-token).")
    file_path: str = Field(..., description="Path of the file within the repository.")
    line_number: int | None = Field(default=None, description="1-based line of the match.")
    masked_snippet: str = Field(default="", description="Redacted excerpt of the match.")


class ScanFindings(BaseModel):
    """All findings of one job, grouped by category."""

    model_config = ConfigDict(frozen=True)

    licenses: tuple[LicenseFinding, ...] = ()
    vulnerabilities: tuple[VulnerabilityFinding, ...] = ()
    secrets: tuple[SecretFinding, ...] = ()


class RiskAssessment(BaseModel):
    """Grade plus the findings that drove it."""

    model_config = ConfigDict(frozen=True)

    grade: RiskGrade
    viral_licenses: tuple[LicenseFinding, ...] = ()
    critical_vulnerabilities: tuple[VulnerabilityFinding, ...] = ()
    secrets: tuple[SecretFinding, ...] = ()

    def summary(self, findings: ScanFindings) -> dict[str, int]:
        """Counts persisted on the job and shown in the certificate summary."""
        return {
            "licenses": len(findings.licenses),
            "vulnerabilities": len(findings.vulnerabilities),
            "secrets": len(self.secrets),
            "viral_licenses": len(self.viral_licenses),
            "critical_vulnerabilities": len(self.critical_vulnerabilities),
        }
