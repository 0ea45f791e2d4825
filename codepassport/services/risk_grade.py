"""Risk grade assignment: deterministic A/C/F from scanner findings.

F when any secret or any viral-family license is present; otherwise C when any
vulnerability is CRITICAL; otherwise A. Findings order never affects the result.
"""

import re
from collections.abc import Iterable

from codepassport.schemas.findings import (
    LicenseFinding,
    RiskAssessment,
    RiskGrade,
    ScanFindings,
)

CRITICAL_SEVERITY = "CRITICAL"

DEFAULT_VIRAL_LICENSES: tuple[str, ...] = ("AGPL", "GPL", "SSPL")

# SPDX expression operators; atoms between them are checked independently.
_EXPRESSION_SPLIT = re.compile(r"[\s()]+|\bAND\b|\bOR\b|\bWITH\b", re.IGNORECASE)
# Shortest leading alphabetic run that ends at a version marker ("v3", "2.0"),
# punctuation or the end of the atom.
_FAMILY_TOKEN = re.compile(r"^([A-Za-z]+?)(?=[vV]?\d|[^A-Za-z]|$)")


def license_family(license_atom: str) -> str:
    """
    Family of a license identifier with any version marker removed.

    GPL-2.0+ -> GPL, GPLv3 -> GPL, SSPLv1 -> SSPL, LGPL-2.1 -> LGPL.
    """
    match = _FAMILY_TOKEN.match(license_atom.strip())
    return match.group(1).upper() if match else ""


def is_viral_license(license_id: str, viral_families: Iterable[str]) -> bool:
    """True if any atom of the license expression belongs to a viral family."""
    families = {f.strip().upper() for f in viral_families if f and f.strip()}
    if not license_id or not families:
        return False
    for atom in _EXPRESSION_SPLIT.split(license_id):
        if atom and license_family(atom) in families:
            return True
    return False


def _sorted_licenses(items: Iterable[LicenseFinding]) -> tuple[LicenseFinding, ...]:
    return tuple(sorted(items, key=lambda f: (f.package_name, f.license_id)))


def assess(
    findings: ScanFindings,
    viral_licenses: Iterable[str] = DEFAULT_VIRAL_LICENSES,
) -> RiskAssessment:
    """
    Grade findings and keep the evidence behind the grade.

    Evidence lists are sorted so identical inputs in any order produce identical
    assessments (and identical certificates).
    """
    families = tuple(viral_licenses)
    viral = _sorted_licenses(
        f for f in findings.licenses if is_viral_license(f.license_id, families)
    )
    critical = tuple(
        sorted(
            (
                v
                for v in findings.vulnerabilities
                if (v.severity or "").strip().upper() == CRITICAL_SEVERITY
            ),
            key=lambda v: (v.vulnerability_id, v.package_name, v.installed_version or ""),
        )
    )
    secrets = tuple(
        sorted(findings.secrets, key=lambda s: (s.file_path, s.line_number or 0, s.rule))
    )

    grade: RiskGrade
    if secrets or viral:
        grade = "F"
    elif critical:
        grade = "C"
    else:
        grade = "A"

    return RiskAssessment(
        grade=grade,
        viral_licenses=viral,
        critical_vulnerabilities=critical,
        secrets=secrets,
    )


def classify(
    findings: ScanFindings,
    viral_licenses: Iterable[str] = DEFAULT_VIRAL_LICENSES,
) -> RiskGrade:
    """Return only the grade for the given findings."""
    return assess(findings, viral_licenses).grade
