"""Map Trivy and Gitleaks JSON reports to finding models."""

from typing import Any

from codepassport.schemas.findings import LicenseFinding, SecretFinding, VulnerabilityFinding
from codepassport.services.scanner_runner import ScannerError

# Characters of a secret left visible on each side when masking.
MASK_VISIBLE_CHARS = 2
MASK_PLACEHOLDER = "REDACTED"
MAX_SNIPPET_CHARS = 200


def _str_or_none(value: Any) -> str | None:
    """Return stripped string or None if empty."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def mask_secret(secret: str | None) -> str:
    """Keep only the edges of a secret (ab****yz); short values are fully replaced."""
    if not secret or secret == MASK_PLACEHOLDER:
        return MASK_PLACEHOLDER
    if len(secret) <= MASK_VISIBLE_CHARS * 4:
        return "*" * len(secret)
    return (
        secret[:MASK_VISIBLE_CHARS]
        + "*" * (len(secret) - MASK_VISIBLE_CHARS * 2)
        + secret[-MASK_VISIBLE_CHARS:]
    )


def _list_field(target: dict, key: str) -> list:
    """Return target[key] as a list; null or missing is empty, any other type is a scanner failure."""
    value = target.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ScannerError("vuln-license", f"{key} is not a list")
    return value


def parse_trivy_report(
    payload: Any,
) -> tuple[list[LicenseFinding], list[VulnerabilityFinding]]:
    """
    Extract license and vulnerability findings from `trivy repo --format json` output.

    Results without Licenses or Vulnerabilities (or with null) are skipped. A payload
    that is not a JSON object, or a Results, Licenses or Vulnerabilities value that
    is not a list, is a scanner failure.
    """
    if not isinstance(payload, dict):
        raise ScannerError("vuln-license", "report is not a JSON object")
    results = payload.get("Results") or []
    if not isinstance(results, list):
        raise ScannerError("vuln-license", "Results is not a list")

    licenses: list[LicenseFinding] = []
    vulns: list[VulnerabilityFinding] = []
    for target in results:
        if not isinstance(target, dict):
            continue
        for lic in _list_field(target, "Licenses"):
            if not isinstance(lic, dict):
                continue
            name = _str_or_none(lic.get("Name"))
            if not name:
                continue
            package = (
                _str_or_none(lic.get("PkgName"))
                or _str_or_none(lic.get("FilePath"))
                or _str_or_none(target.get("Target"))
                or "unknown"
            )
            licenses.append(LicenseFinding(package_name=package, license_id=name))
        for vuln in _list_field(target, "Vulnerabilities"):
            if not isinstance(vuln, dict):
                continue
            vuln_id = _str_or_none(vuln.get("VulnerabilityID"))
            if not vuln_id:
                continue
            vulns.append(
                VulnerabilityFinding(
                    vulnerability_id=vuln_id,
                    package_name=_str_or_none(vuln.get("PkgName")) or "unknown",
                    severity=(_str_or_none(vuln.get("Severity")) or "UNKNOWN").upper(),
                    installed_version=_str_or_none(vuln.get("InstalledVersion")),
                    title=_str_or_none(vuln.get("Title")),
                )
            )
    return licenses, vulns


def parse_gitleaks_report(payload: Any) -> list[SecretFinding]:
    """
    Extract secret findings from a gitleaks JSON report (a list of leak objects).

    The raw Secret value is never kept: the snippet is built from Match with the
    secret masked, then truncated.
    """
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ScannerError("secrets", "report is not a JSON list")

    findings: list[SecretFinding] = []
    for leak in payload:
        if not isinstance(leak, dict):
            continue
        secret = _str_or_none(leak.get("Secret"))
        match = _str_or_none(leak.get("Match")) or ""
        masked = mask_secret(secret)
        snippet = match.replace(secret, masked) if secret and secret in match else masked
        findings.append(
            SecretFinding(
                rule=_str_or_none(leak.get("RuleID")) or _str_or_none(leak.get("Description")) or "unknown",
                file_path=_str_or_none(leak.get("File")) or "unknown",
                line_number=_int_or_none(leak.get("StartLine")),
                masked_snippet=snippet[:MAX_SNIPPET_CHARS],
            )
        )
    return findings
