"""Scanner suite: the concrete Trivy and Gitleaks stages run for each job."""

import logging
import os
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from codepassport.core.config import Settings
from codepassport.schemas.findings import (
    LicenseFinding,
    ScanFindings,
    SecretFinding,
    VulnerabilityFinding,
)
from codepassport.services.scanner_parsers import parse_gitleaks_report, parse_trivy_report
from codepassport.services.scanner_runner import ScannerError, run_scanner

logger = logging.getLogger(__name__)

STAGE_VULN_LICENSE = "vuln-license"
STAGE_SECRETS = "secrets"
STAGE_INVENTORY = "inventory"

# Stages whose findings feed the grade; the job fails only if all of them fail.
FINDING_STAGES = (STAGE_VULN_LICENSE, STAGE_SECRETS)

CLONE_DIR = "source"
GITLEAKS_REPORT = "gitleaks.json"
INVENTORY_REPORT = "inventory.cdx.json"

_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


@dataclass
class SuiteResult:
    """Merged outcome of all stages for one job."""

    licenses: list[LicenseFinding] = field(default_factory=list)
    vulnerabilities: list[VulnerabilityFinding] = field(default_factory=list)
    secrets: list[SecretFinding] = field(default_factory=list)
    inventory_path: str | None = None
    warnings: list[str] = field(default_factory=list)
    failed_stages: set[str] = field(default_factory=set)

    @property
    def all_finding_stages_failed(self) -> bool:
        return all(stage in self.failed_stages for stage in FINDING_STAGES)

    def findings(self) -> ScanFindings:
        return ScanFindings(
            licenses=tuple(self.licenses),
            vulnerabilities=tuple(self.vulnerabilities),
            secrets=tuple(self.secrets),
        )


class ScannerSuite:
    """Runs vuln-license, secrets and (optionally) inventory stages concurrently."""

    def __init__(
        self,
        trivy_binary: str = "trivy",
        gitleaks_binary: str = "gitleaks",
        git_binary: str = "git",
        scanner_timeout_sec: int = 1800,
        clone_timeout_sec: int = 600,
        git_timeout_sec: int = 30,
        inventory_enabled: bool = True,
    ) -> None:
        self.trivy_binary = trivy_binary
        self.gitleaks_binary = gitleaks_binary
        self.git_binary = git_binary
        self.scanner_timeout_sec = scanner_timeout_sec
        self.clone_timeout_sec = clone_timeout_sec
        self.git_timeout_sec = git_timeout_sec
        self.inventory_enabled = inventory_enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScannerSuite":
        return cls(
            trivy_binary=settings.TRIVY_BINARY,
            gitleaks_binary=settings.GITLEAKS_BINARY,
            git_binary=settings.GIT_BINARY,
            scanner_timeout_sec=settings.SCANNER_TIMEOUT_SEC,
            clone_timeout_sec=settings.CLONE_TIMEOUT_SEC,
            git_timeout_sec=settings.LS_REMOTE_TIMEOUT_SEC,
            inventory_enabled=settings.INVENTORY_ENABLED,
        )

    @property
    def _trivy_timeout(self) -> str:
        return f"{self.scanner_timeout_sec}s"

    def _trivy_repo_args(self, auth_url: str, commit_sha: str | None) -> list[str]:
        args = [self.trivy_binary, "repo", auth_url]
        if commit_sha:
            args += ["--commit", commit_sha]
        return args

    def vuln_license(
        self,
        auth_url: str,
        workspace: str,
        secrets: Iterable[str | None] = (),
        commit_sha: str | None = None,
    ) -> tuple[list[LicenseFinding], list[VulnerabilityFinding]]:
        output = run_scanner(
            STAGE_VULN_LICENSE,
            [
                *self._trivy_repo_args(auth_url, commit_sha),
                "--scanners", "license,vuln",
                "--format", "json",
                "--timeout", self._trivy_timeout,
                "--quiet",
            ],
            work_dir=workspace,
            timeout_sec=self.scanner_timeout_sec,
            mode="buffered",
            env=_GIT_ENV,
            secrets=(auth_url, *secrets),
        )
        return parse_trivy_report(output.load_json())

    def secret_scan(
        self,
        auth_url: str,
        workspace: str,
        secrets: Iterable[str | None] = (),
        commit_sha: str | None = None,
    ) -> list[SecretFinding]:
        """
        Shallow-clone the repository into the workspace, then run gitleaks over the checkout.

        With commit_sha, the checkout must be at that commit; a branch that moved after
        the HEAD lookup fails the stage instead of scanning different content.
        """
        secrets = (auth_url, *secrets)
        clone_dir = os.path.join(workspace, CLONE_DIR)
        try:
            run_scanner(
                "git-clone",
                [self.git_binary, "clone", "--depth", "1", "--quiet", "--", auth_url, clone_dir],
                work_dir=workspace,
                timeout_sec=self.clone_timeout_sec,
                # clone prints nothing with --quiet; a checked-out HEAD proves success
                mode="streamed",
                output_path=os.path.join(clone_dir, ".git", "HEAD"),
                env=_GIT_ENV,
                secrets=secrets,
            )
        except ScannerError as e:
            raise ScannerError(STAGE_SECRETS, f"clone failed: {e.message}") from e
        if commit_sha:
            self._verify_checkout(clone_dir, commit_sha, secrets)

        report_path = os.path.join(workspace, GITLEAKS_REPORT)
        output = run_scanner(
            STAGE_SECRETS,
            [
                self.gitleaks_binary, "detect",
                "--source", clone_dir,
                "--report-path", report_path,
                "--report-format", "json",
                "--exit-code", "0",
                "--no-banner",
                "--redact",
            ],
            work_dir=workspace,
            timeout_sec=self.scanner_timeout_sec,
            mode="streamed",
            output_path=report_path,
            secrets=secrets,
        )
        return parse_gitleaks_report(output.load_json())

    def _verify_checkout(self, clone_dir: str, commit_sha: str, secrets: tuple) -> None:
        try:
            output = run_scanner(
                "git-rev-parse",
                [self.git_binary, "-C", clone_dir, "rev-parse", "HEAD"],
                work_dir=os.path.dirname(clone_dir),
                timeout_sec=self.git_timeout_sec,
                mode="buffered",
                env=_GIT_ENV,
                secrets=secrets,
            )
        except ScannerError as e:
            raise ScannerError(STAGE_SECRETS, f"cannot read checkout commit: {e.message}") from e
        checked_out = (output.stdout or "").strip().lower()
        if checked_out != commit_sha.lower():
            raise ScannerError(
                STAGE_SECRETS,
                f"checkout is at {checked_out[:12]}, expected {commit_sha[:12]}; branch moved during scan",
            )

    def inventory(
        self,
        auth_url: str,
        workspace: str,
        secrets: Iterable[str | None] = (),
        commit_sha: str | None = None,
    ) -> str:
        """Write a CycloneDX SBOM into the workspace and return its path; the file is never loaded."""
        report_path = os.path.join(workspace, INVENTORY_REPORT)
        output = run_scanner(
            STAGE_INVENTORY,
            [
                *self._trivy_repo_args(auth_url, commit_sha),
                "--format", "cyclonedx",
                "--timeout", self._trivy_timeout,
                "--quiet",
                "--output", report_path,
            ],
            work_dir=workspace,
            timeout_sec=self.scanner_timeout_sec,
            mode="streamed",
            output_path=report_path,
            env=_GIT_ENV,
            secrets=(auth_url, *secrets),
        )
        return output.output_path

    def run_all(
        self,
        auth_url: str,
        workspace: str,
        secrets: Iterable[str | None] = (),
        commit_sha: str | None = None,
    ) -> SuiteResult:
        """
        Run every enabled stage concurrently, pinned to commit_sha when it is known.

        A ScannerError in one stage becomes a warning and marks the stage failed;
        other stages still run to completion. Any other exception propagates after
        all stages have finished.
        """
        secrets = tuple(secrets)
        stages = {
            STAGE_VULN_LICENSE: self.vuln_license,
            STAGE_SECRETS: self.secret_scan,
        }
        if self.inventory_enabled:
            stages[STAGE_INVENTORY] = self.inventory

        result = SuiteResult()
        with ThreadPoolExecutor(max_workers=len(stages), thread_name_prefix="scanner") as executor:
            futures = {
                executor.submit(fn, auth_url, workspace, secrets, commit_sha): name
                for name, fn in stages.items()
            }
            for future in as_completed(futures):
                name = futures[future]
                try:
                    value = future.result()
                except ScannerError as e:
                    logger.warning(
                        "Scanner stage %s failed: %s",
                        name,
                        e.message,
                        extra={"scanner": name},
                    )
                    result.failed_stages.add(name)
                    result.warnings.append(f"{name}: {e.message}")
                    continue
                if name == STAGE_VULN_LICENSE:
                    licenses, vulns = value
                    result.licenses.extend(licenses)
                    result.vulnerabilities.extend(vulns)
                elif name == STAGE_SECRETS:
                    result.secrets.extend(value)
                else:
                    result.inventory_path = value
        result.warnings.sort()
        return result
