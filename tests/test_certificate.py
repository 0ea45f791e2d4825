"""Unit tests for certificate rendering."""

import unittest
from datetime import date

from codepassport.schemas.findings import LicenseFinding, SecretFinding, VulnerabilityFinding
from codepassport.services.certificate import render_certificate


class TestRenderCertificate(unittest.TestCase):
    """render_certificate returns a PDF for every grade, listing the findings behind it."""

    def test_clean_repository(self) -> None:
        pdf = render_certificate("A", [], [], [], scan_id="job-1", repo_url="https://github.com/acme/api")
        self.assertTrue(pdf.startswith(b"%PDF"))

    def test_findings_and_markup_characters(self) -> None:
        pdf = render_certificate(
            "F",
            [LicenseFinding(package_name="<pkg>&co", license_id="GPL-3.0")],
            [VulnerabilityFinding(vulnerability_id="CVE-2024-1", package_name="lib", severity="CRITICAL")],
            [SecretFinding(rule="generic", file_path="a&b.py", line_number=4, masked_snippet="k=<***>")],
            scan_id="job-2",
            repo_url="https://example.com/a?b=1&c=2",
            issued_on=date(2026, 10, 18),
        )
        self.assertTrue(pdf.startswith(b"%PDF"))

    def test_leaked_secret_and_critical_vulnerability_are_listed(self) -> None:
        pdf = render_certificate(
            "F",
            [],
            [VulnerabilityFinding(vulnerability_id="CVE-2024-0001", package_name="openssl", severity="CRITICAL")],
            [SecretFinding(rule="aws-access-token", file_path="src/settings.py", line_number=12, masked_snippet="AK****YZ")],
            scan_id="job-5",
            repo_url="https://github.com/acme/api",
            issued_on=date(2026, 10, 18),
            compress=False,
        )
        self.assertIn(b"(F)", pdf)
        self.assertIn(b"CVE-2024-0001", pdf)
        self.assertIn(b"openssl", pdf)
        self.assertIn(b"src/settings.py:12", pdf)
        self.assertIn(b"aws-access-token", pdf)
        self.assertIn(b"Hardcoded Secrets: 1", pdf)
        self.assertIn(b"Critical Vulnerabilities: 1", pdf)

    def test_clean_repository_lists_no_findings(self) -> None:
        pdf = render_certificate(
            "A", [], [], [], scan_id="job-6", repo_url="https://github.com/acme/api", compress=False
        )
        self.assertIn(b"(A)", pdf)
        self.assertIn(b"Hardcoded Secrets: 0", pdf)
        self.assertIn(b"No secrets, viral licenses or critical vulnerabilities were found.", pdf)

    def test_reproducible(self) -> None:
        args = ("C", [], [VulnerabilityFinding(vulnerability_id="CVE-1", package_name="x", severity="CRITICAL")], [])
        kwargs = {"scan_id": "job-3", "repo_url": "https://github.com/a/b", "issued_on": date(2026, 1, 2)}
        self.assertEqual(render_certificate(*args, **kwargs), render_certificate(*args, **kwargs))

    def test_many_findings(self) -> None:
        secrets = [
            SecretFinding(rule="r", file_path=f"f{i}.py", line_number=i, masked_snippet="****")
            for i in range(200)
        ]
        pdf = render_certificate("F", [], [], secrets, scan_id="job-4", repo_url="https://github.com/a/b")
        self.assertTrue(pdf.startswith(b"%PDF"))


if __name__ == "__main__":
    unittest.main()
