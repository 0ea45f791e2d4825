"""Unit tests for A/C/F risk grading: rule precedence, viral license families, order independence."""

import itertools
import unittest

from codepassport.schemas.findings import (
    LicenseFinding,
    ScanFindings,
    SecretFinding,
    VulnerabilityFinding,
    worst_grade,
)
from codepassport.services.risk_grade import assess, classify, is_viral_license, license_family


def _lic(license_id: str, package: str = "pkg") -> LicenseFinding:
    return LicenseFinding(package_name=package, license_id=license_id)


def _vuln(severity: str, vuln_id: str = "CVE-2024-0001", package: str = "lib") -> VulnerabilityFinding:
    return VulnerabilityFinding(vulnerability_id=vuln_id, package_name=package, severity=severity)


def _secret(path: str = "config.py", line: int = 3) -> SecretFinding:
    return SecretFinding(rule="aws-access-token", file_path=path, line_number=line, masked_snippet="AK****YZ")


class TestGradeRules(unittest.TestCase):
    """Grade precedence: F over C over A."""

    def test_no_findings_is_a(self) -> None:
        self.assertEqual(classify(ScanFindings()), "A")

    def test_permissive_licenses_and_high_vulns_are_a(self) -> None:
        findings = ScanFindings(
            licenses=(_lic("MIT"), _lic("Apache-2.0"), _lic("LGPL-2.1-only")),
            vulnerabilities=(_vuln("HIGH"), _vuln("MEDIUM", "CVE-2024-0002")),
        )
        self.assertEqual(classify(findings), "A")

    def test_critical_vulnerability_is_c(self) -> None:
        findings = ScanFindings(licenses=(_lic("MIT"),), vulnerabilities=(_vuln("CRITICAL"),))
        self.assertEqual(classify(findings), "C")

    def test_critical_severity_is_case_insensitive(self) -> None:
        self.assertEqual(classify(ScanFindings(vulnerabilities=(_vuln("critical"),))), "C")

    def test_secret_is_f_even_without_other_findings(self) -> None:
        self.assertEqual(classify(ScanFindings(secrets=(_secret(),))), "F")

    def test_viral_license_is_f(self) -> None:
        self.assertEqual(classify(ScanFindings(licenses=(_lic("AGPL-3.0-only"),))), "F")

    def test_f_outranks_critical(self) -> None:
        findings = ScanFindings(
            licenses=(_lic("GPL-2.0+"),),
            vulnerabilities=(_vuln("CRITICAL"),),
        )
        self.assertEqual(classify(findings), "F")

    def test_custom_viral_list(self) -> None:
        findings = ScanFindings(licenses=(_lic("MPL-2.0"),))
        self.assertEqual(classify(findings, viral_licenses=["MPL"]), "F")
        self.assertEqual(classify(findings), "A")


class TestViralLicenseMatching(unittest.TestCase):
    """License family is the leading token of the identifier, version marker removed."""

    def test_family_token(self) -> None:
        self.assertEqual(license_family("GPL-2.0+"), "GPL")
        self.assertEqual(license_family("AGPL-3.0-only"), "AGPL")
        self.assertEqual(license_family("LGPL-2.1"), "LGPL")
        self.assertEqual(license_family("sspl-1.0"), "SSPL")

    def test_viral_families_match(self) -> None:
        for license_id in ("AGPL-3.0-only", "GPL-2.0+", "GPL-3.0-or-later", "SSPL-1.0", "gpl-3.0"):
            with self.subTest(license_id=license_id):
                self.assertTrue(is_viral_license(license_id, ["AGPL", "GPL", "SSPL"]))

    def test_lgpl_is_not_gpl(self) -> None:
        self.assertFalse(is_viral_license("LGPL-2.1-only", ["AGPL", "GPL", "SSPL"]))

    def test_version_marker_is_not_part_of_family(self) -> None:
        self.assertEqual(license_family("GPLv3"), "GPL")
        self.assertEqual(license_family("AGPLv3"), "AGPL")
        self.assertEqual(license_family("GPLv2+"), "GPL")
        self.assertEqual(license_family("SSPLv1"), "SSPL")
        self.assertEqual(license_family("LGPLv2.1"), "LGPL")
        self.assertEqual(license_family("MIT"), "MIT")
        self.assertEqual(license_family("Apache-2.0"), "APACHE")

    def test_short_identifiers_grade_f(self) -> None:
        for license_id in ("GPLv3", "AGPLv3", "GPLv2+", "SSPLv1", "GNU GPL v3"):
            with self.subTest(license_id=license_id):
                findings = ScanFindings(licenses=(_lic(license_id),))
                self.assertEqual(classify(findings), "F")

    def test_short_lgpl_identifier_is_not_gpl(self) -> None:
        self.assertFalse(is_viral_license("LGPLv3", ["AGPL", "GPL", "SSPL"]))

    def test_expression_with_viral_alternative(self) -> None:
        self.assertTrue(is_viral_license("(MIT OR GPL-2.0-only)", ["GPL"]))
        self.assertFalse(is_viral_license("MIT AND Apache-2.0", ["GPL"]))

    def test_empty_identifier(self) -> None:
        self.assertFalse(is_viral_license("", ["GPL"]))


class TestAssessmentEvidence(unittest.TestCase):
    """assess() keeps the findings that drove the grade, in a stable order."""

    def test_evidence_lists(self) -> None:
        findings = ScanFindings(
            licenses=(_lic("MIT", "a"), _lic("GPL-3.0", "b")),
            vulnerabilities=(_vuln("CRITICAL", "CVE-1"), _vuln("LOW", "CVE-2")),
            secrets=(_secret(),),
        )
        result = assess(findings)
        self.assertEqual(result.grade, "F")
        self.assertEqual([f.package_name for f in result.viral_licenses], ["b"])
        self.assertEqual([v.vulnerability_id for v in result.critical_vulnerabilities], ["CVE-1"])
        self.assertEqual(len(result.secrets), 1)
        summary = result.summary(findings)
        self.assertEqual(summary["licenses"], 2)
        self.assertEqual(summary["vulnerabilities"], 2)
        self.assertEqual(summary["viral_licenses"], 1)
        self.assertEqual(summary["critical_vulnerabilities"], 1)
        self.assertEqual(summary["secrets"], 1)

    def test_order_independence(self) -> None:
        licenses = [_lic("MIT", "a"), _lic("GPL-3.0", "b"), _lic("SSPL-1.0", "c")]
        vulns = [_vuln("CRITICAL", "CVE-1"), _vuln("critical", "CVE-2"), _vuln("HIGH", "CVE-3")]
        secrets = [_secret("a.py", 1), _secret("b.py", 2)]
        baseline = assess(ScanFindings(licenses=tuple(licenses), vulnerabilities=tuple(vulns), secrets=tuple(secrets)))
        for lic_order, vuln_order, secret_order in itertools.product(
            itertools.permutations(licenses),
            itertools.permutations(vulns),
            itertools.permutations(secrets),
        ):
            result = assess(
                ScanFindings(licenses=lic_order, vulnerabilities=vuln_order, secrets=secret_order)
            )
            self.assertEqual(result, baseline)


class TestWorstGrade(unittest.TestCase):
    """worst_grade follows A < C < F."""

    def test_ordering(self) -> None:
        self.assertEqual(worst_grade(), "A")
        self.assertEqual(worst_grade("A", "C"), "C")
        self.assertEqual(worst_grade("C", "F", "A"), "F")


if __name__ == "__main__":
    unittest.main()
