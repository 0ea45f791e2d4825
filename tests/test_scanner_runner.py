"""Unit tests for run_scanner: argument passing, timeouts, exit codes, streamed reports, scrubbing."""

import os
import subprocess
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from codepassport.services.scanner_runner import ScannerError, ScannerOutput, run_scanner

RUN = "codepassport.services.scanner_runner.subprocess.run"


def _completed(returncode: int = 0, stdout: bytes | None = b"{}", stderr: bytes = b"") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestBufferedMode(unittest.TestCase):
    """stdout is captured and returned."""

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    @patch(RUN)
    def test_success_returns_stdout(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=b'{"Results": []}')
        out = run_scanner("vuln-license", ["trivy", "repo", "x"], self.tmp.name, timeout_sec=10)
        self.assertIsInstance(out, ScannerOutput)
        self.assertEqual(out.load_json(), {"Results": []})
        args, kwargs = mock_run.call_args
        self.assertEqual(args[0], ["trivy", "repo", "x"])
        self.assertFalse(kwargs["shell"])
        self.assertEqual(kwargs["timeout"], 10)
        self.assertEqual(kwargs["cwd"], self.tmp.name)
        self.assertEqual(kwargs["stdout"], subprocess.PIPE)

    @patch(RUN)
    def test_env_is_merged(self, mock_run) -> None:
        mock_run.return_value = _completed()
        run_scanner("x", ["x"], self.tmp.name, timeout_sec=1, env={"GIT_TERMINAL_PROMPT": "0"})
        env = mock_run.call_args.kwargs["env"]
        self.assertEqual(env["GIT_TERMINAL_PROMPT"], "0")
        self.assertIn("PATH", env)

    @patch(RUN)
    def test_timeout(self, mock_run) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="trivy", timeout=5)
        with self.assertRaises(ScannerError) as ctx:
            run_scanner("vuln-license", ["trivy"], self.tmp.name, timeout_sec=5)
        self.assertEqual(ctx.exception.scanner, "vuln-license")
        self.assertIn("timed out", ctx.exception.message)

    @patch(RUN)
    def test_missing_executable(self, mock_run) -> None:
        mock_run.side_effect = FileNotFoundError("trivy")
        with self.assertRaises(ScannerError) as ctx:
            run_scanner("vuln-license", ["trivy"], self.tmp.name, timeout_sec=5)
        self.assertIn("not found", ctx.exception.message)

    @patch(RUN)
    def test_unexpected_exit_code_scrubs_token(self, mock_run) -> None:
        mock_run.return_value = _completed(
            returncode=1, stderr=b"fatal: could not read https://tok123@github.com/a/b"
        )
        with self.assertRaises(ScannerError) as ctx:
            run_scanner("vuln-license", ["trivy"], self.tmp.name, timeout_sec=5, secrets=["tok123"])
        self.assertIn("exit code 1", ctx.exception.message)
        self.assertNotIn("tok123", ctx.exception.message)
        self.assertNotIn("tok123", str(ctx.exception))

    @patch(RUN)
    def test_extra_success_codes(self, mock_run) -> None:
        mock_run.return_value = _completed(returncode=1, stdout=b"[]")
        out = run_scanner("x", ["x"], self.tmp.name, timeout_sec=5, success_codes=(0, 1))
        self.assertEqual(out.exit_code, 1)

    @patch(RUN)
    def test_empty_stdout(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=b"")
        with self.assertRaises(ScannerError):
            run_scanner("x", ["x"], self.tmp.name, timeout_sec=5)

    @patch(RUN)
    def test_unparsable_json(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=b"not json")
        out = run_scanner("x", ["x"], self.tmp.name, timeout_sec=5)
        with self.assertRaises(ScannerError) as ctx:
            out.load_json()
        self.assertIn("unparsable", ctx.exception.message)


class TestStreamedMode(unittest.TestCase):
    """Report is read from a file inside the workspace."""

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.report = os.path.join(self.tmp.name, "report.json")

    @patch(RUN)
    def test_reads_report_file(self, mock_run) -> None:
        def write_report(*args, **kwargs):
            with open(self.report, "w", encoding="utf-8") as fh:
                fh.write('[{"RuleID": "generic"}]')
            return _completed(stdout=None)

        mock_run.side_effect = write_report
        out = run_scanner(
            "secrets", ["gitleaks"], self.tmp.name, timeout_sec=5, mode="streamed", output_path=self.report
        )
        self.assertEqual(out.output_path, self.report)
        self.assertIsNone(out.stdout)
        self.assertEqual(out.load_json(), [{"RuleID": "generic"}])
        self.assertEqual(mock_run.call_args.kwargs["stdout"], subprocess.DEVNULL)

    @patch(RUN)
    def test_missing_report(self, mock_run) -> None:
        mock_run.return_value = _completed(stdout=None)
        with self.assertRaises(ScannerError) as ctx:
            run_scanner("secrets", ["gitleaks"], self.tmp.name, timeout_sec=5, mode="streamed", output_path=self.report)
        self.assertIn("missing or empty", ctx.exception.message)

    @patch(RUN)
    def test_empty_report(self, mock_run) -> None:
        open(self.report, "w").close()
        mock_run.return_value = _completed(stdout=None)
        with self.assertRaises(ScannerError):
            run_scanner("secrets", ["gitleaks"], self.tmp.name, timeout_sec=5, mode="streamed", output_path=self.report)

    @patch(RUN)
    def test_output_outside_workspace_rejected(self, mock_run) -> None:
        with self.assertRaises(ScannerError):
            run_scanner(
                "secrets", ["gitleaks"], self.tmp.name, timeout_sec=5, mode="streamed",
                output_path=os.path.join(os.path.dirname(self.tmp.name), "elsewhere.json"),
            )
        mock_run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
