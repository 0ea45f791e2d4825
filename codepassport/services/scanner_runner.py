"""Run external scanner executables as bounded child processes.

Every invocation gets an argument list (never a shell string), a wall-clock timeout
and a working directory inside the job workspace. Failures surface as ScannerError
with any credential values scrubbed from the message.
"""

import json
import logging
import os
import subprocess
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from codepassport.core.redaction import scrub

logger = logging.getLogger(__name__)

OutputMode = Literal["buffered", "streamed"]

# Keep error messages readable; scanner stderr can be megabytes.
STDERR_TAIL_CHARS = 2000


class ScannerError(Exception):
    """Raised when a scanner cannot produce a usable report (timeout, exit code, missing or bad output)."""

    def __init__(self, scanner: str, message: str) -> None:
        self.scanner = scanner
        self.message = message
        super().__init__(f"{scanner}: {message}")


@dataclass(frozen=True)
class ScannerOutput:
    """Result of one successful scanner invocation."""

    name: str
    exit_code: int
    duration_sec: float
    stdout: str | None = None
    output_path: str | None = None

    def load_json(self) -> Any:
        """Parse the report as JSON: stdout in buffered mode, the report file in streamed mode."""
        try:
            if self.output_path is not None:
                with open(self.output_path, encoding="utf-8") as fh:
                    return json.load(fh)
            return json.loads(self.stdout or "")
        except (OSError, ValueError) as e:
            raise ScannerError(self.name, f"unparsable JSON report: {e}") from e


def _stderr_tail(raw: bytes | str | None) -> str:
    if not raw:
        return ""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    return text.strip()[-STDERR_TAIL_CHARS:]


def run_scanner(
    name: str,
    args: Sequence[str],
    work_dir: str,
    timeout_sec: float,
    mode: OutputMode = "buffered",
    output_path: str | None = None,
    success_codes: Iterable[int] = (0,),
    env: Mapping[str, str] | None = None,
    secrets: Iterable[str | None] = (),
) -> ScannerOutput:
    """
    Run one scanner and return its output.

    Buffered mode captures stdout in memory. Streamed mode discards stdout and
    requires the scanner to write a non-empty report to output_path, which must be
    inside work_dir. secrets are scrubbed from every error message raised.
    """
    secrets = tuple(s for s in secrets if s)
    codes = tuple(success_codes)
    if mode == "streamed":
        if not output_path:
            raise ScannerError(name, "streamed mode requires an output path")
        real_work_dir = os.path.realpath(work_dir)
        if os.path.commonpath([real_work_dir, os.path.realpath(output_path)]) != real_work_dir:
            raise ScannerError(name, "output path must be inside the workspace")

    run_env = os.environ.copy()
    if env:
        run_env.update(env)

    logger.info("Running scanner %s", name, extra={"scanner": name, "mode": mode})
    start = time.monotonic()
    try:
        completed = subprocess.run(
            list(args),
            cwd=work_dir,
            env=run_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if mode == "buffered" else subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=timeout_sec,
            shell=False,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise ScannerError(name, f"timed out after {timeout_sec:g}s") from e
    except FileNotFoundError as e:
        raise ScannerError(name, f"executable not found: {args[0] if args else ''}") from e
    except OSError as e:
        raise ScannerError(name, scrub(f"could not start: {e}", secrets) or "could not start") from e

    duration = time.monotonic() - start
    logger.info(
        "Scanner %s exited with %s",
        name,
        completed.returncode,
        extra={"scanner": name, "exit_code": completed.returncode, "latency_sec": round(duration, 3)},
    )

    if completed.returncode not in codes:
        detail = _stderr_tail(completed.stderr)
        message = f"exit code {completed.returncode}"
        if detail:
            message = f"{message}: {detail}"
        raise ScannerError(name, scrub(message, secrets) or message)

    if mode == "streamed":
        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            raise ScannerError(name, "report file missing or empty")
        return ScannerOutput(
            name=name,
            exit_code=completed.returncode,
            duration_sec=duration,
            output_path=output_path,
        )

    stdout = completed.stdout.decode("utf-8", errors="replace") if completed.stdout else ""
    if not stdout.strip():
        raise ScannerError(name, "no output produced")
    return ScannerOutput(
        name=name,
        exit_code=completed.returncode,
        duration_sec=duration,
        stdout=stdout,
    )
