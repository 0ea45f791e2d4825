"""Turn a submitted repository URL into something scanners can fetch.

Tokens are embedded as URL credentials only for known hosted-git providers, and the
authenticated URL is never persisted or logged (use redact_url for log lines).
"""

import logging
import re
import tempfile
from collections.abc import Iterable
from urllib.parse import quote, urlsplit, urlunsplit

from codepassport.core.redaction import redact_url
from codepassport.services.scanner_runner import ScannerError, run_scanner

logger = logging.getLogger(__name__)

DEFAULT_HOSTED_GIT_DOMAINS: tuple[str, ...] = ("github.com", "gitlab.com", "bitbucket.org")

# Provider-specific user names for token auth; GitHub takes the token itself as the user.
TOKEN_USERNAMES: dict[str, str] = {
    "gitlab.com": "oauth2",
    "bitbucket.org": "x-token-auth",
}

_COMMIT_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")

__all__ = ["RepoResolver", "ResolutionError", "canonical_identity", "redact_url"]


class ResolutionError(Exception):
    """Raised when a repository URL cannot be resolved or its HEAD commit cannot be read."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def _split_http_url(repo_url: str):
    if not repo_url or not repo_url.strip():
        raise ResolutionError("Repository URL is empty")
    try:
        parts = urlsplit(repo_url.strip())
    except ValueError as e:
        raise ResolutionError(f"Invalid repository URL: {e}") from e
    if parts.scheme.lower() not in ("http", "https"):
        raise ResolutionError("Repository URL must use http or https")
    if not parts.hostname:
        raise ResolutionError("Repository URL has no host")
    return parts


def canonical_identity(repo_url: str) -> str:
    """
    Cache key for a repository: lower-cased scheme and host, no credentials,
    no query or fragment, no trailing slash or .git suffix.
    """
    parts = _split_http_url(repo_url)
    host = parts.hostname.lower()
    if parts.port:
        host = f"{host}:{parts.port}"
    path = parts.path.rstrip("/")
    if path.lower().endswith(".git"):
        path = path[: -len(".git")]
    return urlunsplit((parts.scheme.lower(), host, path.rstrip("/"), "", ""))


class RepoResolver:
    """Builds authenticated fetch URLs and reads the remote HEAD commit."""

    def __init__(
        self,
        hosted_domains: Iterable[str] = DEFAULT_HOSTED_GIT_DOMAINS,
        git_binary: str = "git",
        ls_remote_timeout_sec: float = 30,
    ) -> None:
        self.hosted_domains = tuple(d.lower() for d in hosted_domains)
        self.git_binary = git_binary
        self.ls_remote_timeout_sec = ls_remote_timeout_sec

    def _hosted_domain(self, hostname: str) -> str | None:
        host = hostname.lower()
        for domain in self.hosted_domains:
            if host == domain or host.endswith("." + domain):
                return domain
        return None

    def resolve(self, repo_url: str, token: str | None = None) -> str:
        """Return the URL scanners should fetch; the token is embedded only for hosted-git domains."""
        parts = _split_http_url(repo_url)
        if not token:
            return repo_url.strip()
        domain = self._hosted_domain(parts.hostname)
        if domain is None:
            logger.info(
                "Token supplied for non-hosted domain; using URL unchanged",
                extra={"repo": redact_url(repo_url)},
            )
            return repo_url.strip()

        quoted = quote(token, safe="")
        username = TOKEN_USERNAMES.get(domain)
        userinfo = f"{username}:{quoted}" if username else quoted
        host = parts.hostname
        if parts.port:
            host = f"{host}:{parts.port}"
        return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))

    def head_commit(
        self,
        auth_url: str,
        work_dir: str | None = None,
        secrets: Iterable[str | None] = (),
    ) -> str:
        """Read the remote HEAD commit with `git ls-remote`; raise ResolutionError on any failure."""
        try:
            output = run_scanner(
                "ls-remote",
                [self.git_binary, "ls-remote", "--", auth_url, "HEAD"],
                work_dir=work_dir or tempfile.gettempdir(),
                timeout_sec=self.ls_remote_timeout_sec,
                env={"GIT_TERMINAL_PROMPT": "0"},
                secrets=(auth_url, *secrets),
            )
        except ScannerError as e:
            raise ResolutionError(f"Could not read HEAD commit: {e.message}") from e

        for line in (output.stdout or "").splitlines():
            fields = line.split()
            if len(fields) >= 2 and fields[1] == "HEAD":
                sha = fields[0].strip().lower()
                if _COMMIT_RE.match(sha):
                    return sha
        raise ResolutionError("Remote did not report a HEAD commit")
