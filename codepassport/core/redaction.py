"""Keep access tokens out of log lines, error messages and persisted records."""

from collections.abc import Iterable
from urllib.parse import urlsplit, urlunsplit

REDACTED = "***"


def redact_url(url: str) -> str:
    """Drop any user-info (user:token@) from a URL; other parts are kept for diagnostics."""
    if not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return REDACTED
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def scrub(text: str | None, secrets: Iterable[str | None]) -> str | None:
    """Replace every occurrence of each non-empty secret in text."""
    if not text:
        return text
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text
