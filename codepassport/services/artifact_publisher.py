"""Publish audit artifacts to Supabase Storage and return their public URLs.

Object keys are derived from the job id only, and uploads use upsert, so a retried
job overwrites its own earlier artifacts instead of creating new ones.
"""

import logging
from collections.abc import Callable
from typing import IO, TYPE_CHECKING, Literal

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from codepassport.core.config import STORAGE_RETRY_MAX_WAIT_SEC

if TYPE_CHECKING:
    from codepassport.core.config import Settings

logger = logging.getLogger(__name__)

ArtifactKind = Literal["certificate", "inventory"]

# kind -> (key suffix, content type)
ARTIFACT_TYPES: dict[str, tuple[str, str]] = {
    "certificate": (".pdf", "application/pdf"),
    "inventory": (".cdx.json", "application/vnd.cyclonedx+json"),
}


class PublishError(Exception):
    """Raised when an artifact cannot be stored; this fails the job."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class _TransientUploadError(Exception):
    """Transport error or 5xx; retried before surfacing as PublishError."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ArtifactPublisher:
    """Uploads bytes or files to one storage bucket over the Supabase Storage REST API."""

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        bucket: str = "audits",
        timeout_sec: float = 60.0,
        max_attempts: int = 3,
        client: httpx.Client | None = None,
        wait_multiplier: float = 1.0,
    ) -> None:
        self.base_url = supabase_url.rstrip("/")
        self.bucket = bucket
        self.max_attempts = max_attempts
        self.wait_multiplier = wait_multiplier
        self._client = client or httpx.Client(timeout=timeout_sec)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "apikey": api_key,
            "x-upsert": "true",
        }

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ArtifactPublisher":
        return cls(
            supabase_url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_KEY.get_secret_value(),
            bucket=settings.STORAGE_BUCKET,
            timeout_sec=settings.STORAGE_REQUEST_TIMEOUT_SEC,
            max_attempts=settings.STORAGE_UPLOAD_ATTEMPTS,
        )

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def object_key(kind: ArtifactKind, job_id: str) -> tuple[str, str]:
        if kind not in ARTIFACT_TYPES:
            raise PublishError(f"Unknown artifact kind: {kind}")
        suffix, content_type = ARTIFACT_TYPES[kind]
        return f"{job_id}{suffix}", content_type

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{key}"

    def publish(self, kind: ArtifactKind, data: bytes, job_id: str) -> str:
        """Upload in-memory bytes (the certificate) and return the public URL."""
        key, content_type = self.object_key(kind, job_id)
        return self._upload(key, content_type, lambda: data)

    def publish_file(self, kind: ArtifactKind, path: str, job_id: str) -> str:
        """Stream a file from disk (the inventory) and return the public URL; the file is never read whole."""
        key, content_type = self.object_key(kind, job_id)
        handles: list[IO[bytes]] = []

        def open_body() -> IO[bytes]:
            try:
                fh = open(path, "rb")
            except OSError as e:
                raise PublishError(f"Cannot read artifact file: {e}") from e
            handles.append(fh)
            return fh

        try:
            return self._upload(key, content_type, open_body)
        finally:
            for fh in handles:
                fh.close()

    def _upload(self, key: str, content_type: str, body: Callable[[], bytes | IO[bytes]]) -> str:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{key}"
        headers = {**self._headers, "Content-Type": content_type}

        def attempt() -> None:
            try:
                resp = self._client.post(url, content=body(), headers=headers)
            except httpx.TransportError as e:
                raise _TransientUploadError(f"Storage request failed: {type(e).__name__}") from e
            if resp.status_code >= 500:
                raise _TransientUploadError(
                    f"Storage returned {resp.status_code}", resp.status_code
                )
            if resp.status_code >= 400:
                detail = resp.text[:500] if resp.text else "Unknown error"
                raise PublishError(
                    f"Storage rejected upload of {key} ({resp.status_code}): {detail}",
                    resp.status_code,
                )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.wait_multiplier, min=0, max=STORAGE_RETRY_MAX_WAIT_SEC),
            retry=retry_if_exception_type(_TransientUploadError),
            reraise=True,
        )
        try:
            for attempt_state in retrying:
                with attempt_state:
                    attempt()
        except _TransientUploadError as e:
            raise PublishError(
                f"Storage upload of {key} failed after {self.max_attempts} attempts: {e.message}",
                e.status_code,
            ) from e

        logger.info("Artifact published", extra={"bucket": self.bucket, "key": key})
        return self.public_url(key)
