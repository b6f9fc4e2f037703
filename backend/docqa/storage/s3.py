"""
S3 Storage Service — raw uploaded files

Key layout:
    s3://<BUCKET>/<prefix>/<document_id>/<epoch_ms>-<sanitized filename>

The key is constructed server-side from the document id, the upload time and
the filename with every character outside [A-Za-z0-9._-] replaced by "_".
Clients never supply a raw key.

Signed URLs are scoped to one exact object key and expire after
``settings.signed_url_ttl_seconds`` (default 15 min). The Content-Disposition
is either ``inline`` (browser preview) or ``attachment`` (download).
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from docqa.core.config import Settings, settings as default_settings
from docqa.core.errors import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with '_'."""
    return _UNSAFE_KEY_CHARS.sub("_", filename)


def build_object_key(
    document_id: int,
    filename: str,
    *,
    prefix: str = "uploads",
    timestamp_ms: int | None = None,
) -> str:
    """Deterministic key for (document_id, upload timestamp, sanitized filename)."""
    ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    clean_prefix = prefix.rstrip("/")
    return f"{clean_prefix}/{document_id}/{ts}-{sanitize_filename(filename)}"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class S3Object:
    """Represents a stored object — returned by put_object."""
    key:          str
    bucket:       str
    size_bytes:   int
    content_type: str
    etag:         str


@dataclass(frozen=True)
class PresignedUrl:
    url:        str
    expires_in: int   # seconds


# ---------------------------------------------------------------------------
# S3 Service
# ---------------------------------------------------------------------------

class S3StorageService:
    """
    Async S3 operations for raw document bytes.

    One instance per process (created in the app lifespan); aioboto3 opens a
    short-lived client per call so the object is safe for concurrent use.
    """

    def __init__(self, cfg: Settings | None = None) -> None:
        self._cfg = cfg or default_settings
        self._session = aioboto3.Session()

    @property
    def bucket(self) -> str:
        return self._cfg.s3_bucket

    def _client(self):
        """Return a scoped async S3 client context manager."""
        kwargs: dict = {"region_name": self._cfg.aws_region}
        if self._cfg.s3_endpoint_url:
            kwargs["endpoint_url"] = self._cfg.s3_endpoint_url
        return self._session.client("s3", **kwargs)

    def build_key(self, document_id: int, filename: str) -> str:
        return build_object_key(document_id, filename, prefix=self._cfg.s3_prefix)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put_object(self, key: str, body: bytes, content_type: str) -> S3Object:
        """
        Upload raw bytes under ``key``.

        Raises:
            StorageError: on any S3 / botocore failure.
        """
        try:
            async with self._client() as s3:
                resp = await s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                )
        except (ClientError, BotoCoreError) as exc:
            logger.exception("S3 upload failed | key=%s", key)
            raise StorageError("Failed to store the document. Please retry.", detail=str(exc)) from exc

        logger.info("S3 upload ok | key=%s size=%d", key, len(body))

        return S3Object(
            key=key,
            bucket=self.bucket,
            size_bytes=len(body),
            content_type=content_type,
            etag=resp.get("ETag", "").strip('"'),
        )

    async def generate_presigned_get(
        self,
        key: str,
        *,
        inline: bool = False,
        filename: str | None = None,
        content_type: str | None = None,
        expires_in: int | None = None,
    ) -> PresignedUrl:
        """
        Short-lived presigned GET URL for one exact object key.

        ``inline=True`` asks the browser to preview instead of download.
        """
        ttl = expires_in or self._cfg.signed_url_ttl_seconds
        disposition = "inline" if inline else "attachment"
        if filename:
            disposition += f'; filename="{filename}"'

        params: dict = {
            "Bucket": self.bucket,
            "Key": key,
            "ResponseContentDisposition": disposition,
        }
        if content_type:
            params["ResponseContentType"] = content_type

        try:
            async with self._client() as s3:
                url = await s3.generate_presigned_url(
                    "get_object",
                    Params=params,
                    ExpiresIn=ttl,
                )
        except (ClientError, BotoCoreError) as exc:
            logger.exception("S3 presign failed | key=%s", key)
            raise StorageError("Could not sign the file URL.", detail=str(exc)) from exc

        return PresignedUrl(url=url, expires_in=ttl)
