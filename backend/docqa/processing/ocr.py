"""
AWS Textract — asynchronous text detection jobs

Only the job API is used (StartDocumentTextDetection /
GetDocumentTextDetection) because the document already lives in S3 and
scanned PDFs are usually longer than the synchronous API allows.

This module never waits: ``start_job`` returns the JobId immediately and
``get_job_text`` reports the job's current state. Polling cadence is owned
by the caller (see docqa.services.ocr_jobs and docqa.client).

IAM permissions required on the API task role:
    textract:StartDocumentTextDetection
    textract:GetDocumentTextDetection
    s3:GetObject   (Textract reads the object directly)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from docqa.core.config import Settings, settings as default_settings
from docqa.core.errors import OcrServiceError

logger = logging.getLogger(__name__)

# Textract JobStatus values
JOB_IN_PROGRESS = "IN_PROGRESS"
JOB_SUCCEEDED   = "SUCCEEDED"


@dataclass(frozen=True)
class OcrJobResult:
    """
    status : Textract JobStatus (IN_PROGRESS | SUCCEEDED | FAILED | PARTIAL_SUCCESS)
    text   : all LINE blocks joined with "\\n" (empty unless SUCCEEDED)
    """
    status: str
    text:   str = ""

    @property
    def in_progress(self) -> bool:
        return self.status == JOB_IN_PROGRESS

    @property
    def succeeded(self) -> bool:
        return self.status == JOB_SUCCEEDED


class OcrClient(ABC):
    """Start/poll contract of an external OCR engine."""

    @abstractmethod
    async def start_job(self, s3_key: str) -> str:
        """Start a text-detection job for an object and return its job id."""

    @abstractmethod
    async def get_job_text(self, job_id: str) -> OcrJobResult:
        """Return the job's status and, once finished, its full text."""


class TextractOcrClient(OcrClient):
    """Textract implementation reading documents from ``settings.s3_bucket``."""

    def __init__(self, cfg: Settings | None = None) -> None:
        self._cfg = cfg or default_settings
        self._session = aioboto3.Session()

    def _client(self):
        return self._session.client("textract", region_name=self._cfg.aws_region)

    async def start_job(self, s3_key: str) -> str:
        try:
            async with self._client() as textract:
                job = await textract.start_document_text_detection(
                    DocumentLocation={
                        "S3Object": {"Bucket": self._cfg.s3_bucket, "Name": s3_key}
                    }
                )
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Textract start failed | key=%s", s3_key)
            raise OcrServiceError("Could not start the OCR job.", detail=str(exc)) from exc

        job_id = job.get("JobId")
        if not job_id:
            raise OcrServiceError("Textract did not return a JobId.")

        logger.info("Textract job started | job=%s s3://%s/%s", job_id, self._cfg.s3_bucket, s3_key)
        return job_id

    async def get_job_text(self, job_id: str) -> OcrJobResult:
        lines: list[str] = []
        status = JOB_IN_PROGRESS
        next_token: str | None = None

        try:
            async with self._client() as textract:
                while True:
                    kwargs: dict = {"JobId": job_id}
                    if next_token:
                        kwargs["NextToken"] = next_token

                    page = await textract.get_document_text_detection(**kwargs)
                    status = page.get("JobStatus", status)

                    for block in page.get("Blocks", []) or []:
                        if block.get("BlockType") == "LINE" and block.get("Text"):
                            lines.append(block["Text"])

                    next_token = page.get("NextToken")
                    if not next_token:
                        break
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Textract poll failed | job=%s", job_id)
            raise OcrServiceError("Could not query the OCR job.", detail=str(exc)) from exc

        logger.debug("Textract poll | job=%s status=%s lines=%d", job_id, status, len(lines))
        return OcrJobResult(status=status, text="\n".join(lines))
