"""
OCR job manager — scanned PDFs

Per-document state machine, persisted on the document row:

    PENDING ──start()──▶ RUNNING ──poll()──▶ SUCCEEDED
                            │                  (chunks re-indexed from OCR text)
                            └──────poll()────▶ FAILED
                                               (ocr_error explains why)

The manager never schedules itself. A client drives it with repeated
``poll()`` calls (see ``docqa.client.DocQAClient.wait_for_ocr``). Restarting
a job overwrites the stored job id; there is no automatic retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from docqa.core.errors import DocumentNotFound, MissingStorageKey, NoJobStarted, OcrJobFailed
from docqa.db.repository import DocumentStore
from docqa.models.documents import OcrStatus
from docqa.models.records import DocumentRecord
from docqa.processing.ocr import OcrClient
from docqa.services.ingestion import IngestionService, clean_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OcrPollResult:
    status:        OcrStatus
    chunks:        int | None = None
    total_windows: int = 0

    @property
    def truncated(self) -> bool:
        return self.chunks is not None and self.total_windows > self.chunks


class OcrJobManager:

    def __init__(
        self,
        store:      DocumentStore,
        ocr_client: OcrClient,
        ingestion:  IngestionService,
    ) -> None:
        self._store     = store
        self._ocr       = ocr_client
        self._ingestion = ingestion

    async def start(self, document_id: int) -> str:
        """Start text detection on the stored file; returns the job id."""
        doc = await self._require_document(document_id)
        if not doc.s3_key:
            raise MissingStorageKey(document_id)

        await self._store.release()
        job_id = await self._ocr.start_job(doc.s3_key)
        await self._store.update_ocr(document_id, OcrStatus.RUNNING, error=None, job_id=job_id)

        logger.info("OCR started | doc=%s job=%s", document_id, job_id)
        return job_id

    async def poll(self, document_id: int) -> OcrPollResult:
        """
        Check the job once.

        Terminal failures are persisted as FAILED *before* OcrJobFailed is
        raised, so the state survives even if the caller drops the error.
        """
        doc = await self._require_document(document_id)
        if not doc.textract_job_id:
            raise NoJobStarted(document_id)

        await self._store.release()
        job = await self._ocr.get_job_text(doc.textract_job_id)

        if job.in_progress:
            return OcrPollResult(status=OcrStatus.RUNNING)

        if not job.succeeded:
            await self._fail(document_id, f"Textract status={job.status}")

        text = clean_text(job.text)
        if not text:
            await self._fail(document_id, "No text returned")

        result = await self._ingestion.reindex(document_id, text)
        await self._store.update_ocr(document_id, OcrStatus.SUCCEEDED, error=None)

        logger.info("OCR succeeded | doc=%s chunks=%d", document_id, result.chunks)
        return OcrPollResult(
            status=OcrStatus.SUCCEEDED,
            chunks=result.chunks,
            total_windows=result.total_windows,
        )

    # ------------------------------------------------------------------

    async def _require_document(self, document_id: int) -> DocumentRecord:
        doc = await self._store.get_document(document_id)
        if doc is None:
            raise DocumentNotFound(document_id)
        return doc

    async def _fail(self, document_id: int, reason: str) -> None:
        await self._store.update_ocr(document_id, OcrStatus.FAILED, error=reason)
        logger.warning("OCR failed | doc=%s reason=%s", document_id, reason)
        raise OcrJobFailed(document_id, reason)
