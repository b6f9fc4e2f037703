"""
Document Ingestion Service

Orchestrates the upload pipeline:
  1. Create the document row (filename only) unless an id was supplied
  2. Store the raw bytes in S3 under <prefix>/<document_id>/<epoch_ms>-<safe name>
     and record key, content type and size on the document
  3. Choose the indexing path:
       - text supplied by the caller (plain text, client-extracted PDF text)
         or decodable from a text file            → index now
       - PDF with a usable text layer (PyMuPDF)   → index now
       - PDF without text (scanned)               → ocr_status=PENDING, stop
  4. reindex(): clean → delete old chunks → chunk → batch-embed → insert

Failure policy:
  - A failure while creating or storing aborts the request; a document may
    be left with a stored file but no chunks. That is a valid intermediate
    state and reindex() can be retried for it at any time.
  - reindex() replaces the whole chunk set in one transaction, so repeating
    it with the same text is idempotent.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import Awaitable, Callable

from docqa.core.config import Settings, settings as default_settings
from docqa.core.errors import DocumentNotFound, EmptyContent, MissingFile, NoTextExtracted
from docqa.db.repository import DocumentStore
from docqa.models.documents import OcrStatus
from docqa.models.records import DocumentRecord
from docqa.processing.chunking import split_into_chunks
from docqa.processing.embeddings import Embedder
from docqa.processing.extractor import extract_pdf_text, is_pdf
from docqa.storage.s3 import S3StorageService

logger = logging.getLogger(__name__)

PdfTextExtractor = Callable[[bytes], Awaitable[str]]


def clean_text(text: str | None) -> str:
    """Strip NUL bytes and surrounding whitespace."""
    return (text or "").replace("\x00", "").strip()


def _detect_mime_type(filename: str, mime_hint: str | None, head: bytes) -> str:
    if is_pdf(filename, mime_hint, head):
        return "application/pdf"
    if mime_hint:
        return mime_hint
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "text/plain"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReindexResult:
    document_id:   int
    chunks:        int
    total_windows: int

    @property
    def truncated(self) -> bool:
        return self.total_windows > self.chunks


@dataclass(frozen=True)
class IngestResult:
    document_id:   int
    chunks:        int
    needs_ocr:     bool
    total_windows: int = 0

    @property
    def truncated(self) -> bool:
        return self.total_windows > self.chunks


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    Stateless; one instance per request.
    All dependencies are injected (testable, no hidden globals).
    """

    def __init__(
        self,
        store:    DocumentStore,
        storage:  S3StorageService,
        embedder: Embedder,
        cfg:      Settings | None = None,
        pdf_text_extractor: PdfTextExtractor = extract_pdf_text,
    ) -> None:
        self._store    = store
        self._storage  = storage
        self._embedder = embedder
        self._cfg      = cfg or default_settings
        self._extract_pdf_text = pdf_text_extractor

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def ingest(
        self,
        raw_bytes: bytes,
        filename:  str | None,
        *,
        document_id:    int | None = None,
        mime_hint:      str | None = None,
        extracted_text: str | None = None,
    ) -> IngestResult:
        """
        Store and (when text is available) index one uploaded file.

        Returns ``needs_ocr=True`` with zero chunks for PDFs that carry no
        text; the caller then drives the OCR job manager.
        """
        if not raw_bytes or not filename:
            raise MissingFile()

        mime_type = _detect_mime_type(filename, mime_hint, raw_bytes[:8])
        pdf = mime_type == "application/pdf"

        text = clean_text(extracted_text)
        if not text and not pdf:
            text = clean_text(raw_bytes.decode("utf-8", errors="replace"))
            if not text:
                raise NoTextExtracted(filename)

        # ---- Step 1: document row ------------------------------------
        doc = await self._resolve_document(document_id, filename)

        logger.info(
            "Ingest start | doc=%s file=%s size=%d mime=%s text_supplied=%s",
            doc.id, filename, len(raw_bytes), mime_type, bool(text),
        )

        # ---- Step 2: raw bytes → S3 ----------------------------------
        await self._store.release()
        key = self._storage.build_key(doc.id, filename)
        stored = await self._storage.put_object(key, raw_bytes, mime_type)
        await self._store.record_storage(
            doc.id, s3_key=stored.key, mime_type=mime_type, size_bytes=len(raw_bytes),
        )

        # ---- Step 3: pick the indexing path --------------------------
        if not text:
            text = clean_text(await self._extract_pdf_text(raw_bytes))

        if not text:
            await self._store.update_ocr(doc.id, OcrStatus.PENDING, job_id=None)
            logger.info("Ingest needs OCR | doc=%s file=%s", doc.id, filename)
            return IngestResult(document_id=doc.id, chunks=0, needs_ocr=True)

        # ---- Step 4: index -------------------------------------------
        result = await self.reindex(doc.id, text)
        if doc.ocr_status is not None:
            # text arrived by upload; an earlier PENDING/FAILED no longer applies
            await self._store.update_ocr(doc.id, None, job_id=None)
        return IngestResult(
            document_id=doc.id,
            chunks=result.chunks,
            needs_ocr=False,
            total_windows=result.total_windows,
        )

    async def reindex(self, document_id: int, text: str) -> ReindexResult:
        """
        Replace the document's chunk set with chunks of ``text``.

        Raises:
            DocumentNotFound: unknown document id.
            EmptyContent:     nothing left after stripping NULs / whitespace.
        """
        doc = await self._store.get_document(document_id)
        if doc is None:
            raise DocumentNotFound(document_id)

        clean = clean_text(text)
        if not clean:
            raise EmptyContent(document_id)

        chunking = split_into_chunks(
            clean,
            chunk_words=self._cfg.chunk_words,
            overlap_words=self._cfg.chunk_overlap_words,
            max_chunks=self._cfg.max_chunks,
        )
        if chunking.truncated:
            logger.warning(
                "Document truncated to chunk cap | doc=%s windows=%d kept=%d",
                document_id, chunking.total_windows, len(chunking.chunks),
            )

        await self._store.release()
        vectors = await self._embedder.embed_texts(chunking.chunks)
        count = await self._store.replace_chunks(
            document_id, list(zip(chunking.chunks, vectors)),
        )

        logger.info("Reindex done | doc=%s chunks=%d", document_id, count)
        return ReindexResult(
            document_id=document_id,
            chunks=count,
            total_windows=chunking.total_windows,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _resolve_document(self, document_id: int | None, filename: str) -> DocumentRecord:
        if document_id is None:
            return await self._store.create_document(filename)

        doc = await self._store.get_document(document_id)
        if doc is None:
            raise DocumentNotFound(document_id)
        return doc
