"""
Evidence lookup — resolve a decoded citation to the exact stored chunk.

Resolution order:
  1. ``document_id`` when the reference carries one (strict format)
  2. otherwise the most recently created document with that filename
     (highest id), for references decoded from the legacy format
then the chunk at ``chunk_index`` within that document.
"""

from __future__ import annotations

import logging

from docqa.core.errors import EvidenceNotFound, ValidationError
from docqa.db.repository import DocumentStore
from docqa.models.records import EvidenceChunk
from docqa.rag.citations import EvidenceReference

logger = logging.getLogger(__name__)


class EvidenceService:

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def lookup_evidence(self, ref: EvidenceReference) -> EvidenceChunk:
        if ref.chunk_index < 0:
            raise ValidationError("Chunk index must be zero or greater.", kind="INVALID_REFERENCE")

        document_id = ref.document_id
        if document_id is None:
            if not ref.filename:
                raise ValidationError("Missing docId or file.", kind="INVALID_REFERENCE")

            doc = await self._store.latest_document_by_filename(ref.filename)
            if doc is None:
                raise EvidenceNotFound(f"No document named '{ref.filename}'.")
            document_id = doc.id

        chunk = await self._store.get_chunk(document_id, ref.chunk_index)
        if chunk is None:
            raise EvidenceNotFound(
                f"Chunk {ref.chunk_index} of document {document_id} was not found."
            )

        logger.debug(
            "Evidence resolved | tag=%s doc=%s chunk=%d", ref.tag, document_id, ref.chunk_index,
        )
        return chunk
