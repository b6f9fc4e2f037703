"""
In-memory stand-ins for every external collaborator.

They implement the same abstract interfaces as the production classes
(DocumentStore, Embedder, OcrClient, AnswerGenerator) so services and routes
run unchanged against them:

  InMemoryDocumentStore  — documents + chunks in dicts; real L2 ordering;
                           counts release() calls
  FakeEmbedder           — deterministic hashed bag-of-words vectors
  FakeStorage            — S3 put / presign recorded in memory
  FakeOcrClient          — scripted Textract job results
  FakeGenerator          — answers with [S1] and copies the Sources block
"""

from __future__ import annotations

import hashlib
import math
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Sequence

from docqa.db.repository import UNCHANGED, DocumentStore
from docqa.llm.generator import AnswerGenerator, ConversationTurn
from docqa.models.records import DocumentRecord, EvidenceChunk, RetrievedChunk
from docqa.processing.embeddings import Embedder
from docqa.processing.ocr import JOB_IN_PROGRESS, OcrClient, OcrJobResult
from docqa.storage.s3 import PresignedUrl, S3Object, build_object_key

FAKE_DIMENSIONS = 64
FIXED_TIMESTAMP_MS = 1_700_000_000_000

_TOKEN_RE = re.compile(r"[a-z0-9]+")


# ─────────────────────────────────────────────────────────────────────────────
# Document store
# ─────────────────────────────────────────────────────────────────────────────

class InMemoryDocumentStore(DocumentStore):

    def __init__(self) -> None:
        self.documents: dict[int, DocumentRecord] = {}
        self.chunks: dict[int, list[tuple[str, list[float]]]] = {}
        self.replace_calls: list[int] = []
        self.release_calls = 0
        self._next_id = 1

    async def create_document(self, filename: str) -> DocumentRecord:
        doc = DocumentRecord(
            id=self._next_id, filename=filename, created_at=datetime.now(timezone.utc),
        )
        self.documents[doc.id] = doc
        self._next_id += 1
        return doc

    async def get_document(self, document_id: int) -> DocumentRecord | None:
        return self.documents.get(document_id)

    async def record_storage(self, document_id, *, s3_key, mime_type, size_bytes) -> None:
        self.documents[document_id] = replace(
            self.documents[document_id], s3_key=s3_key, mime_type=mime_type, size_bytes=size_bytes,
        )

    async def update_ocr(self, document_id, status, *, error=None, job_id=UNCHANGED) -> None:
        changes: dict = {"ocr_status": status, "ocr_error": error}
        if job_id is not UNCHANGED:
            changes["textract_job_id"] = job_id
        self.documents[document_id] = replace(self.documents[document_id], **changes)

    async def list_documents(self, limit: int) -> list[DocumentRecord]:
        return sorted(self.documents.values(), key=lambda d: d.id, reverse=True)[:limit]

    async def latest_document_by_filename(self, filename: str) -> DocumentRecord | None:
        matches = [d for d in self.documents.values() if d.filename == filename]
        return max(matches, key=lambda d: d.id) if matches else None

    async def replace_chunks(self, document_id, chunks) -> int:
        self.replace_calls.append(document_id)
        self.chunks[document_id] = [(content, list(vec)) for content, vec in chunks]
        return len(chunks)

    async def count_chunks(self) -> int:
        return sum(len(c) for c in self.chunks.values())

    async def nearest_chunks(self, vector: list[float], k: int) -> list[RetrievedChunk]:
        scored = []
        for doc_id, rows in self.chunks.items():
            for index, (content, emb) in enumerate(rows):
                distance = math.dist(vector, emb)
                scored.append((distance, doc_id, index, content))
        scored.sort(key=lambda s: (s[0], s[1], s[2]))
        return [
            RetrievedChunk(
                document_id=doc_id,
                filename=self.documents[doc_id].filename,
                chunk_index=index,
                content=content,
            )
            for _, doc_id, index, content in scored[:k]
        ]

    async def get_chunk(self, document_id: int, chunk_index: int) -> EvidenceChunk | None:
        rows = self.chunks.get(document_id) or []
        if not 0 <= chunk_index < len(rows):
            return None
        return EvidenceChunk(
            document_id=document_id,
            filename=self.documents[document_id].filename,
            chunk_index=chunk_index,
            content=rows[chunk_index][0],
        )

    async def release(self) -> None:
        self.release_calls += 1


# ─────────────────────────────────────────────────────────────────────────────
# Embeddings
# ─────────────────────────────────────────────────────────────────────────────

def hashed_bag_of_words(text: str, dims: int = FAKE_DIMENSIONS) -> list[float]:
    vec = [0.0] * dims
    for token in _TOKEN_RE.findall(text.lower()):
        bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % dims
        vec[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vec)) or 1.0
    return [v / norm for v in vec]


class FakeEmbedder(Embedder):

    def __init__(self) -> None:
        self.text_batches: list[list[str]] = []
        self.queries: list[str] = []

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        self.text_batches.append(list(texts))
        return [hashed_bag_of_words(t) for t in texts]

    async def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return hashed_bag_of_words(text)


# ─────────────────────────────────────────────────────────────────────────────
# Object storage
# ─────────────────────────────────────────────────────────────────────────────

class FakeStorage:
    """Duck-typed S3StorageService."""

    bucket = "test-bucket"

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.presign_calls: list[dict] = []

    def build_key(self, document_id: int, filename: str) -> str:
        return build_object_key(document_id, filename, timestamp_ms=FIXED_TIMESTAMP_MS)

    async def put_object(self, key: str, body: bytes, content_type: str) -> S3Object:
        self.objects[key] = (body, content_type)
        return S3Object(
            key=key, bucket=self.bucket, size_bytes=len(body), content_type=content_type, etag="etag",
        )

    async def generate_presigned_get(self, key, *, inline=False, filename=None, content_type=None, expires_in=None):
        self.presign_calls.append(
            {"key": key, "inline": inline, "filename": filename, "content_type": content_type}
        )
        disposition = "inline" if inline else "attachment"
        return PresignedUrl(
            url=f"https://{self.bucket}.s3.test/{key}?disposition={disposition}",
            expires_in=expires_in or 900,
        )


# ─────────────────────────────────────────────────────────────────────────────
# OCR
# ─────────────────────────────────────────────────────────────────────────────

class FakeOcrClient(OcrClient):
    """Jobs stay IN_PROGRESS until a result is scripted with ``finish()``."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self.results: dict[str, OcrJobResult] = {}

    async def start_job(self, s3_key: str) -> str:
        self.started.append(s3_key)
        return f"job-{len(self.started)}"

    async def get_job_text(self, job_id: str) -> OcrJobResult:
        return self.results.get(job_id, OcrJobResult(status=JOB_IN_PROGRESS))

    def finish(self, job_id: str, status: str = "SUCCEEDED", text: str = "") -> None:
        self.results[job_id] = OcrJobResult(status=status, text=text)


# ─────────────────────────────────────────────────────────────────────────────
# Generation
# ─────────────────────────────────────────────────────────────────────────────

def sources_block_from_prompt(system_prompt: str) -> str:
    start = system_prompt.index("\nSources:\n") + 1
    end = system_prompt.index("\n\nSOURCES:")
    return system_prompt[start:end]


class FakeGenerator(AnswerGenerator):
    """Well-behaved model: cites S1 and copies the Sources list verbatim."""

    def __init__(self, answer: str = "According to the documents, see [S1].") -> None:
        self.answer = answer
        self.prompts: list[str] = []
        self.turns: list[list[ConversationTurn]] = []

    async def stream(self, system_prompt: str, turns: Sequence[ConversationTurn]) -> AsyncIterator[str]:
        self.prompts.append(system_prompt)
        self.turns.append(list(turns))
        full = f"{self.answer}\n\n{sources_block_from_prompt(system_prompt)}"
        # uneven fragment boundaries, like a real token stream
        for i in range(0, len(full), 7):
            yield full[i : i + 7]
