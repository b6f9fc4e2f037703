"""
Composed FastAPI Dependencies

Process-wide clients (S3, Textract, embeddings, chat model) are created once
in the application lifespan and kept on ``app.state``; the document store is
bound to the request's database session. Services are assembled per request
from those pieces.

Route handlers import from here, never from db/session or the client
modules directly. Tests replace any of the ``get_*`` providers through
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.core.config import Settings, get_settings
from docqa.db.repository import DocumentStore, SqlDocumentStore
from docqa.db.session import get_db
from docqa.llm.generator import AnswerGenerator
from docqa.processing.embeddings import Embedder
from docqa.processing.ocr import OcrClient
from docqa.rag.retriever import Retriever
from docqa.services.evidence import EvidenceService
from docqa.services.ingestion import IngestionService
from docqa.services.ocr_jobs import OcrJobManager
from docqa.storage.s3 import S3StorageService


# ---------------------------------------------------------------------------
# 1. Leaf providers
# ---------------------------------------------------------------------------

def get_store(session: Annotated[AsyncSession, Depends(get_db)]) -> DocumentStore:
    return SqlDocumentStore(session)


def get_storage(request: Request) -> S3StorageService:
    return request.app.state.storage


def get_ocr_client(request: Request) -> OcrClient:
    return request.app.state.ocr_client


def get_embedder(request: Request) -> Embedder:
    return request.app.state.embedder


def get_generator(request: Request) -> AnswerGenerator:
    return request.app.state.generator


# ---------------------------------------------------------------------------
# 2. Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

Store     = Annotated[DocumentStore,    Depends(get_store)]
Storage   = Annotated[S3StorageService, Depends(get_storage)]
Ocr       = Annotated[OcrClient,        Depends(get_ocr_client)]
Embedding = Annotated[Embedder,         Depends(get_embedder)]
Generator = Annotated[AnswerGenerator,  Depends(get_generator)]
AppConfig = Annotated[Settings,         Depends(get_settings)]


# ---------------------------------------------------------------------------
# 3. Per-request services
# ---------------------------------------------------------------------------

def get_ingestion_service(
    store: Store, storage: Storage, embedder: Embedding, cfg: AppConfig,
) -> IngestionService:
    return IngestionService(store=store, storage=storage, embedder=embedder, cfg=cfg)


def get_ocr_job_manager(
    store: Store,
    ocr: Ocr,
    ingestion: Annotated[IngestionService, Depends(get_ingestion_service)],
) -> OcrJobManager:
    return OcrJobManager(store=store, ocr_client=ocr, ingestion=ingestion)


def get_retriever(store: Store, embedder: Embedding) -> Retriever:
    return Retriever(store=store, embedder=embedder)


def get_evidence_service(store: Store) -> EvidenceService:
    return EvidenceService(store=store)


Ingestion = Annotated[IngestionService, Depends(get_ingestion_service)]
OcrJobs   = Annotated[OcrJobManager,    Depends(get_ocr_job_manager)]
Retrieval = Annotated[Retriever,        Depends(get_retriever)]
Evidence  = Annotated[EvidenceService,  Depends(get_evidence_service)]
