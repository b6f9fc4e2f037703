"""
DocQA API — application factory and process entry point

Routes (all under /api/v1):
  documents  upload / list / signed file URL / reindex
  ocr        start / poll Textract jobs for scanned PDFs
  chat       streamed grounded answers, /source evidence lookup

Process-wide resources live on ``app.state`` and are built in the lifespan:
the Database (async engine + session pool), S3 storage, the Textract client,
the embedding pipeline and the answer generator. Routes never touch them
directly; they go through docqa.api.dependencies.

Every failure leaves as an ErrorResponse body carrying ``error_code`` and the
request id, whether it was a DocQAError, a request validation error or
something unexpected.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from docqa.api.v1.chat import router as chat_router
from docqa.api.v1.documents import router as documents_router
from docqa.api.v1.ocr import router as ocr_router
from docqa.core.config import Settings, settings
from docqa.core.errors import DocQAError, UpstreamFailure
from docqa.schemas.errors import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(cfg: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if cfg.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


configure_logging(settings)


# ---------------------------------------------------------------------------
# Lifespan: build and release process-wide clients
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    from docqa.db.session import Database
    from docqa.llm.generator import OpenAIAnswerGenerator
    from docqa.processing.embeddings import EmbeddingPipeline
    from docqa.processing.ocr import TextractOcrClient
    from docqa.storage.s3 import S3StorageService

    logger.info("DocQA starting | env=%s bucket=%s", settings.app_env, settings.s3_bucket)

    db = Database.from_settings(settings)
    db_health = await db.health()
    if db_health["status"] != "ok":
        await db.dispose()
        logger.critical("Refusing to start, database unreachable: %s", db_health)
        raise RuntimeError(f"Database unavailable: {db_health.get('detail')}")
    await db.create_schema()

    app.state.db         = db
    app.state.storage    = S3StorageService(settings)
    app.state.ocr_client = TextractOcrClient(settings)
    app.state.embedder   = EmbeddingPipeline(settings)
    app.state.generator  = OpenAIAnswerGenerator(settings)

    logger.info(
        "DocQA ready | embed_model=%s dims=%d llm=%s",
        settings.embedding_model, settings.embedding_dimensions, settings.llm_model,
    )
    try:
        yield
    finally:
        logger.info("DocQA stopping")
        await db.dispose()


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or str(uuid.uuid4())
    )


def _error_response(
    request:     Request,
    status_code: int,
    error_code:  str,
    message:     str,
    details:     Sequence[ErrorDetail] = (),
) -> JSONResponse:
    request_id = _request_id(request)
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=list(details),
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers={REQUEST_ID_HEADER: request_id},
    )


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(DocQAError)
    async def on_docqa_error(request: Request, exc: DocQAError):
        if isinstance(exc, UpstreamFailure):
            logger.error(
                "Upstream failure | path=%s kind=%s detail=%s",
                request.url.path, exc.kind, exc.detail,
            )
        details = [ErrorDetail(message=exc.detail, code=exc.kind)] if exc.detail else []
        return _error_response(request, exc.status_code, exc.kind, exc.message, details)

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        details = [
            ErrorDetail(
                field=".".join(str(part) for part in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            "The request did not match the expected shape.",
            details,
        )

    @app.exception_handler(Exception)
    async def on_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error | %s %s", request.method, request.url.path)
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An unexpected error occurred.",
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Build the ASGI app.

    ``use_lifespan=False`` skips client construction entirely; tests use it
    together with ``app.dependency_overrides``.
    """
    expose_docs = not settings.is_production
    app = FastAPI(
        title="DocQA",
        description=(
            "Upload text and PDF documents (scanned PDFs via OCR), then ask questions "
            "answered only from those documents, with machine-checkable citations."
        ),
        version="1.0.0",
        docs_url="/api/docs" if expose_docs else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if expose_docs else None,
        lifespan=lifespan if use_lifespan else None,
    )

    # last added runs first
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else [],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def tag_and_log_request(request: Request, call_next):
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        t0 = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        logger.info(
            "%s %s -> %d in %.1fms | request_id=%s",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - t0) * 1000, request.state.request_id,
        )
        return response

    _register_error_handlers(app)

    for router in (documents_router, ocr_router, chat_router):
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/health", tags=["Operations"], summary="Liveness check")
    async def health() -> dict:
        return {"status": "ok", "service": "docqa"}

    @app.get("/ready", tags=["Operations"], summary="Readiness check (database reachable)")
    async def ready(request: Request) -> JSONResponse:
        db = getattr(request.app.state, "db", None)
        db_health = await db.health() if db is not None else {"status": "error", "detail": "not initialised"}
        ok = db_health["status"] == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if ok else "not_ready", "database": db_health},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docqa.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
