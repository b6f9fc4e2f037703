"""
Chat API — grounded Q&A and evidence lookup

POST /api/v1/chat     → text/plain stream (answer + trailing "Sources:" block)
GET  /api/v1/source   → exact stored text behind one citation

Chat request lifecycle:
  ┌─────────────────────────────────────────────────────────┐
  │ 1. question = last user message                          │
  │ 2. Retriever: EmptyIndex (400) if nothing indexed,       │
  │    else top-k chunks by L2 distance                      │
  │ 3. build_grounded_context(): S1..Sk + system prompt      │
  │ 4. AnswerGenerator.stream() → StreamingResponse          │
  └─────────────────────────────────────────────────────────┘

Step 4 waits for the first fragment before responding, so retrieval errors and
a model that fails before answering both come back as JSON error responses
(GenerationError → 502). After that the status line is sent; a later failure
is logged and the stream is cut short.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Sequence

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from docqa.api.dependencies import AppConfig, Evidence, Generator, Retrieval
from docqa.core.errors import ValidationError
from docqa.llm.generator import AnswerGenerator, ConversationTurn, last_user_text
from docqa.rag.citations import EvidenceReference, build_grounded_context
from docqa.schemas.chat import ChatRequest, EvidenceResponse
from docqa.schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


async def _relay(first: str, rest: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the already-received first fragment, then the remainder.

    The status line has been sent by now, so a later failure can only be
    logged and end the stream early; the client sees an answer with no
    Sources block.
    """
    yield first
    try:
        async for fragment in rest:
            yield fragment
    except Exception:
        logger.exception("Chat stream aborted after the first fragment")


async def _open_stream(
    generator: AnswerGenerator, system_prompt: str, turns: Sequence[ConversationTurn],
) -> AsyncIterator[str]:
    """Start generation and wait for its first fragment.

    Errors raised here surface as ordinary JSON error responses.
    """
    fragments = generator.stream(system_prompt, turns).__aiter__()
    try:
        first = await fragments.__anext__()
    except StopAsyncIteration:
        first = ""
    return _relay(first, fragments)


# ---------------------------------------------------------------------------
# POST /chat
# ---------------------------------------------------------------------------

@router.post(
    "/chat",
    summary="Ask a question about the uploaded documents",
    description=(
        "Streams the answer as plain text. Inline citations look like [S1]; the "
        "stream ends with a 'Sources:' block mapping each tag to doc_id, file and chunk."
    ),
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/plain": {}}},
        400: {"model": ErrorResponse, "description": "Nothing has been indexed yet"},
        502: {"model": ErrorResponse, "description": "The language model failed before answering"},
    },
)
async def chat(
    body:      ChatRequest,
    retriever: Retrieval,
    generator: Generator,
    cfg:       AppConfig,
) -> StreamingResponse:
    turns = [m.to_turn() for m in body.messages]
    question = last_user_text(turns).strip()

    ranked = await retriever.retrieve(question, k=cfg.retrieval_top_k)
    context = build_grounded_context(ranked, snippet_chars=cfg.evidence_snippet_chars)

    logger.info("Chat | question_chars=%d sources=%d", len(question), len(context.tags))

    stream = await _open_stream(generator, context.system_prompt, turns)
    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
    )


# ---------------------------------------------------------------------------
# GET /source
# ---------------------------------------------------------------------------

def _parse_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value!r}.", kind="INVALID_REFERENCE") from None


@router.get(
    "/source",
    response_model=EvidenceResponse,
    summary="Resolve a citation to its stored chunk",
    responses={
        400: {"model": ErrorResponse, "description": "Missing/invalid chunk, or neither docId nor file"},
        404: {"model": ErrorResponse, "description": "No such document or chunk"},
    },
)
async def get_source(
    evidence: Evidence,
    doc_id:   Optional[str] = Query(None, alias="docId"),
    file:     Optional[str] = Query(None),
    chunk:    Optional[str] = Query(None),
) -> EvidenceResponse:
    chunk_index = _parse_int(chunk, "chunk")
    if chunk_index is None:
        raise ValidationError("Missing chunk.", kind="INVALID_REFERENCE")

    ref = EvidenceReference(
        tag="",
        chunk_index=chunk_index,
        document_id=_parse_int(doc_id, "docId"),
        filename=file or None,
    )
    found = await evidence.lookup_evidence(ref)
    return EvidenceResponse(
        filename=found.filename,
        chunk_index=found.chunk_index,
        content=found.content,
    )
