"""
DocQA HTTP client

Async wrapper around the /api/v1 routes for scripts, notebooks and tests.
It also owns the client-side halves of two protocols:

  * OCR polling: the server never polls Textract by itself, so
    ``wait_for_ocr()`` calls /ocr/poll on a fixed interval with a hard attempt
    cap and reports SUCCEEDED, FAILED or TIMED_OUT. A timeout is not a
    failure: the job may still finish and can be polled again later.

  * Citation decoding: ``ask()`` collects the streamed answer and decodes
    the trailing "Sources:" block into EvidenceReferences, which
    ``fetch_evidence()`` resolves to the exact stored chunk text.

Usage::

    async with DocQAClient("http://localhost:8000") as qa:
        up = await qa.upload("notes.txt", b"The sky is blue.")
        answer = await qa.ask("What colour is the sky?")
        for ref in answer.references.values():
            print(await qa.fetch_evidence(ref))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

import httpx

from docqa.core.config import Settings, settings as default_settings
from docqa.rag.citations import EvidenceReference, ParsedAnswer, parse_answer

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class DocQAClientError(Exception):
    """Non-2xx response from the API, carrying its ErrorResponse fields."""

    def __init__(self, status_code: int, error_code: str, message: str, detail: str | None = None) -> None:
        super().__init__(f"{status_code} {error_code}: {message}")
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail

    @classmethod
    def from_response(cls, response: httpx.Response) -> "DocQAClientError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        details = body.get("details") or []
        detail = details[0].get("message") if details and isinstance(details[0], dict) else None
        return cls(
            status_code=response.status_code,
            error_code=body.get("error_code", "HTTP_ERROR"),
            message=body.get("message", response.reason_phrase),
            detail=detail,
        )


# ---------------------------------------------------------------------------
# OCR polling policy
# ---------------------------------------------------------------------------

class OcrWaitOutcome(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED    = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True)
class OcrPollPolicy:
    """Fixed-interval polling; 2.5 s × 200 attempts ≈ 8 minutes."""
    interval_seconds: float = 2.5
    max_attempts:     int   = 200

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "OcrPollPolicy":
        cfg = cfg or default_settings
        return cls(
            interval_seconds=cfg.ocr_poll_interval_seconds,
            max_attempts=cfg.ocr_poll_max_attempts,
        )


@dataclass(frozen=True)
class OcrWaitResult:
    outcome:  OcrWaitOutcome
    attempts: int
    chunks:   int | None = None
    error:    str | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DocQAClient:

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        client:  httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        sleep:   Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._owns_client = client is None
        self._http  = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._sleep = sleep

    async def __aenter__(self) -> "DocQAClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Low-level
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._http.request(method, f"{API_PREFIX}{path}", **kwargs)
        if response.is_error:
            raise DocQAClientError.from_response(response)
        return response.json()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload(
        self,
        filename: str,
        content:  bytes,
        *,
        content_type: str | None = None,
        text:         str | None = None,
        document_id:  int | None = None,
    ) -> dict:
        """POST /documents/upload → {documentId, chunks, needsOcr, truncated, totalWindows}."""
        data: dict[str, str] = {}
        if text is not None:
            data["text"] = text
        if document_id is not None:
            data["document_id"] = str(document_id)

        file_tuple = (filename, content, content_type) if content_type else (filename, content)
        return await self._request("POST", "/documents/upload", files={"file": file_tuple}, data=data)

    async def list_documents(self) -> list[dict]:
        body = await self._request("GET", "/documents")
        return body.get("documents", [])

    async def file_url(self, document_id: int, *, inline: bool = False) -> dict:
        return await self._request(
            "GET", f"/documents/{document_id}/file", params={"inline": "1" if inline else "0"},
        )

    async def reindex(self, document_id: int, text: str) -> dict:
        return await self._request("POST", f"/documents/{document_id}/reindex", json={"text": text})

    # ------------------------------------------------------------------
    # OCR
    # ------------------------------------------------------------------

    async def start_ocr(self, document_id: int) -> str:
        body = await self._request("POST", "/ocr/start", params={"docId": document_id})
        return body["jobId"]

    async def poll_ocr(self, document_id: int) -> dict:
        return await self._request("POST", "/ocr/poll", params={"docId": document_id})

    async def wait_for_ocr(
        self, document_id: int, policy: OcrPollPolicy | None = None,
    ) -> OcrWaitResult:
        """
        Poll until the job finishes or ``policy.max_attempts`` polls were made.

        OCR_FAILED responses become ``OcrWaitOutcome.FAILED``; any other API
        error (e.g. NO_JOB_STARTED) is raised as DocQAClientError.
        """
        policy = policy or OcrPollPolicy.from_settings()

        for attempt in range(1, policy.max_attempts + 1):
            try:
                body = await self.poll_ocr(document_id)
            except DocQAClientError as exc:
                if exc.error_code != "OCR_FAILED":
                    raise
                logger.warning("OCR failed | doc=%s reason=%s", document_id, exc.detail)
                return OcrWaitResult(
                    OcrWaitOutcome.FAILED, attempts=attempt, error=exc.detail or exc.message,
                )

            if body.get("status") == OcrWaitOutcome.SUCCEEDED.value:
                return OcrWaitResult(
                    OcrWaitOutcome.SUCCEEDED, attempts=attempt, chunks=body.get("chunks"),
                )

            if attempt < policy.max_attempts:
                await self._sleep(policy.interval_seconds)

        logger.info("OCR wait timed out | doc=%s attempts=%d", document_id, policy.max_attempts)
        return OcrWaitResult(OcrWaitOutcome.TIMED_OUT, attempts=policy.max_attempts)

    # ------------------------------------------------------------------
    # Chat + evidence
    # ------------------------------------------------------------------

    async def stream_answer(self, messages: Sequence[dict]) -> AsyncIterator[str]:
        """Yield answer fragments exactly as the server streams them."""
        async with self._http.stream(
            "POST", f"{API_PREFIX}/chat", json={"messages": list(messages)},
        ) as response:
            if response.is_error:
                await response.aread()
                raise DocQAClientError.from_response(response)
            async for fragment in response.aiter_text():
                yield fragment

    async def ask(self, question: str, history: Sequence[dict] = ()) -> ParsedAnswer:
        """Ask one question (after ``history``) and decode the full answer."""
        messages = [*history, {"role": "user", "content": question}]
        parts = [fragment async for fragment in self.stream_answer(messages)]
        return parse_answer("".join(parts))

    async def fetch_evidence(self, ref: EvidenceReference) -> dict:
        """GET /source → {filename, chunk_index, content} for one decoded reference."""
        return await self._request("GET", "/source", params=ref.as_query_params())
