"""
OCR API Router — scanned PDFs

POST /api/v1/ocr/start?docId=   → start a Textract job for the stored file
POST /api/v1/ocr/poll?docId=    → check the job once; index the text when done

The server never polls on its own. Clients call /ocr/poll on an interval
until the status is SUCCEEDED or an error comes back (see
docqa.client.DocQAClient.wait_for_ocr).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from docqa.api.dependencies import OcrJobs
from docqa.schemas.documents import OcrPollResponse, OcrStartResponse
from docqa.schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ocr", tags=["OCR"])


@router.post(
    "/start",
    response_model=OcrStartResponse,
    summary="Start OCR for a document",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown document or no stored file"},
        502: {"model": ErrorResponse, "description": "Textract could not start the job"},
    },
)
async def start_ocr(
    jobs:   OcrJobs,
    doc_id: int = Query(..., alias="docId"),
) -> OcrStartResponse:
    job_id = await jobs.start(doc_id)
    return OcrStartResponse(job_id=job_id)


@router.post(
    "/poll",
    response_model=OcrPollResponse,
    response_model_exclude_none=True,
    summary="Poll an OCR job once",
    responses={
        409: {"model": ErrorResponse, "description": "No OCR job has been started"},
        500: {"model": ErrorResponse, "description": "OCR failed (state persisted as FAILED)"},
    },
)
async def poll_ocr(
    jobs:   OcrJobs,
    doc_id: int = Query(..., alias="docId"),
) -> OcrPollResponse:
    result = await jobs.poll(doc_id)
    return OcrPollResponse(
        status=result.status,
        chunks=result.chunks,
        truncated=result.truncated,
        total_windows=result.total_windows,
    )
