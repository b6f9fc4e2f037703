"""
Documents & OCR — Pydantic Request/Response Schemas

Wire names are camelCase (``documentId``, ``needsOcr``) because the browser
client reads them directly; Python attributes stay snake_case and FastAPI
serialises by alias.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from docqa.models.documents import OcrStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Upload / re-index
# ---------------------------------------------------------------------------

class UploadResponse(_CamelModel):
    """
    ``needs_ocr=True`` means the PDF had no text layer: no chunks were
    written and the client should call /ocr/start next.
    """
    document_id:   int  = Field(..., alias="documentId")
    chunks:        int  = Field(0, description="Chunks indexed by this request")
    needs_ocr:     bool = Field(False, alias="needsOcr")
    truncated:     bool = Field(False, description="True when text beyond the chunk cap was dropped")
    total_windows: int  = Field(0, alias="totalWindows")


class ReindexRequest(BaseModel):
    text: str = Field(..., description="Replacement full text for the document")


class ReindexResponse(_CamelModel):
    document_id:   int  = Field(..., alias="documentId")
    chunks:        int
    truncated:     bool = False
    total_windows: int  = Field(0, alias="totalWindows")


# ---------------------------------------------------------------------------
# Listing / file access
# ---------------------------------------------------------------------------

class DocumentSummary(_CamelModel):
    id:         int
    filename:   str
    mime:       str | None = None
    size:       int | None = None
    ocr_status: OcrStatus | None = Field(None, alias="ocrStatus")


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary] = Field(default_factory=list)


class FileUrlResponse(_CamelModel):
    url:        str
    expires_in: int = Field(..., alias="expiresIn", description="Seconds until the URL stops working")


# ---------------------------------------------------------------------------
# OCR
# ---------------------------------------------------------------------------

class OcrStartResponse(_CamelModel):
    ok:     bool = True
    job_id: str  = Field(..., alias="jobId")


class OcrPollResponse(_CamelModel):
    ok:            bool = True
    status:        OcrStatus
    chunks:        int | None = None
    truncated:     bool = False
    total_windows: int = Field(0, alias="totalWindows")
