"""
Structured error bodies shared by every route.

Clients check ``error_code`` for programmatic handling; ``message`` is for
humans. ``details`` carries per-field validation problems or the upstream
reason behind a failure (e.g. the Textract status of a failed OCR job).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """Uniform error envelope for all 4xx/5xx responses."""
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")

