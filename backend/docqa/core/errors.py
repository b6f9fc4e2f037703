"""
Error taxonomy shared by services and the HTTP layer.

Every user-visible failure carries a stable machine-readable ``kind`` and a
human message. The FastAPI handler in ``docqa.main`` renders them as
``ErrorResponse`` bodies; services never build HTTP responses themselves.

    ValidationError  → 400   bad or missing input, never retried
    NotFoundError    → 404   unknown document / chunk / stored file
    StateConflict    → 409   operation not valid in the current state
    UpstreamFailure  → 5xx   storage, embedding, OCR or generation failed
"""

from __future__ import annotations


class DocQAError(Exception):
    """Base class — subclasses set ``kind`` and ``status_code``."""

    kind: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, kind: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail
        if kind:
            self.kind = kind

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind} message={self.message!r}>"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

class ValidationError(DocQAError):
    kind = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(DocQAError):
    kind = "NOT_FOUND"
    status_code = 404


class StateConflict(DocQAError):
    kind = "STATE_CONFLICT"
    status_code = 409


class UpstreamFailure(DocQAError):
    kind = "UPSTREAM_FAILURE"
    status_code = 502


# ---------------------------------------------------------------------------
# Concrete errors
# ---------------------------------------------------------------------------

class MissingFile(ValidationError):
    kind = "MISSING_FILE"

    def __init__(self) -> None:
        super().__init__("No file was provided in the request.")


class NoTextExtracted(ValidationError):
    kind = "NO_TEXT_EXTRACTED"

    def __init__(self, filename: str) -> None:
        super().__init__(f"No text could be extracted from '{filename}'.")


class EmptyContent(ValidationError):
    kind = "EMPTY_CONTENT"

    def __init__(self, document_id: int) -> None:
        super().__init__(f"Document {document_id} has no text left after cleaning.")
        self.document_id = document_id


class EmptyIndex(ValidationError):
    kind = "EMPTY_INDEX"

    def __init__(self) -> None:
        super().__init__("Nothing is indexed yet. Upload a PDF/TXT first.")


class DocumentNotFound(NotFoundError):
    kind = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: int) -> None:
        super().__init__(f"Document {document_id} was not found.")
        self.document_id = document_id


class MissingStorageKey(NotFoundError):
    kind = "MISSING_STORAGE_KEY"

    def __init__(self, document_id: int) -> None:
        super().__init__(f"Document {document_id} has no stored file.")
        self.document_id = document_id


class EvidenceNotFound(NotFoundError):
    kind = "EVIDENCE_NOT_FOUND"


class NoJobStarted(StateConflict):
    kind = "NO_JOB_STARTED"

    def __init__(self, document_id: int) -> None:
        super().__init__(f"No OCR job has been started for document {document_id}.")
        self.document_id = document_id


class OcrJobFailed(UpstreamFailure):
    kind = "OCR_FAILED"
    status_code = 500

    def __init__(self, document_id: int, reason: str) -> None:
        super().__init__(f"OCR failed for document {document_id}.", detail=reason)
        self.document_id = document_id
        self.reason = reason


class StorageError(UpstreamFailure):
    kind = "STORAGE_ERROR"


class OcrServiceError(UpstreamFailure):
    kind = "OCR_SERVICE_ERROR"


class EmbeddingError(UpstreamFailure):
    kind = "EMBEDDING_ERROR"


class GenerationError(UpstreamFailure):
    kind = "GENERATION_ERROR"
