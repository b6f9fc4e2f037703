"""
RAG package — retrieval and the citation protocol.

The citation helpers are pure functions with no I/O, so the HTTP client and
tests can decode answers without a database or model.
"""

from docqa.rag.citations import (
    NOT_FOUND_SENTENCE,
    EvidenceReference,
    GroundedContext,
    ParsedAnswer,
    build_grounded_context,
    find_citation_tags,
    parse_answer,
)
from docqa.rag.retriever import Retriever

__all__ = [
    "NOT_FOUND_SENTENCE",
    "EvidenceReference",
    "GroundedContext",
    "ParsedAnswer",
    "build_grounded_context",
    "find_citation_tags",
    "parse_answer",
    "Retriever",
]
