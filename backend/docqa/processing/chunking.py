"""
Word-Window Chunker
═══════════════════

Splits cleaned document text into overlapping windows of words:

    words   = collapse_whitespace(text).split(" ")
    step    = max(1, chunk_words - overlap_words)
    chunk_i = " ".join(words[i*step : i*step + chunk_words])

With the defaults (220 words, 40 overlap) consecutive chunks share exactly
40 boundary words. A document of N <= 220 words is one window and one of
N > 220 words yields ceil((N - 220) / 180) + 1 windows: the first window
that reaches the last word ends the sequence, so no trailing window is a
subset of the one before it.

Safety cap
──────────
Only the first ``max_chunks`` windows (default 80) are kept, so very large
documents are indexed partially. This is not an error. ``split_into_chunks``
reports ``truncated`` / ``total_windows`` so callers can surface it; the
plain ``chunk_text_by_words`` helper drops the extra windows silently.

The chunker is purely word-count based (no sentence or paragraph awareness)
and deterministic: identical input always yields identical output, which is
what makes re-indexing idempotent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CHUNK_WORDS   = 220
DEFAULT_OVERLAP_WORDS = 40
DEFAULT_MAX_CHUNKS    = 80

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ChunkingResult:
    """
    chunks        : kept windows, in document order (index == chunk_index)
    total_windows : windows produced before the cap was applied
    """
    chunks:        list[str] = field(default_factory=list)
    total_windows: int = 0

    @property
    def truncated(self) -> bool:
        return self.total_windows > len(self.chunks)

    def __len__(self) -> int:
        return len(self.chunks)


def _windows(text: str, chunk_words: int, overlap_words: int) -> list[str]:
    clean = _WHITESPACE_RE.sub(" ", text).strip()
    if not clean:
        return []

    words = clean.split(" ")
    step  = max(1, chunk_words - overlap_words)

    out: list[str] = []
    i = 0
    while i < len(words):
        chunk = " ".join(words[i : i + chunk_words]).strip()
        if chunk:
            out.append(chunk)
        # a window that reaches the last word ends the document
        if i + chunk_words >= len(words):
            break
        i += step
    return out


def split_into_chunks(
    text: str,
    chunk_words:   int = DEFAULT_CHUNK_WORDS,
    overlap_words: int = DEFAULT_OVERLAP_WORDS,
    max_chunks:    int = DEFAULT_MAX_CHUNKS,
) -> ChunkingResult:
    """Chunk ``text`` and report whether the ``max_chunks`` cap dropped windows."""
    if chunk_words < 1:
        raise ValueError("chunk_words must be >= 1")

    windows = _windows(text, chunk_words, overlap_words)
    result  = ChunkingResult(chunks=windows[:max_chunks], total_windows=len(windows))

    if result.truncated:
        logger.warning(
            "Chunk cap reached | windows=%d kept=%d", result.total_windows, len(result.chunks),
        )
    return result


def chunk_text_by_words(
    text: str,
    chunk_words:   int = DEFAULT_CHUNK_WORDS,
    overlap_words: int = DEFAULT_OVERLAP_WORDS,
    max_chunks:    int = DEFAULT_MAX_CHUNKS,
) -> list[str]:
    """
    Return the ordered, non-empty chunks of ``text``.

    NOTE: silently keeps only the first ``max_chunks`` windows. Use
    ``split_into_chunks`` when the caller needs to know about truncation.
    """
    return split_into_chunks(text, chunk_words, overlap_words, max_chunks).chunks
