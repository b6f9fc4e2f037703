"""
Citation protocol — encode retrieved evidence, decode generated answers

Encode (server, before generation):
    ranked chunks → tags S1..Sk in rank order
                  → index lines  "- S<n>: doc_id=<id> file=<filename> chunk=<index>"
                  → source blocks "[S<n>] doc_id=<id> file=<filename> chunk=<index>\\n<snippet>"
                  → system prompt that demands inline [S<n>] citations and a
                    verbatim copy of the index lines under "Sources:"

Decode (client, after generation):
    full answer text → (answer, sources block) split at the LAST line that
    starts with "Sources:" → one EvidenceReference per recognised line.

Two line formats are accepted, tried in this order:
    strict   S3: doc_id=12 file=report.pdf chunk=4
    legacy   S3: report.pdf, 4            (no id; resolved by filename)

Decoding is best effort. Lines matching neither format are skipped and the
decoder never raises, because model output is untrusted text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

from docqa.models.records import RetrievedChunk

NOT_FOUND_SENTENCE = "I don't know based on the provided documents."

DEFAULT_SNIPPET_CHARS = 900

_SOURCES_LINE = re.compile(r"^[ \t]*sources:", re.IGNORECASE | re.MULTILINE)

_STRICT_LINE = re.compile(
    r"^\s*[-*]?\s*(S\d+)\s*:\s*doc_id=(\d+)\s*(?:file=(.*?)\s+)?chunk=(\d+)\s*$",
    re.IGNORECASE,
)
_LEGACY_LINE = re.compile(
    r"^\s*[-*]?\s*(S\d+)\s*:\s*([^,]+?)\s*,\s*(\d+)\s*$",
    re.IGNORECASE,
)
_INLINE_TAG = re.compile(r"\[(S\d+)\]")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EvidenceReference:
    """A decoded pointer from an answer tag to one stored chunk."""
    tag:         str
    chunk_index: int
    document_id: int | None = None
    filename:    str | None = None

    def as_query_params(self) -> dict[str, str]:
        """Query string for ``GET /api/v1/source``."""
        params = {"chunk": str(self.chunk_index)}
        if self.document_id is not None:
            params["docId"] = str(self.document_id)
        if self.filename:
            params["file"] = self.filename
        return params


@dataclass(frozen=True)
class GroundedContext:
    tags:          list[str]
    index_lines:   list[str]
    sources:       str
    system_prompt: str

    @property
    def sources_block(self) -> str:
        """The exact block the model is asked to reproduce."""
        return "Sources:\n" + "\n".join(self.index_lines)


@dataclass(frozen=True)
class ParsedAnswer:
    answer:        str
    sources_block: str = ""
    references:    dict[str, EvidenceReference] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def _system_prompt(index_lines: Sequence[str], sources: str) -> str:
    index = "\n".join(index_lines)
    return (
        "You answer ONLY using the SOURCES below.\n"
        f'If the answer is not in the sources, say: "{NOT_FOUND_SENTENCE}"\n'
        "Cite sources inline like [S1] [S2].\n"
        "\n"
        "After the answer, output this Sources list EXACTLY (copy verbatim):\n"
        "Sources:\n"
        f"{index}\n"
        "\n"
        "SOURCES:\n"
        f"{sources}"
    )


def build_grounded_context(
    ranked: Sequence[RetrievedChunk],
    snippet_chars: int = DEFAULT_SNIPPET_CHARS,
) -> GroundedContext:
    """Tag ranked chunks S1..Sk and render them for the system prompt."""
    tags: list[str] = []
    index_lines: list[str] = []
    blocks: list[str] = []

    for position, chunk in enumerate(ranked, start=1):
        tag = f"S{position}"
        location = f"doc_id={chunk.document_id} file={chunk.filename} chunk={chunk.chunk_index}"
        tags.append(tag)
        index_lines.append(f"- {tag}: {location}")
        blocks.append(f"[{tag}] {location}\n{chunk.content[:snippet_chars]}")

    sources = "\n\n".join(blocks)
    return GroundedContext(
        tags=tags,
        index_lines=index_lines,
        sources=sources,
        system_prompt=_system_prompt(index_lines, sources),
    )


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def split_answer(full_text: str) -> tuple[str, str]:
    """Split at the last line beginning with ``Sources:`` (case-insensitive)."""
    last = None
    for last in _SOURCES_LINE.finditer(full_text):
        pass
    if last is None:
        return full_text, ""
    return full_text[: last.start()].rstrip(), full_text[last.start():].strip()


def parse_reference_line(line: str) -> EvidenceReference | None:
    m = _STRICT_LINE.match(line)
    if m:
        tag, doc_id, filename, chunk = m.groups()
        return EvidenceReference(
            tag=tag.upper(),
            chunk_index=int(chunk),
            document_id=int(doc_id),
            filename=(filename or "").strip() or None,
        )

    m = _LEGACY_LINE.match(line)
    if m:
        tag, filename, chunk = m.groups()
        return EvidenceReference(
            tag=tag.upper(),
            chunk_index=int(chunk),
            filename=filename.strip(),
        )
    return None


def parse_sources_block(sources_block: str) -> dict[str, EvidenceReference]:
    refs: dict[str, EvidenceReference] = {}
    for line in sources_block.splitlines():
        ref = parse_reference_line(line)
        if ref is not None:
            refs[ref.tag] = ref
    return refs


def parse_answer(full_text: str | None) -> ParsedAnswer:
    """Decode a complete generated answer. Never raises."""
    text = full_text or ""
    answer, block = split_answer(text)
    if not block:
        return ParsedAnswer(answer=text)
    return ParsedAnswer(answer=answer, sources_block=block, references=parse_sources_block(block))


def find_citation_tags(answer: str) -> list[str]:
    """Inline ``[S<n>]`` tags in order of first appearance."""
    seen: list[str] = []
    for tag in _INLINE_TAG.findall(answer or ""):
        if tag not in seen:
            seen.append(tag)
    return seen
