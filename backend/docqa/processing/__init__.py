"""
Document Processing Package
════════════════════════════

Turns uploaded bytes into indexable chunks:

  Text (supplied | PDF text layer | Textract OCR) → Word-window Chunking → Embedding

Modules
───────
  extractor.py  PyMuPDF text-layer extraction; empty result routes a PDF to OCR
  ocr.py        Textract start/poll job client (no waiting, no scheduling)
  chunking.py   Fixed 220-word windows with 40-word overlap, capped at 80 chunks
  embeddings.py Batch embedding pipeline with retry logic
"""

from docqa.processing.chunking import ChunkingResult, chunk_text_by_words, split_into_chunks
from docqa.processing.embeddings import Embedder, EmbeddingPipeline

__all__ = [
    "ChunkingResult",
    "chunk_text_by_words",
    "split_into_chunks",
    "Embedder",
    "EmbeddingPipeline",
    # TextractOcrClient: import directly from docqa.processing.ocr (pulls in aioboto3)
]
