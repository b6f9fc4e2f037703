"""
Integration Tests — SqlDocumentStore against PostgreSQL + pgvector

Every test here uses the ``db_session`` fixture and is skipped unless
TEST_DATABASE_URL points at a database with the pgvector extension.

Coverage targets:
  ✅ Re-indexing twice     → indices stay 0..N-1, stale chunks gone
  ✅ Failed re-index       → rolled back, previous chunks intact
  ✅ Nearest neighbours    → L2 order, filename joined in
  ✅ Filename lookup       → highest id wins
  ✅ OCR state round trip  → None clears status, error and job id
  ✅ release()             → session usable afterwards
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import StatementError

from docqa.core.config import settings
from docqa.db.repository import SqlDocumentStore
from docqa.models.documents import OcrStatus


def _one_hot(i: int) -> list[float]:
    vector = [0.0] * settings.embedding_dimensions
    vector[i] = 1.0
    return vector


@pytest.fixture
def sql_store(db_session) -> SqlDocumentStore:
    return SqlDocumentStore(db_session)


@pytest.mark.integration
class TestChunkReplacement:

    async def test_replacing_twice_keeps_indices_contiguous(self, sql_store):
        doc = await sql_store.create_document("a.txt")
        await sql_store.replace_chunks(doc.id, [(f"old {i}", _one_hot(i)) for i in range(5)])
        await sql_store.replace_chunks(doc.id, [("new 0", _one_hot(0)), ("new 1", _one_hot(1))])

        assert await sql_store.count_chunks() == 2
        assert (await sql_store.get_chunk(doc.id, 0)).content == "new 0"
        assert (await sql_store.get_chunk(doc.id, 1)).content == "new 1"
        assert await sql_store.get_chunk(doc.id, 2) is None

    async def test_failed_replacement_keeps_previous_chunks(self, sql_store):
        doc = await sql_store.create_document("a.txt")
        await sql_store.replace_chunks(doc.id, [("kept", _one_hot(0))])

        with pytest.raises((StatementError, ValueError)):
            await sql_store.replace_chunks(doc.id, [("bad", [1.0, 2.0])])

        assert await sql_store.count_chunks() == 1
        assert (await sql_store.get_chunk(doc.id, 0)).content == "kept"

    async def test_replacement_only_touches_its_document(self, sql_store):
        a = await sql_store.create_document("a.txt")
        b = await sql_store.create_document("b.txt")
        await sql_store.replace_chunks(a.id, [("a0", _one_hot(0))])
        await sql_store.replace_chunks(b.id, [("b0", _one_hot(1)), ("b1", _one_hot(2))])
        await sql_store.replace_chunks(a.id, [])

        assert await sql_store.count_chunks() == 2
        assert (await sql_store.get_chunk(b.id, 1)).content == "b1"


@pytest.mark.integration
class TestQueries:

    async def test_nearest_chunks_in_l2_order(self, sql_store):
        doc = await sql_store.create_document("colours.txt")
        await sql_store.replace_chunks(doc.id, [
            ("sky", _one_hot(0)),
            ("grass", _one_hot(1)),
            ("roses", _one_hot(2)),
        ])
        query = _one_hot(1)
        query[2] = 0.5

        ranked = await sql_store.nearest_chunks(query, k=2)

        assert [c.content for c in ranked] == ["grass", "roses"]
        assert ranked[0].filename == "colours.txt"
        assert ranked[0].chunk_index == 1

    async def test_latest_document_by_filename(self, sql_store):
        await sql_store.create_document("x.txt")
        await sql_store.create_document("other.txt")
        newest = await sql_store.create_document("x.txt")

        found = await sql_store.latest_document_by_filename("x.txt")
        assert found.id == newest.id
        assert await sql_store.latest_document_by_filename("missing.txt") is None

    async def test_ocr_state_can_be_cleared(self, sql_store):
        doc = await sql_store.create_document("scan.pdf")
        await sql_store.update_ocr(doc.id, OcrStatus.FAILED, error="boom", job_id="job-1")
        await sql_store.update_ocr(doc.id, None, job_id=None)
        await sql_store.release()

        reloaded = await sql_store.get_document(doc.id)
        assert reloaded.ocr_status is None
        assert reloaded.ocr_error is None
        assert reloaded.textract_job_id is None

    async def test_session_usable_after_release(self, sql_store):
        doc = await sql_store.create_document("a.txt")
        await sql_store.count_chunks()
        await sql_store.release()

        await sql_store.replace_chunks(doc.id, [("after", _one_hot(3))])
        assert await sql_store.count_chunks() == 1
