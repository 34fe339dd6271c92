"""Unit tests for SQLiteDocumentStore."""

from __future__ import annotations

import pytest

from src.models.document import Chunk, Document, DocumentStatus
from src.providers.document_store.sqlite_document_store import (
    SQLiteDocumentStore,
    build_match_expression,
    parse_vector,
    vector_literal,
)


def _document(doc_id: str, tenant_id: str = "acme", **overrides) -> Document:
    fields = {
        "id": doc_id,
        "tenant_id": tenant_id,
        "filename": f"{doc_id}.txt",
        "mime_type": "text/plain",
        "storage_provider": "memory",
        "status": DocumentStatus.READY,
        "checksum": "abc",
        "metadata": {"source": "test"},
    }
    fields.update(overrides)
    return Document(**fields)


def _chunk(doc: Document, position: int, content: str, embedding: list[float] | None = None) -> Chunk:
    return Chunk(
        id=f"{doc.id}-{position}",
        tenant_id=doc.tenant_id,
        document_id=doc.id,
        content=content,
        embedding=embedding,
        position=position,
        metadata={"position": position},
    )


async def _seed(store: SQLiteDocumentStore, doc: Document, chunks: list[Chunk]) -> None:
    async with store.transaction() as session:
        await session.create_document(doc)
        await session.insert_chunks(chunks)


# ======================================================================
# Helpers
# ======================================================================


class TestHelpers:
    def test_vector_literal(self) -> None:
        assert vector_literal([1, 0.5]) == "[1.0,0.5]"
        assert vector_literal(None) is None
        assert parse_vector("[1.0,0.5]") == [1.0, 0.5]
        assert parse_vector(None) is None

    def test_match_expression_quotes_and_dedupes(self) -> None:
        assert build_match_expression('Refund "policy" OR refund*') == '"refund" OR "policy" OR "or"'
        assert build_match_expression("?!") == ""


# ======================================================================
# Documents and transactions
# ======================================================================


class TestDocuments:
    @pytest.mark.asyncio
    async def test_create_and_read_back(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(store, doc, [])

        loaded = await store.get_document("d1")

        assert loaded is not None
        assert loaded.filename == "d1.txt"
        assert loaded.status is DocumentStatus.READY
        assert loaded.metadata == {"source": "test"}
        assert loaded.created_at == doc.created_at

    @pytest.mark.asyncio
    async def test_find_and_tenant_scoped_get(self, store: SQLiteDocumentStore) -> None:
        await _seed(store, _document("d1"), [])

        async with store.transaction() as session:
            assert (await session.find_document("acme", "d1.txt")).id == "d1"
            assert await session.find_document("other", "d1.txt") is None
            assert await session.get_document("d1", tenant_id="other") is None
            assert (await session.get_document("d1", tenant_id="acme")).id == "d1"

    @pytest.mark.asyncio
    async def test_update_refreshes_timestamp(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(store, doc, [])

        updated = await store.update_document(
            doc.model_copy(update={"status": DocumentStatus.STALE, "version": 2})
        )
        loaded = await store.get_document("d1")

        assert updated.updated_at >= doc.updated_at
        assert loaded.status is DocumentStatus.STALE
        assert loaded.version == 2

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self, store: SQLiteDocumentStore) -> None:
        with pytest.raises(RuntimeError):
            async with store.transaction() as session:
                await session.create_document(_document("d1"))
                raise RuntimeError("boom")

        assert await store.get_document("d1") is None

    @pytest.mark.asyncio
    async def test_list_documents_pages_by_id(self, store: SQLiteDocumentStore) -> None:
        for doc_id in ("d3", "d1", "d2"):
            await _seed(store, _document(doc_id), [])
        await _seed(store, _document("d0", status=DocumentStatus.FAILED), [])

        first = await store.list_documents([DocumentStatus.READY], limit=2)
        second = await store.list_documents([DocumentStatus.READY], after_id=first[-1].id, limit=2)
        everything = await store.list_documents()

        assert [d.id for d in first] == ["d1", "d2"]
        assert [d.id for d in second] == ["d3"]
        assert [d.id for d in everything] == ["d0", "d1", "d2", "d3"]


# ======================================================================
# Chunks
# ======================================================================


class TestChunks:
    @pytest.mark.asyncio
    async def test_insert_get_and_delete(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(store, doc, [_chunk(doc, 1, "second", [0.0, 1.0]), _chunk(doc, 0, "first")])

        chunks = await store.get_chunks("d1")
        assert [c.content for c in chunks] == ["first", "second"]
        assert chunks[0].embedding is None
        assert chunks[1].embedding == [0.0, 1.0]

        async with store.transaction() as session:
            assert await session.delete_chunks("d1") == 2

        assert await store.get_chunks("d1") == []
        assert await store.keyword_search("acme", "first", 5) == []


# ======================================================================
# Search primitives
# ======================================================================


class TestSearch:
    @pytest.mark.asyncio
    async def test_keyword_search_ranks_and_scopes(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(
            store,
            doc,
            [
                _chunk(doc, 0, "refund refund refund policy for annual plans"),
                _chunk(doc, 1, "billing questions go to the finance team"),
                _chunk(doc, 2, "a refund is issued to the original card"),
            ],
        )
        other = _document("x1", tenant_id="other")
        await _seed(store, other, [_chunk(other, 0, "refund for another tenant")])

        hits = await store.keyword_search("acme", "refund", 10)

        assert [h.chunk_id for h in hits] == ["d1-0", "d1-2"]
        assert hits[0].score > hits[1].score > 0
        assert hits[0].metadata == {"position": 0}

    @pytest.mark.asyncio
    async def test_keyword_search_matches_any_term(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(store, doc, [_chunk(doc, 0, "refund policy"), _chunk(doc, 1, "billing team")])

        hits = await store.keyword_search("acme", "refund billing", 10)
        assert {h.chunk_id for h in hits} == {"d1-0", "d1-1"}

    @pytest.mark.asyncio
    async def test_keyword_search_tolerates_operators(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(store, doc, [_chunk(doc, 0, "near the refund desk")])

        hits = await store.keyword_search("acme", 'NEAR(refund "desk" AND', 10)
        assert [h.chunk_id for h in hits] == ["d1-0"]

    @pytest.mark.asyncio
    async def test_only_ready_documents_are_searchable(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1", status=DocumentStatus.PROCESSING)
        await _seed(store, doc, [_chunk(doc, 0, "refund policy", [1.0, 0.0])])

        assert await store.keyword_search("acme", "refund", 5) == []
        assert await store.vector_search("acme", [1.0, 0.0], 5, 0.0) == []

    @pytest.mark.asyncio
    async def test_vector_search_cosine_and_threshold(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(
            store,
            doc,
            [
                _chunk(doc, 0, "exact", [1.0, 0.0]),
                _chunk(doc, 1, "close", [0.8, 0.6]),
                _chunk(doc, 2, "orthogonal", [0.0, 1.0]),
                _chunk(doc, 3, "unembedded"),
                _chunk(doc, 4, "wrong dimension", [1.0, 0.0, 0.0]),
            ],
        )

        hits = await store.vector_search("acme", [2.0, 0.0], 10, 0.5)

        assert [h.chunk_id for h in hits] == ["d1-0", "d1-1"]
        assert hits[0].score == pytest.approx(1.0)
        assert hits[1].score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_vector_search_respects_top_k_and_tenant(self, store: SQLiteDocumentStore) -> None:
        doc = _document("d1")
        await _seed(store, doc, [_chunk(doc, i, f"c{i}", [1.0, i / 10]) for i in range(4)])

        assert len(await store.vector_search("acme", [1.0, 0.0], 2, 0.0)) == 2
        assert await store.vector_search("other", [1.0, 0.0], 2, 0.0) == []
        assert await store.vector_search("acme", [0.0, 0.0], 2, 0.0) == []
