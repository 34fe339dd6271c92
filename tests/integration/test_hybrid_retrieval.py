"""End-to-end retrieval: upload through the pipeline, then search."""

from __future__ import annotations

import json

import pytest

from src.models.ingestion import DocumentUploadRequest
from src.models.rag import RetrievalQuery, RetrievalType
from src.services.ingestion.upload_pipeline import DocumentUploadPipeline
from src.services.knowledge_base_function import (
    FunctionContext,
    build_search_knowledge_base_function,
)
from src.services.retrieval.retriever import HybridRetriever
from src.utils.errors import ChecksumMismatchError
from tests.conftest import HashingEmbeddingProvider


async def _upload(
    pipeline: DocumentUploadPipeline,
    text: str,
    tenant_id: str = "acme",
    filename: str = "policies.txt",
    **overrides,
):
    return await pipeline.upload(
        DocumentUploadRequest(
            tenant_id=tenant_id,
            filename=filename,
            mime_type="text/plain",
            data=text.encode("utf-8"),
            **overrides,
        )
    )


def _query(text: str, tenant_id: str = "acme", **overrides) -> RetrievalQuery:
    return RetrievalQuery(tenant_id=tenant_id, query=text, min_similarity=0.1, **overrides)


class TestHybridRetrieval:
    @pytest.mark.asyncio
    async def test_best_paragraph_ranks_first(
        self,
        pipeline: DocumentUploadPipeline,
        retriever: HybridRetriever,
        three_paragraph_text: str,
    ) -> None:
        document = await _upload(pipeline, three_paragraph_text)

        results = await retriever.retrieve(_query("enterprise billing disputes", top_k=3))

        assert results[0].chunk.content.startswith("Enterprise contracts")
        assert results[0].type is RetrievalType.HYBRID
        assert results[0].chunk.document_id == document.id
        assert results[0].chunk.metadata["source"] == "knowledge_base"
        assert results[0].chunk.metadata["position"] == 2
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)
        assert len(results) <= 3

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(
        self,
        pipeline: DocumentUploadPipeline,
        retriever: HybridRetriever,
        three_paragraph_text: str,
    ) -> None:
        acme = await _upload(pipeline, three_paragraph_text)
        await _upload(pipeline, "Globex refund rules are entirely different.", tenant_id="globex")

        results = await retriever.retrieve(_query("refund", top_k=10))

        assert results
        assert {r.chunk.document_id for r in results} == {acme.id}
        assert await retriever.retrieve(_query("refund", tenant_id="initech")) == []

    @pytest.mark.asyncio
    async def test_failed_uploads_are_not_searchable(
        self, pipeline: DocumentUploadPipeline, retriever: HybridRetriever
    ) -> None:
        with pytest.raises(ChecksumMismatchError):
            await _upload(pipeline, "Secret refund workaround.", storage_provider="corrupt")

        assert await retriever.retrieve(_query("refund workaround")) == []

    @pytest.mark.asyncio
    async def test_new_version_replaces_searchable_content(
        self,
        pipeline: DocumentUploadPipeline,
        retriever: HybridRetriever,
        three_paragraph_text: str,
    ) -> None:
        await _upload(pipeline, three_paragraph_text)
        await _upload(pipeline, "Gift cards never expire.")

        results = await retriever.retrieve(_query("enterprise contracts"))
        assert all("Enterprise" not in r.chunk.content for r in results)
        gift = await retriever.retrieve(_query("gift cards"))
        assert gift[0].chunk.content == "Gift cards never expire."

    @pytest.mark.asyncio
    async def test_degrades_to_keyword_when_embedding_fails(
        self,
        pipeline: DocumentUploadPipeline,
        retriever: HybridRetriever,
        embedding_provider: HashingEmbeddingProvider,
        three_paragraph_text: str,
    ) -> None:
        await _upload(pipeline, three_paragraph_text)
        embedding_provider.fail_times = 100

        results = await retriever.retrieve(_query("cancellation billing period"))

        assert results
        assert all(r.type is RetrievalType.KEYWORD for r in results)
        assert results[0].chunk.content.startswith("Monthly plans")
        assert results[0].score == pytest.approx(0.3)


class TestSearchFunction:
    @pytest.mark.asyncio
    async def test_tool_returns_tenant_results(
        self,
        pipeline: DocumentUploadPipeline,
        retriever: HybridRetriever,
        three_paragraph_text: str,
    ) -> None:
        document = await _upload(pipeline, three_paragraph_text)
        await _upload(pipeline, "Globex invoices are paper only.", tenant_id="globex")
        tool = build_search_knowledge_base_function(retriever, default_min_similarity=0.1)

        payload = json.loads(
            await tool.handler({"query": "original invoice number", "top_k": 2}, FunctionContext("acme"))
        )

        assert 0 < len(payload) <= 2
        assert {item["document_id"] for item in payload} == {document.id}
        assert payload[0]["content"].startswith("Acme support handles refund requests")
        assert payload[0]["source"] in {"keyword", "vector", "hybrid"}
