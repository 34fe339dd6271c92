"""Unit tests for the search_knowledge_base function-calling tool."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.rag import RetrievalResult, RetrievalType, RetrievedChunk
from src.services.knowledge_base_function import (
    SEARCH_KNOWLEDGE_BASE,
    FunctionContext,
    build_search_knowledge_base_function,
)


def _retriever(results: list[RetrievalResult] | None = None) -> MagicMock:
    retriever = MagicMock()
    retriever.retrieve = AsyncMock(return_value=results or [])
    return retriever


def _result() -> RetrievalResult:
    return RetrievalResult(
        chunk=RetrievedChunk(
            id="c1",
            document_id="d1",
            content="Refunds are issued within 30 days.",
            position=0,
            metadata={"source": "knowledge_base", "position": 0},
        ),
        score=0.82,
        type=RetrievalType.HYBRID,
    )


class TestDefinition:
    def test_schema(self) -> None:
        definition = build_search_knowledge_base_function(_retriever())
        schema = definition.to_tool_schema()

        assert definition.name == SEARCH_KNOWLEDGE_BASE == "search_knowledge_base"
        assert schema["type"] == "function"
        assert schema["function"]["parameters"]["required"] == ["query"]
        assert set(schema["function"]["parameters"]["properties"]) == {
            "query",
            "top_k",
            "min_similarity",
        }


class TestHandler:
    @pytest.mark.asyncio
    async def test_returns_json_results_for_context_tenant(self) -> None:
        retriever = _retriever([_result()])
        definition = build_search_knowledge_base_function(retriever)

        payload = await definition.handler(
            {"query": "refund window"}, FunctionContext(tenant_id="acme", conversation_id="conv-1")
        )

        assert json.loads(payload) == [
            {
                "document_id": "d1",
                "chunk_id": "c1",
                "content": "Refunds are issued within 30 days.",
                "metadata": {"source": "knowledge_base", "position": 0},
                "score": 0.82,
                "source": "hybrid",
            }
        ]
        query = retriever.retrieve.await_args.args[0]
        assert query.tenant_id == "acme"
        assert query.query == "refund window"

    @pytest.mark.asyncio
    async def test_defaults_apply_when_params_absent(self) -> None:
        retriever = _retriever()
        definition = build_search_knowledge_base_function(
            retriever, default_top_k=7, default_min_similarity=0.4
        )

        assert await definition.handler({"query": "x"}, FunctionContext(tenant_id="acme")) == "[]"
        query = retriever.retrieve.await_args.args[0]
        assert (query.top_k, query.min_similarity) == (7, 0.4)

    @pytest.mark.asyncio
    async def test_numeric_overrides(self) -> None:
        retriever = _retriever()
        definition = build_search_knowledge_base_function(retriever)

        await definition.handler(
            {"query": "x", "top_k": 3.0, "min_similarity": 0.25}, FunctionContext(tenant_id="acme")
        )
        query = retriever.retrieve.await_args.args[0]
        assert (query.top_k, query.min_similarity) == (3, 0.25)

    @pytest.mark.asyncio
    async def test_non_numeric_overrides_are_ignored(self) -> None:
        retriever = _retriever()
        definition = build_search_knowledge_base_function(retriever)

        await definition.handler(
            {"query": "x", "top_k": "ten", "min_similarity": True}, FunctionContext(tenant_id="acme")
        )
        query = retriever.retrieve.await_args.args[0]
        assert (query.top_k, query.min_similarity) == (5, 0.7)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("top_k", "min_similarity", "expected"),
        [
            (0, -0.5, (1, 0.0)),
            (-3, 1.7, (1, 1.0)),
            (0.4, -1.0, (1, 0.0)),
            (float("inf"), float("nan"), (5, 0.7)),
        ],
    )
    async def test_out_of_range_overrides_are_clamped(
        self, top_k: float, min_similarity: float, expected: tuple[int, float]
    ) -> None:
        retriever = _retriever()
        definition = build_search_knowledge_base_function(retriever)

        await definition.handler(
            {"query": "x", "top_k": top_k, "min_similarity": min_similarity},
            FunctionContext(tenant_id="acme"),
        )
        query = retriever.retrieve.await_args.args[0]
        assert (query.top_k, query.min_similarity) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{}, {"query": 42}, {"query": None}])
    async def test_missing_query_is_rejected(self, params: dict) -> None:
        retriever = _retriever()
        definition = build_search_knowledge_base_function(retriever)

        with pytest.raises(ValueError, match="query string"):
            await definition.handler(params, FunctionContext(tenant_id="acme"))
        retriever.retrieve.assert_not_awaited()
