"""``search_knowledge_base`` function-calling tool.

Exposes the :class:`~src.services.retrieval.retriever.HybridRetriever` to a
chat model as a callable function.  The definition carries a JSON-schema
parameter block the model fills in; the handler runs retrieval scoped to the
tenant in the call context and returns a JSON string the model can read.
"""

from __future__ import annotations

import json
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.models.rag import RetrievalQuery
from src.services.retrieval.retriever import HybridRetriever

logger = structlog.get_logger(logger_name=__name__)

SEARCH_KNOWLEDGE_BASE = "search_knowledge_base"

FunctionHandler = Callable[[Mapping[str, Any], "FunctionContext"], Awaitable[str]]


@dataclass(frozen=True)
class FunctionContext:
    """Who is calling: the tool always searches this tenant's documents only."""

    tenant_id: str
    conversation_id: str | None = None


@dataclass(frozen=True)
class FunctionDefinition:
    """A function a chat model may call, plus the coroutine that serves it."""

    name: str
    description: str
    parameters: dict[str, Any]
    handler: FunctionHandler = field(repr=False)

    def to_tool_schema(self) -> dict[str, Any]:
        """Render as an OpenAI-style ``tools`` entry."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def build_search_knowledge_base_function(
    retriever: HybridRetriever,
    default_top_k: int = 5,
    default_min_similarity: float = 0.7,
) -> FunctionDefinition:
    """Create the ``search_knowledge_base`` definition bound to *retriever*."""

    async def handler(params: Mapping[str, Any], context: FunctionContext) -> str:
        query = params.get("query") if params else None
        if not isinstance(query, str):
            raise ValueError(f"{SEARCH_KNOWLEDGE_BASE} requires a query string")

        top_k = _number(params.get("top_k"))
        min_similarity = _number(params.get("min_similarity"))

        logger.info(
            "knowledge_base_search",
            tenant_id=context.tenant_id,
            conversation_id=context.conversation_id,
            top_k=top_k,
            min_similarity=min_similarity,
        )

        results = await retriever.retrieve(
            RetrievalQuery(
                tenant_id=context.tenant_id,
                query=query,
                top_k=max(1, int(top_k)) if top_k is not None else default_top_k,
                min_similarity=(
                    min(1.0, max(0.0, min_similarity))
                    if min_similarity is not None
                    else default_min_similarity
                ),
            )
        )

        return json.dumps(
            [
                {
                    "document_id": result.chunk.document_id,
                    "chunk_id": result.chunk.id,
                    "content": result.chunk.content,
                    "metadata": result.chunk.metadata,
                    "score": result.score,
                    "source": result.type.value,
                }
                for result in results
            ],
            default=str,
        )

    return FunctionDefinition(
        name=SEARCH_KNOWLEDGE_BASE,
        description="Search the tenant knowledge base for relevant context to answer a question.",
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Natural language query describing the information to retrieve.",
                },
                "top_k": {
                    "type": "integer",
                    "description": f"Maximum number of chunks to retrieve (default {default_top_k}).",
                },
                "min_similarity": {
                    "type": "number",
                    "description": "Minimum cosine similarity threshold for vector search (0-1).",
                },
            },
            "required": ["query"],
        },
        handler=handler,
    )


def _number(value: Any) -> float | None:
    # bool is an int subclass; a model sending true/false means nothing here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value
