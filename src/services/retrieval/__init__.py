"""Hybrid retrieval: concurrent keyword + vector search with score fusion."""

from src.services.retrieval.retriever import HybridRetriever, fuse_results

__all__ = ["HybridRetriever", "fuse_results"]
