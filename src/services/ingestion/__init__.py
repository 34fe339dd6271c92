"""Document ingestion for the knowledge base.

Orchestrates the full pipeline: **store -> verify -> load -> chunk -> embed -> index**.

1. **Store / verify** (via IStorageProvider) -- Bytes are written under a
   versioned path and their checksum is re-read from storage.

2. **Load** (via LoaderRegistry) -- Format-specific loaders turn bytes into
   normalised text plus source metadata.

3. **Chunk** (chunker.py / TextChunker) -- Splits text into token-bounded
   chunks using the fixed, semantic, or recursive strategy.

4. **Embed** (via EmbeddingsService) -- Cached, batched, retried embedding
   of every chunk.

5. **Index** (via IDocumentStore) -- Old chunks are swapped for new ones and
   the document is marked ready in one transaction.

DocumentUploadPipeline (upload_pipeline.py) runs all five stages.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.upload_pipeline import DocumentUploadPipeline, indexed_chunker_options

__all__ = [
    "DocumentUploadPipeline",
    "TextChunker",
    "indexed_chunker_options",
]
