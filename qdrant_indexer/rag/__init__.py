"""
RAG Module
==========
Modular components for the indexing pipeline:
  - chunker: Text splitting into sentence-aligned chunks
  - embedding_cache: Local key/value stores for embeddings
  - embedder: OpenAI embeddings behind the local cache
  - vector_store: Qdrant collection client
  - content_source: Where items to index come from
  - indexer: Source → Chunks → Embeddings → Qdrant
"""

from qdrant_indexer.rag.chunker import TextChunker
from qdrant_indexer.rag.content_source import (
    ContentItem,
    DirectoryContentSource,
    RecordContentSource,
    iter_content_items,
)
from qdrant_indexer.rag.embedder import EmbeddingGenerator, EmbeddingResult
from qdrant_indexer.rag.embedding_cache import InMemoryEmbeddingCache, JsonFileEmbeddingCache
from qdrant_indexer.rag.indexer import ContentIndexer
from qdrant_indexer.rag.vector_store import VectorStore

__all__ = [
    "TextChunker",
    "ContentItem",
    "DirectoryContentSource",
    "RecordContentSource",
    "iter_content_items",
    "EmbeddingGenerator",
    "EmbeddingResult",
    "InMemoryEmbeddingCache",
    "JsonFileEmbeddingCache",
    "ContentIndexer",
    "VectorStore",
]
