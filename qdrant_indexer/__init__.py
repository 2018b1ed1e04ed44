"""
qdrant_indexer
==============
Index CMS content into Qdrant and answer questions over it (RAG).

  - core: settings, logging, errors
  - rag: chunker, embedder, vector store, content sources, indexer
  - services: LLM chat sessions
  - query_engine: question → context → answer
"""

from qdrant_indexer.core.config import Settings, get_settings
from qdrant_indexer.core.exceptions import ConfigurationError
from qdrant_indexer.query_engine import RAGQueryEngine
from qdrant_indexer.rag.indexer import ContentIndexer

__all__ = [
    "Settings",
    "get_settings",
    "ConfigurationError",
    "ContentIndexer",
    "RAGQueryEngine",
]
