"""
RAG Query Engine
================
Question → Embedding → Qdrant search → Context → LLM → Answer + Sources

Retrieval that finds nothing is not an error: the LLM is still asked, with
a placeholder context, so the caller always gets a best-effort answer.
Only a failed question embedding or a failed LLM call yields success=False.
"""

import logging
from typing import Dict, List, Optional, Sequence

from qdrant_indexer.rag.embedder import EmbeddingGenerator, compute_content_hash
from qdrant_indexer.rag.vector_store import VectorStore
from qdrant_indexer.services.generator import ASSISTANT, USER, ChatSession

logger = logging.getLogger(__name__)

NO_CONTEXT_PLACEHOLDER = "No specific context found in the knowledge base for this query."
CONTEXT_SEPARATOR = "\n\n---\n\n"

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based ONLY on the provided context from the knowledge base.

Your role:
- Answer questions accurately using only the provided context
- Be helpful, professional, and concise
- If the context doesn't contain enough information, say so honestly
- Do not make up information not present in the context
- Cite specific details from the context when relevant

Format:
- Use clear, simple language
- Keep responses concise but complete
- Use bullet points only when listing multiple items"""

_ASSISTANT_ROLES = {"assistant", "model"}


class RAGQueryEngine:
    """Answers one question at a time from the indexed collection."""

    def __init__(self, settings, llm: ChatSession,
                 embedder: Optional[EmbeddingGenerator] = None,
                 vector_store: Optional[VectorStore] = None,
                 system_prompt: Optional[str] = None):
        self.settings = settings
        self.llm = llm
        self.embedder = embedder or EmbeddingGenerator(settings)
        self.vector_store = vector_store or VectorStore(settings)
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        logger.info("✅ RAG query engine initialized")

    def set_system_prompt(self, prompt: str):
        self.system_prompt = prompt

    def query(self, question: str, conversation_history: Sequence[Dict] = (),
              search_limit: int = 5, score_threshold: float = 0.5,
              language_filter: Optional[str] = None) -> Dict:
        """
        Answer a question using retrieved context.

        Args:
            question: The user's question
            conversation_history: Prior turns, dicts with 'role' and 'content'
            search_limit: Max chunks to retrieve
            score_threshold: Minimum similarity score
            language_filter: Only use chunks whose payload language matches

        Returns:
            {'success': True, 'answer', 'sources', 'search_results_count'}
            or {'success': False, 'error'}
        """
        logger.info(f"❓ Query: '{question[:80]}'")

        # 1. Embed the question (identical questions hit the cache)
        embedding = self.embedder.get_embedding(
            question, f"query_{compute_content_hash(question)}"
        )
        if embedding is None:
            return {
                'success': False,
                'error': 'Failed to generate embedding for question',
            }

        # 2. Retrieve
        query_filter = None
        if language_filter is not None:
            query_filter = self.vector_store.build_language_filter(language_filter)

        results = self.vector_store.search(
            embedding.vector,
            limit=search_limit,
            score_threshold=score_threshold,
            with_payload=True,
            query_filter=query_filter,
        )

        # 3. Context (placeholder when nothing matched)
        context = self.build_context(results) if results else NO_CONTEXT_PLACEHOLDER

        # 4. Generate
        try:
            self.llm.reset()
            self.llm.set_system_instruction(self.system_prompt)

            for message in conversation_history:
                if 'role' not in message or 'content' not in message:
                    continue
                role = ASSISTANT if message['role'] in _ASSISTANT_ROLES else USER
                self.llm.add_message(message['content'], role)

            prompt = (f"Context from knowledge base:\n\n{context}\n\n---\n\n"
                      f"User question: {question}")
            response = self.llm.send_message(prompt)
        except Exception as e:
            logger.error(f"❌ RAG engine LLM error: {e}")
            return {
                'success': False,
                'error': f'Failed to generate response: {e}',
            }

        return {
            'success': True,
            'answer': response.text or 'No response generated',
            'sources': self.extract_sources(results),
            'search_results_count': len(results),
        }

    @staticmethod
    def build_context(results: List[Dict]) -> str:
        """Concatenate result texts in search order, each under its title heading"""
        parts = []
        for result in results:
            payload = result.get('payload') or {}
            text = payload.get('text', '')
            title = payload.get('title', '')
            parts.append(f"## {title}\n\n{text}" if title else text)
        return CONTEXT_SEPARATOR.join(parts)

    @staticmethod
    def extract_sources(results: List[Dict]) -> List[Dict]:
        """Unique {title, url, type} of results that have a url, first occurrence wins"""
        sources = []
        seen = set()
        for result in results:
            payload = result.get('payload') or {}
            if not payload.get('url'):
                continue
            source = {
                'title': payload.get('title', 'Source'),
                'url': payload['url'],
                'type': payload.get('type', ''),
            }
            key = (source['title'], source['url'], source['type'])
            if key not in seen:
                sources.append(source)
                seen.add(key)
        return sources
