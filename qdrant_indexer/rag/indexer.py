"""
Content Indexer Module
======================
Handles: Content Source → Chunks → Embeddings → Qdrant

A run walks through SETUP → GATHER → CHUNK → EMBED_AND_UPLOAD → DONE.
Embeddings are looked up in two places before the provider is called:
the collection itself (points carry a content_hash payload field) and the
embedder's local cache.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from qdrant_indexer.core.sanitize import sanitize_text
from qdrant_indexer.rag.chunker import TextChunker
from qdrant_indexer.rag.content_source import ContentItem, ContentSource, iter_content_items
from qdrant_indexer.rag.embedder import EmbeddingGenerator, compute_content_hash
from qdrant_indexer.rag.vector_store import VectorStore

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 25


class IndexPhase(Enum):
    SETUP = "setup"
    GATHER = "gather"
    CHUNK = "chunk"
    EMBED_AND_UPLOAD = "embed_and_upload"
    DONE = "done"


@dataclass
class Chunk:
    id: int
    source_item_id: Any
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _ItemReport:
    item_id: Any
    title: str
    chars: int
    chunks: int = 0
    embedded: int = 0


class ContentIndexer:
    """Bulk (re)population of a Qdrant collection from a content source"""

    def __init__(self, settings, source: ContentSource,
                 embedder: Optional[EmbeddingGenerator] = None,
                 vector_store: Optional[VectorStore] = None,
                 chunker: Optional[TextChunker] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            settings: Settings with the registered content types
            source: Where items come from
            embedder / vector_store / chunker: built from settings when omitted
            sleep: Used for the pause after each new embedding
        """
        self.settings = settings
        self.source = source
        self._embedder = embedder or EmbeddingGenerator(settings)
        self._vector_store = vector_store or VectorStore(settings)
        self.chunker = chunker or TextChunker(chunk_size=settings.CHUNK_SIZE)
        self._sleep = sleep

        self.phase: Optional[IndexPhase] = None
        self.item_log: List[str] = []
        self._reports: Dict[Any, _ItemReport] = {}

    @property
    def embedder(self) -> EmbeddingGenerator:
        return self._embedder

    @property
    def vector_store(self) -> VectorStore:
        return self._vector_store

    def clear_cache(self) -> int:
        return self._embedder.clear_cache()

    def _set_phase(self, phase: IndexPhase, title: str):
        self.phase = phase
        logger.info(f"{'─'*60}")
        logger.info(f"{title}")
        logger.info(f"{'─'*60}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def index(self, recreate: bool = True, content_types: Optional[Sequence[str]] = None,
              limit: Optional[int] = None) -> Dict:
        """
        Run the complete indexing process

        Args:
            recreate: Drop and recreate the collection first
            content_types: Restrict the run to these registered types
            limit: Max items per content type

        Returns:
            Dict with success, chunk_count, elapsed_seconds, stats and the item log
        """
        run_start = time.time()
        self.item_log = []
        self._reports = {}
        self._embedder.reset_stats()

        logger.info(f"{'='*60}")
        logger.info(f"🚀 STARTING CONTENT INDEXING → {self.settings.COLLECTION_NAME}")
        logger.info(f"{'='*60}")

        # SETUP
        self._set_phase(IndexPhase.SETUP, "🗄️  STAGE 1: COLLECTION SETUP")
        if not self._setup_collection(recreate):
            return self._failure("Could not set up the Qdrant collection", run_start)

        # GATHER
        self._set_phase(IndexPhase.GATHER, "📖 STAGE 2: GATHERING CONTENT")
        items = self._gather_content(content_types, limit)
        logger.info(f"✅ Found {len(items)} content item(s)")
        if not items:
            return self._failure("No content found to index", run_start)

        # CHUNK
        self._set_phase(IndexPhase.CHUNK, "✂️  STAGE 3: CHUNKING")
        chunks = self._chunk_content(items)
        logger.info(f"✅ Created {len(chunks)} chunk(s)")

        # EMBED_AND_UPLOAD
        self._set_phase(IndexPhase.EMBED_AND_UPLOAD, "🧠 STAGE 4: EMBEDDING + UPLOAD")
        counters = self._embed_and_upload(chunks, skip_store_cache=recreate)

        self.phase = IndexPhase.DONE
        elapsed = round(time.time() - run_start, 2)
        stats = self._embedder.get_cache_stats()
        stats['vector_store_hits'] = counters['vector_store_hits']

        self.item_log.extend(
            f"indexed {r.item_id} '{r.title}': {r.chars} chars, "
            f"{r.chunks} chunk(s), {r.embedded} embedding(s)"
            for r in self._reports.values()
        )

        logger.info(f"{'='*60}")
        logger.info(f"✅ INDEXING COMPLETE in {elapsed:.2f}s")
        logger.info(f"{'='*60}")
        logger.info(f"   ✂️  Chunks:            {len(chunks)}")
        logger.info(f"   ⬆️  Uploaded:          {counters['uploaded']}")
        logger.info(f"   ❌ Failed points:     {counters['failed']}")
        logger.info(f"   ⏭️  Skipped chunks:    {counters['skipped']}")
        logger.info(f"   💾 Local cache hits:  {stats['cached']}")
        logger.info(f"   🗄️  Qdrant cache hits: {counters['vector_store_hits']}")
        logger.info(f"   🆕 New embeddings:    {stats['new']}")
        logger.info(f"   📊 Cache hit rate:    {stats['cache_hit_rate']}%")

        return {
            'success': True,
            'chunk_count': len(chunks),
            'elapsed_seconds': elapsed,
            'stats': stats,
            'uploaded': counters['uploaded'],
            'failed': counters['failed'],
            'skipped_chunks': counters['skipped'],
            'vector_store_hits': counters['vector_store_hits'],
            'items': list(self.item_log),
        }

    def _failure(self, message: str, run_start: float) -> Dict:
        logger.error(f"❌ {message}. Stopping.")
        self.phase = IndexPhase.DONE
        return {
            'success': False,
            'message': message,
            'chunk_count': 0,
            'elapsed_seconds': round(time.time() - run_start, 2),
            'stats': self._embedder.get_cache_stats(),
            'items': list(self.item_log),
        }

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _setup_collection(self, recreate: bool) -> bool:
        if recreate:
            logger.info("♻️  Recreating collection...")
            return self._vector_store.create_collection(delete_existing=True)

        if self._vector_store.collection_exists():
            logger.info("✅ Using existing collection")
            return True

        logger.info("📦 Collection missing, creating it...")
        return self._vector_store.create_collection(delete_existing=False)

    def _gather_content(self, content_types: Optional[Sequence[str]],
                        limit: Optional[int]) -> List[ContentItem]:
        items: List[ContentItem] = []

        def record_failure(type_name: str, error: Exception):
            self.item_log.append(f"skipped {type_name} item: extraction failed ({error})")

        for item in iter_content_items(self.source, self.settings, content_types, limit,
                                       on_error=record_failure):
            if len(item.text) < self.settings.MIN_CONTENT_LENGTH:
                reason = (f"too short ({len(item.text)} chars, "
                          f"minimum {self.settings.MIN_CONTENT_LENGTH})")
                logger.info(f"   ⏭️  Skipping {item.id}: {reason}")
                self.item_log.append(f"skipped {item.id}: {reason}")
                continue

            items.append(item)

        return items

    def _chunk_content(self, items: List[ContentItem]) -> List[Chunk]:
        """Chunk ids come from one counter for the whole run"""
        chunks: List[Chunk] = []
        chunk_id = 0

        for item in items:
            text = sanitize_text(item.text)
            pieces = self.chunker.chunk_text(text)
            for piece in pieces:
                chunks.append(Chunk(
                    id=chunk_id,
                    source_item_id=item.id,
                    text=piece,
                    metadata=dict(item.metadata),
                ))
                chunk_id += 1

            self._reports[item.id] = _ItemReport(
                item_id=item.id,
                title=str(item.metadata.get('title', '')),
                chars=len(text),
                chunks=len(pieces),
            )
            logger.debug(f"   ✓ {item.id}: {len(pieces)} chunk(s)")

        return chunks

    def _embed_and_upload(self, chunks: List[Chunk], skip_store_cache: bool) -> Dict[str, int]:
        """
        Embed every chunk and upload in batches.

        skip_store_cache is set right after recreating the collection: it is
        empty, so asking it for content hashes would only cost round trips.
        """
        counters = {'uploaded': 0, 'failed': 0, 'skipped': 0, 'vector_store_hits': 0}
        points: List[Dict] = []
        total = len(chunks)
        start_time = time.time()
        delay = self.settings.EMBED_DELAY_SECONDS

        for index, chunk in enumerate(chunks, 1):
            content_hash = compute_content_hash(chunk.text)

            existing = None if skip_store_cache else self._vector_store.search_by_content_hash(content_hash)
            vector = existing.get('vector') if existing else None

            if isinstance(vector, list) and vector:
                counters['vector_store_hits'] += 1
            else:
                cache_key = f"{chunk.source_item_id}_{chunk.id}"
                embedding = self._embedder.get_embedding(chunk.text, cache_key)

                if embedding is None:
                    logger.warning(f"⚠️ Failed to embed chunk {chunk.id} "
                                   f"of {chunk.source_item_id}, skipping...")
                    counters['skipped'] += 1
                    continue

                vector = embedding.vector
                if not embedding.was_cached and delay > 0:
                    self._sleep(delay)

            points.append(self._build_point(chunk, content_hash, vector))
            report = self._reports.get(chunk.source_item_id)
            if report is not None:
                report.embedded += 1

            if len(points) >= self.settings.BATCH_SIZE:
                self._flush(points, counters)
                points = []

            if index % PROGRESS_EVERY == 0 or index == total:
                self._log_progress(index, total, start_time, counters)

        if points:
            self._flush(points, counters)

        return counters

    @staticmethod
    def _build_point(chunk: Chunk, content_hash: str, vector: List[float]) -> Dict:
        payload = dict(chunk.metadata)
        payload.update({
            'text': chunk.text,
            'content_hash': content_hash,
            'source_item_id': chunk.source_item_id,
        })
        return {'id': chunk.id, 'vector': vector, 'payload': payload}

    def _flush(self, points: List[Dict], counters: Dict[str, int]):
        # No retry: a failed batch is counted and the run moves on
        if self._vector_store.upload_points(points):
            counters['uploaded'] += len(points)
        else:
            logger.warning(f"⚠️ Failed to upload batch of {len(points)} points to Qdrant!")
            counters['failed'] += len(points)

    def _log_progress(self, index: int, total: int, start_time: float, counters: Dict[str, int]):
        elapsed = time.time() - start_time
        eta = (total - index) * (elapsed / index) if index else 0
        stats = self._embedder.get_cache_stats()
        logger.info(
            f"⏳ Processing {index}/{total} (local: {stats['cached']}, "
            f"qdrant: {counters['vector_store_hits']}, new: {stats['new']}) "
            f"ETA: {time.strftime('%H:%M:%S', time.gmtime(eta))}"
        )
