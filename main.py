"""
Main Entry Point - Qdrant Content Indexer
==========================================
Commands:
  sync         Content → Chunks → Embeddings → Qdrant
  stats        Show collection statistics
  clear-cache  Delete the local embedding cache
  ask          Answer a question from the indexed content

Settings come from the environment / .env (see qdrant_indexer.core.config).
Run: python main.py sync --data-dir ./data/docs
"""

import argparse
import sys

from qdrant_indexer.core.config import get_settings
from qdrant_indexer.core.exceptions import ConfigurationError
from qdrant_indexer.core.logger import get_logger
from qdrant_indexer.query_engine import RAGQueryEngine
from qdrant_indexer.rag.content_source import DirectoryContentSource, RecordContentSource
from qdrant_indexer.rag.embedder import EmbeddingGenerator
from qdrant_indexer.rag.indexer import ContentIndexer
from qdrant_indexer.rag.vector_store import VectorStore
from qdrant_indexer.services.generator import GeminiChatSession


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Index content into Qdrant and query it")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Index content into the collection")
    source = sync.add_mutually_exclusive_group(required=True)
    source.add_argument("--data-dir", help="Folder with .pdf/.txt/.md files")
    source.add_argument("--records", help="JSON file with exported CMS records")
    sync.add_argument("--type", action="append", dest="types",
                      help="Content type to index (repeatable, default: all)")
    sync.add_argument("--limit", type=int, default=None, help="Max items per type")
    sync.add_argument("--no-recreate", action="store_true",
                      help="Keep the existing collection and reuse its vectors")

    sub.add_parser("stats", help="Show collection statistics")
    sub.add_parser("clear-cache", help="Delete cached embeddings")

    ask = sub.add_parser("ask", help="Ask a question")
    ask.add_argument("question")
    ask.add_argument("--limit", type=int, default=5)
    ask.add_argument("--threshold", type=float, default=0.5)
    ask.add_argument("--language", default=None)

    return parser


def run_sync(args, settings, logger) -> int:
    if args.data_dir:
        source = DirectoryContentSource(args.data_dir, default_language=settings.DEFAULT_LANGUAGE)
        type_names = args.types or list(DirectoryContentSource.SUPPORTED_TYPES)
    else:
        source = RecordContentSource.from_json_file(args.records,
                                                    default_language=settings.DEFAULT_LANGUAGE)
        type_names = args.types or sorted({r.get('type') for r in source.records if r.get('type')})

    for type_name in type_names:
        settings.register_content_type(type_name)

    print("\n" + "="*70)
    print("📚 QDRANT CONTENT SYNC")
    print("="*70)
    print(f"📦 Collection:    {settings.COLLECTION_NAME}")
    print(f"🗂️  Types:         {', '.join(type_names)}")
    print(f"✂️  Chunk size:    {settings.CHUNK_SIZE}")
    print(f"♻️  Recreate:      {'No' if args.no_recreate else 'Yes'}")
    print("="*70 + "\n")

    indexer = ContentIndexer(settings, source)
    results = indexer.index(recreate=not args.no_recreate, limit=args.limit)

    if not results['success']:
        print(f"\n❌ Sync failed: {results.get('message')}\n")
        logger.error("Sync failed: %s", results.get('message'))
        return 1

    stats = results['stats']
    print("\n" + "="*70)
    print("📊 SYNC RESULTS")
    print("="*70)
    for line in results['items']:
        print(f"   • {line}")
    print(f"\n   ✂️  Chunks:               {results['chunk_count']}")
    print(f"   ⬆️  Uploaded:             {results['uploaded']}")
    print(f"   ❌ Failed:               {results['failed']}")
    print(f"   ⏭️  Skipped chunks:       {results['skipped_chunks']}")
    print(f"   💾 Local cache hits:     {stats['cached']}")
    print(f"   🗄️  Qdrant cache hits:    {results['vector_store_hits']}")
    print(f"   🆕 New embeddings:       {stats['new']}")
    print(f"   📊 Cache hit rate:       {stats['cache_hit_rate']}%")
    print(f"   ⏱️  Time elapsed:         {results['elapsed_seconds']:.2f}s")
    print("="*70 + "\n")
    return 0


def run_stats(settings) -> int:
    info = VectorStore(settings).get_collection_info()
    if not info:
        print("❌ Could not retrieve collection info. Is Qdrant running?")
        return 1
    print(f"🗄️  Qdrant Collection: {settings.COLLECTION_NAME}")
    print(f"   Points:  {info.get('points_count', 'N/A')}")
    print(f"   Vectors: {info.get('vectors_count', 'N/A')}")
    print(f"   Status:  {info.get('status', 'N/A')}")
    return 0


def run_clear_cache(settings) -> int:
    deleted = EmbeddingGenerator(settings).clear_cache()
    print(f"✅ Cleared {deleted} cached embedding entries.")
    return 0


def run_ask(args, settings) -> int:
    if not settings.GEMINI_API_KEY:
        print("❌ GEMINI_API_KEY is not set")
        return 1

    engine = RAGQueryEngine(
        settings,
        llm=GeminiChatSession(settings.GEMINI_API_KEY, settings.GEMINI_MODEL),
    )
    result = engine.query(
        args.question,
        search_limit=args.limit,
        score_threshold=args.threshold,
        language_filter=args.language,
    )
    if not result['success']:
        print(f"❌ Error: {result['error']}")
        return 1

    print(f"\n{result['answer']}\n")
    if result['sources']:
        print("Sources:")
        for source in result['sources']:
            print(f"  - {source['title']}: {source['url']}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 2

    settings.ensure_directories()
    logger = get_logger(__name__, log_dir=settings.LOG_DIR, level=settings.LOG_LEVEL)

    try:
        if args.command == "sync":
            return run_sync(args, settings, logger)
        if args.command == "stats":
            return run_stats(settings)
        if args.command == "clear-cache":
            return run_clear_cache(settings)
        return run_ask(args, settings)
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user\n")
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
