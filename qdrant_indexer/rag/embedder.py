"""
Embedding Generator Module
==========================
Converts text into vectors through the OpenAI embeddings endpoint, with a
local content-addressed cache in front of it.

Cache layout: for every caller-supplied cache key two entries are kept,
"{prefix}{key}" holding the vector and "{prefix}{key}_hash" holding the
hash of the text that vector was computed from. A hash mismatch is a miss.
"""

import hashlib
import json
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from qdrant_indexer.core.exceptions import (
    RateLimitedError,
    SerializationError,
    TransportError,
)
from qdrant_indexer.core.sanitize import sanitize_text
from qdrant_indexer.rag.embedding_cache import EmbeddingCache, JsonFileEmbeddingCache

logger = logging.getLogger(__name__)

_RETRY_AFTER = re.compile(r"try again in ([\d.]+)\s*(ms|s)\b", re.IGNORECASE)


def compute_content_hash(text: str) -> str:
    """Stable hash of chunk text, used as cache validator and dedup key."""
    return hashlib.md5(text.encode("utf-8", errors="surrogatepass")).hexdigest()


def parse_retry_after(message: str, default: float = 10.0) -> float:
    """Extract the suggested wait (seconds, rounded up) from a rate-limit message."""
    match = _RETRY_AFTER.search(message or "")
    if not match:
        return default
    value = float(match.group(1))
    if match.group(2).lower() == "ms":
        value /= 1000.0
    return float(math.ceil(value))


@dataclass
class EmbeddingResult:
    vector: List[float]
    was_cached: bool


class EmbeddingGenerator:
    """Generates embeddings with a two-step lookup: local cache, then the provider"""

    MAX_ATTEMPTS = 3

    def __init__(self, settings, cache: Optional[EmbeddingCache] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize embedding generator

        Args:
            settings: Settings instance (API key, model, cache options)
            cache: Key/value store; defaults to a JSON file cache in CACHE_DIR
            session: requests session, injectable for tests
            sleep: Function used for rate-limit backoff
        """
        self.settings = settings
        self.model_name = settings.EMBEDDING_MODEL
        self.cache_prefix = settings.CACHE_PREFIX

        if cache is None and settings.ENABLE_CACHE:
            cache = JsonFileEmbeddingCache(settings.cache_dir)
        self.cache = cache

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        })
        self._sleep = sleep

        self.cached_count = 0
        self.new_count = 0

        logger.info(f"🤖 Embedding model: {self.model_name} "
                    f"(cache {'enabled' if settings.ENABLE_CACHE else 'disabled'})")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_embedding(self, text: str, cache_key: str) -> Optional[EmbeddingResult]:
        """
        Get the embedding for text, reusing the cached vector when the text
        under cache_key is unchanged.

        Returns:
            EmbeddingResult, or None when the provider call failed
        """
        if not self.settings.ENABLE_CACHE or self.cache is None:
            vector = self.generate_embedding(text)
            if vector is None:
                return None
            self.new_count += 1
            return EmbeddingResult(vector=vector, was_cached=False)

        content_hash = compute_content_hash(text)
        vector_key = f"{self.cache_prefix}{cache_key}"
        hash_key = f"{vector_key}_hash"

        cached_hash = self.cache.get(hash_key)
        cached_vector = self.cache.get(vector_key)

        if cached_hash == content_hash and cached_vector and isinstance(cached_vector, list):
            self.cached_count += 1
            return EmbeddingResult(vector=cached_vector, was_cached=True)

        # Cache miss or content changed
        vector = self.generate_embedding(text)
        if vector is None:
            return None

        self._store(vector_key, hash_key, vector, content_hash)

        self.new_count += 1
        return EmbeddingResult(vector=vector, was_cached=False)

    def _store(self, vector_key: str, hash_key: str, vector: List[float], content_hash: str):
        """
        Write vector then hash. The hash entry is cleared first, so a write
        that fails part way leaves a miss, never a new vector under an old hash.
        """
        try:
            self.cache.put(hash_key, None)
        except OSError as e:
            logger.warning(f"⚠️ Could not invalidate cache entry {hash_key}, keeping it: {e}")
            return

        try:
            self.cache.put(vector_key, vector)
            self.cache.put(hash_key, content_hash)
        except OSError as e:
            logger.warning(f"⚠️ Could not write cache entry {vector_key}: {e}")

    def generate_embedding(self, text: str) -> Optional[List[float]]:
        """Call the provider, retrying only on rate limits. None on failure."""
        clean_text = sanitize_text(text)

        retrying = Retrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(self.MAX_ATTEMPTS),
            wait=self._rate_limit_wait,
            sleep=self._sleep,
            before_sleep=self._log_rate_limit,
            retry_error_callback=self._give_up,
        )
        try:
            return retrying(self._request_embedding, clean_text)
        except TransportError as e:
            logger.error(f"❌ OpenAI embedding error: {e}")
            return None

    @staticmethod
    def _rate_limit_wait(retry_state: RetryCallState) -> float:
        return retry_state.outcome.exception().retry_after + 1

    def _log_rate_limit(self, retry_state: RetryCallState):
        logger.warning(
            f"⏳ Rate limit hit. Waiting {retry_state.next_action.sleep:.0f} seconds... "
            f"(retry {retry_state.attempt_number}/{self.MAX_ATTEMPTS - 1})"
        )

    def _give_up(self, retry_state: RetryCallState) -> None:
        logger.error(f"❌ Rate limit persists after {retry_state.attempt_number} attempts: "
                     f"{retry_state.outcome.exception()}")
        return None

    def clear_cache(self) -> int:
        """Delete every local cache entry under the configured prefix."""
        if self.cache is None:
            return 0
        deleted = self.cache.delete_prefix(self.cache_prefix)
        logger.info(f"🗑️  Cleared {deleted} cached embedding entries")
        return deleted

    def get_cache_stats(self) -> Dict:
        total = self.cached_count + self.new_count
        hit_rate = round(self.cached_count / total * 100, 2) if total > 0 else 0
        return {
            'cached': self.cached_count,
            'new': self.new_count,
            'total': total,
            'cache_hit_rate': hit_rate,
            'cache_hit_rate_percent': hit_rate,
        }

    def reset_stats(self):
        self.cached_count = 0
        self.new_count = 0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _request_embedding(self, text: str) -> List[float]:
        try:
            body = json.dumps({"model": self.model_name, "input": text},
                              ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Could not encode embedding request: {e}") from e

        try:
            response = self.session.post(
                self.settings.EMBEDDING_URL,
                data=body.encode("utf-8"),
                timeout=self.settings.EMBEDDING_TIMEOUT,
            )
        except requests.RequestException as e:
            raise TransportError(f"Embedding request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        error = payload.get("error") if isinstance(payload, dict) else None
        if error or not response.ok:
            if isinstance(error, dict):
                message = str(error.get("message") or error)
            elif error:
                message = str(error)
            else:
                message = f"HTTP {response.status_code}"
            if "rate limit" in message.lower():
                raise RateLimitedError(message, retry_after=parse_retry_after(message),
                                       status_code=response.status_code)
            raise TransportError(message, status_code=response.status_code)

        try:
            vector = payload["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise TransportError("Embedding response has no data[0].embedding") from e

        return [float(v) for v in vector]
