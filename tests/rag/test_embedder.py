"""
Test suite for EmbeddingGenerator.

Covers the local cache contract (hit, miss, content change, failed refresh),
rate-limit retries, request sanitation and statistics.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from qdrant_indexer.rag.embedder import (
    EmbeddingGenerator,
    compute_content_hash,
    parse_retry_after,
)
from qdrant_indexer.rag.embedding_cache import InMemoryEmbeddingCache


def embedding_body(vector):
    return {"data": [{"embedding": vector}]}


class FailingHashCache(InMemoryEmbeddingCache):
    """Raises OSError on writes to *_hash keys whose value matches fail_on."""

    def __init__(self):
        super().__init__()
        self.fail_on = lambda value: False

    def put(self, key, value):
        if key.endswith("_hash") and self.fail_on(value):
            raise OSError("disk full")
        super().put(key, value)


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_embedder(make_settings, session, sleeps):
    def _make(cache=None, **overrides):
        settings = make_settings(**overrides)
        return EmbeddingGenerator(
            settings,
            cache=cache if cache is not None else InMemoryEmbeddingCache(),
            session=session,
            sleep=sleeps.append,
        )
    return _make


class TestEmbeddingCache:

    def test_second_call_with_same_text_should_hit_cache(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data=embedding_body([0.1, 0.2]))
        embedder = make_embedder()

        first = embedder.get_embedding("Hello world", "12_0")
        second = embedder.get_embedding("Hello world", "12_0")

        assert first.was_cached is False
        assert second.was_cached is True
        assert second.vector == [0.1, 0.2]
        assert session.post.call_count == 1

    def test_changed_text_should_miss_and_overwrite(self, make_embedder, session, make_response) -> None:
        cache = InMemoryEmbeddingCache()
        session.post.side_effect = [
            make_response(json_data=embedding_body([0.1, 0.2])),
            make_response(json_data=embedding_body([0.9, 0.8])),
        ]
        embedder = make_embedder(cache=cache)

        embedder.get_embedding("Original text", "12_0")
        changed = embedder.get_embedding("Edited text", "12_0")

        assert changed.was_cached is False
        assert changed.vector == [0.9, 0.8]
        assert cache.get("qdrant_embedding_12_0") == [0.9, 0.8]
        assert cache.get("qdrant_embedding_12_0_hash") == compute_content_hash("Edited text")
        assert session.post.call_count == 2

    def test_failed_refresh_should_keep_stale_entry(self, make_embedder, session, make_response) -> None:
        cache = InMemoryEmbeddingCache()
        cache.put("qdrant_embedding_k", [0.5])
        cache.put("qdrant_embedding_k_hash", compute_content_hash("old text"))
        session.post.return_value = make_response(
            status_code=500, json_data={"error": {"message": "server exploded"}}
        )
        embedder = make_embedder(cache=cache)

        result = embedder.get_embedding("new text", "k")

        assert result is None
        assert cache.get("qdrant_embedding_k") == [0.5]
        assert cache.get("qdrant_embedding_k_hash") == compute_content_hash("old text")

    def test_failed_hash_invalidation_should_keep_old_pair(self, make_embedder, session, make_response) -> None:
        cache = FailingHashCache()
        session.post.side_effect = [
            make_response(json_data=embedding_body([1.0, 0.0])),
            make_response(json_data=embedding_body([0.0, 1.0])),
        ]
        embedder = make_embedder(cache=cache)
        embedder.get_embedding("text A", "k")
        cache.fail_on = lambda value: True

        changed = embedder.get_embedding("text B", "k")
        again = embedder.get_embedding("text A", "k")

        assert changed.vector == [0.0, 1.0]
        assert again.vector == [1.0, 0.0]
        assert again.was_cached is True

    def test_failed_hash_write_should_leave_a_miss(self, make_embedder, session, make_response) -> None:
        cache = FailingHashCache()
        session.post.side_effect = [
            make_response(json_data=embedding_body([1.0, 0.0])),
            make_response(json_data=embedding_body([0.0, 1.0])),
            make_response(json_data=embedding_body([1.0, 0.0])),
        ]
        embedder = make_embedder(cache=cache)
        embedder.get_embedding("text A", "k")
        cache.fail_on = lambda value: value is not None

        embedder.get_embedding("text B", "k")
        again = embedder.get_embedding("text A", "k")

        assert again.was_cached is False
        assert again.vector == [1.0, 0.0]
        assert session.post.call_count == 3

    def test_disabled_cache_should_always_call_provider(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data=embedding_body([0.3]))
        embedder = make_embedder(ENABLE_CACHE=False)

        first = embedder.get_embedding("same", "k")
        second = embedder.get_embedding("same", "k")

        assert first.was_cached is False
        assert second.was_cached is False
        assert session.post.call_count == 2
        assert embedder.get_cache_stats()["new"] == 2

    def test_clear_cache_should_delete_prefixed_entries(self, make_embedder, session, make_response) -> None:
        cache = InMemoryEmbeddingCache()
        cache.put("unrelated_key", "keep me")
        session.post.return_value = make_response(json_data=embedding_body([0.1]))
        embedder = make_embedder(cache=cache)
        embedder.get_embedding("one", "1_0")
        embedder.get_embedding("two", "1_1")

        deleted = embedder.clear_cache()

        assert deleted == 4
        assert cache.get("unrelated_key") == "keep me"
        assert cache.get("qdrant_embedding_1_0") is None


class TestProviderCalls:

    def test_request_should_carry_model_and_auth(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data=embedding_body([0.1]))
        embedder = make_embedder()

        embedder.generate_embedding("hello")

        args, kwargs = session.post.call_args
        assert args[0] == "https://api.openai.com/v1/embeddings"
        assert json.loads(kwargs["data"]) == {"model": "text-embedding-3-small", "input": "hello"}
        assert kwargs["timeout"] == 30
        session.headers.update.assert_called_once_with({
            "Authorization": "Bearer sk-test",
            "Content-Type": "application/json",
        })

    def test_control_characters_should_be_stripped_before_sending(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data=embedding_body([0.1]))
        embedder = make_embedder()

        embedder.generate_embedding("bad\x00text\udcff\twith tab")

        sent = json.loads(session.post.call_args.kwargs["data"])
        assert sent["input"] == "badtext\twith tab"

    def test_rate_limit_should_wait_and_retry(self, make_embedder, session, make_response, sleeps) -> None:
        limited = make_response(status_code=429, json_data={
            "error": {"message": "Rate limit reached for requests. Please try again in 2.5s."}
        })
        session.post.side_effect = [limited, make_response(json_data=embedding_body([0.7]))]
        embedder = make_embedder()

        vector = embedder.generate_embedding("text")

        assert vector == [0.7]
        assert sleeps == [4.0]  # ceil(2.5) + 1

    def test_rate_limit_should_give_up_after_three_attempts(self, make_embedder, session, make_response, sleeps) -> None:
        session.post.return_value = make_response(status_code=429, json_data={
            "error": {"message": "Rate limit exceeded"}
        })
        embedder = make_embedder()

        result = embedder.get_embedding("text", "k")

        assert result is None
        assert session.post.call_count == 3
        assert sleeps == [11.0, 11.0]

    def test_error_after_rate_limit_should_stop_retrying(self, make_embedder, session, make_response, sleeps) -> None:
        session.post.side_effect = [
            make_response(status_code=429, json_data={"error": {"message": "Rate limit exceeded"}}),
            make_response(status_code=400, json_data={"error": {"message": "Invalid input"}}),
        ]
        embedder = make_embedder()

        assert embedder.generate_embedding("text") is None
        assert session.post.call_count == 2
        assert sleeps == [11.0]

    def test_other_errors_should_not_be_retried(self, make_embedder, session, make_response, sleeps) -> None:
        session.post.return_value = make_response(status_code=400, json_data={
            "error": {"message": "Invalid input"}
        })
        embedder = make_embedder()

        assert embedder.generate_embedding("text") is None
        assert session.post.call_count == 1
        assert sleeps == []

    def test_connection_error_should_return_none(self, make_embedder, session) -> None:
        session.post.side_effect = requests.ConnectionError("refused")
        embedder = make_embedder()

        assert embedder.get_embedding("text", "k") is None
        assert embedder.get_cache_stats()["total"] == 0

    def test_malformed_response_should_return_none(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data={"data": []})
        embedder = make_embedder()

        assert embedder.generate_embedding("text") is None


class TestStatsAndHelpers:

    def test_stats_should_report_hit_rate(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data=embedding_body([0.1]))
        embedder = make_embedder()
        embedder.get_embedding("a", "1")
        embedder.get_embedding("a", "1")
        embedder.get_embedding("a", "1")
        embedder.get_embedding("b", "2")

        stats = embedder.get_cache_stats()

        assert stats["cached"] == 2
        assert stats["new"] == 2
        assert stats["total"] == 4
        assert stats["cache_hit_rate"] == 50.0
        assert stats["cache_hit_rate_percent"] == 50.0

    def test_reset_stats_should_zero_counters(self, make_embedder, session, make_response) -> None:
        session.post.return_value = make_response(json_data=embedding_body([0.1]))
        embedder = make_embedder()
        embedder.get_embedding("a", "1")

        embedder.reset_stats()

        assert embedder.get_cache_stats() == {
            "cached": 0, "new": 0, "total": 0,
            "cache_hit_rate": 0, "cache_hit_rate_percent": 0,
        }

    @pytest.mark.parametrize("message,expected", [
        ("Please try again in 6.2s.", 7.0),
        ("Please try again in 450ms.", 1.0),
        ("Rate limit reached", 10.0),
    ])
    def test_parse_retry_after(self, message, expected) -> None:
        assert parse_retry_after(message) == expected

    def test_content_hash_should_be_stable(self) -> None:
        assert compute_content_hash("abc") == "900150983cd24fb0d6963f7d28e17f72"
