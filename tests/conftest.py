"""
Shared test fixtures.

Provides: isolated environment, settings factory, mocked HTTP responses,
an in-memory stand-in for the Qdrant collection.
"""

import math
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from qdrant_indexer.core.config import Settings

SETTINGS_ENV_VARS = [
    "OPENAI_API_KEY", "QDRANT_URL", "QDRANT_API_KEY", "COLLECTION_NAME",
    "VECTOR_SIZE", "DISTANCE_METRIC", "BATCH_SIZE", "CHUNK_SIZE", "ENABLE_CACHE",
    "CACHE_PREFIX", "CACHE_DIR", "EMBED_DELAY_SECONDS", "MIN_CONTENT_LENGTH",
    "GEMINI_API_KEY", "LOG_DIR", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """No real credentials or .env file may leak into a test."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def make_settings(tmp_path):
    """Factory for valid Settings; keyword arguments override fields."""
    def _make(**overrides) -> Settings:
        values = {
            "OPENAI_API_KEY": "sk-test",
            "QDRANT_URL": "https://qdrant.test:6333",
            "QDRANT_API_KEY": "qdrant-test",
            "COLLECTION_NAME": "test_collection",
            "CACHE_DIR": str(tmp_path / "cache"),
            "EMBED_DELAY_SECONDS": 0,
        }
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def make_response():
    """Factory for a requests.Response look-alike."""
    def _make(status_code: int = 200, json_data=None, text: str = ""):
        response = MagicMock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 300
        response.text = text
        if json_data is None:
            response.json.side_effect = ValueError("no json")
        else:
            response.json.return_value = json_data
        return response
    return _make


class FakeVectorStore:
    """In-memory collection honouring the VectorStore contract."""

    def __init__(self):
        self.points: Dict[int, Dict] = {}
        self.exists = False
        self.upload_calls: List[List[Dict]] = []
        self.hash_lookups: List[str] = []
        self.fail_uploads = False

    def create_collection(self, delete_existing: bool = True) -> bool:
        if delete_existing:
            self.points = {}
        self.exists = True
        return True

    def delete_collection(self) -> bool:
        self.points = {}
        self.exists = False
        return True

    def collection_exists(self) -> bool:
        return self.exists

    def upload_points(self, points: List[Dict]) -> bool:
        self.upload_calls.append(list(points))
        if self.fail_uploads:
            return False
        for point in points:
            self.points[point["id"]] = point
        return True

    def search_by_content_hash(self, content_hash: str) -> Optional[Dict]:
        self.hash_lookups.append(content_hash)
        for point in self.points.values():
            if point["payload"].get("content_hash") == content_hash:
                return point
        return None

    def search(self, vector, limit=5, score_threshold=0.5, with_payload=True, query_filter=None):
        def cosine(a, b):
            dot = sum(x * y for x, y in zip(a, b))
            norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
            return dot / norm if norm else 0.0

        results = []
        for point in self.points.values():
            if query_filter:
                wanted = query_filter["must"][0]["match"]["value"]
                if point["payload"].get("language") != wanted:
                    continue
            score = cosine(vector, point["vector"])
            if score >= score_threshold:
                results.append({"id": point["id"], "score": score, "payload": point["payload"]})
        results.sort(key=lambda r: r["score"], reverse=True)
        return results[:limit]

    @staticmethod
    def build_language_filter(language: str) -> Dict:
        return {"must": [{"key": "language", "match": {"value": language}}]}


@pytest.fixture
def fake_vector_store():
    return FakeVectorStore()
