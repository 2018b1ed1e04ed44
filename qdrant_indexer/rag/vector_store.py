"""
Vector Store Module
===================
Thin client for one named Qdrant collection, spoken over the REST API.

Public methods never raise on transport problems: they log the cause and
return False / None / [] so the caller decides what to do.
"""

import json
import logging
import time
from typing import Dict, List, Optional

import requests

from qdrant_indexer.core.exceptions import SerializationError, TransportError
from qdrant_indexer.core.sanitize import sanitize_payload

logger = logging.getLogger(__name__)


class VectorStore:
    """Stores and retrieves points in a Qdrant collection"""

    CONTENT_HASH_FIELD = "content_hash"

    def __init__(self, settings, session: Optional[requests.Session] = None):
        """
        Initialize the Qdrant client

        Args:
            settings: Settings instance (URL, API key, collection, vector params)
            session: requests session, injectable for tests
        """
        self.settings = settings
        self.base_url = settings.QDRANT_URL.rstrip('/')
        self.collection_name = settings.COLLECTION_NAME
        self.timeout = settings.QDRANT_TIMEOUT

        self.session = session or requests.Session()
        self.session.headers.update({
            "api-key": settings.QDRANT_API_KEY,
            "Content-Type": "application/json",
        })

        logger.info(f"🗄️  Vector Store config:")
        logger.info(f"   🌐 URL: {self.base_url}")
        logger.info(f"   📦 Collection: {self.collection_name}")

    @property
    def collection_path(self) -> str:
        return f"/collections/{self.collection_name}"

    # ------------------------------------------------------------------
    # Collection management
    # ------------------------------------------------------------------
    def create_collection(self, delete_existing: bool = True) -> bool:
        """Create the collection (optionally dropping it first) plus the content_hash index"""
        if delete_existing:
            self.delete_collection()

        logger.info(f"⏳ Creating collection: {self.collection_name}")
        try:
            self._request('PUT', self.collection_path, {
                'vectors': {
                    'size': self.settings.VECTOR_SIZE,
                    'distance': self.settings.DISTANCE_METRIC,
                },
            })
        except TransportError as e:
            logger.error(f"❌ Failed to create collection {self.collection_name}: {e}")
            return False

        # Makes the cache lookup by content hash an indexed query
        self._create_payload_index(self.CONTENT_HASH_FIELD, 'keyword')

        logger.info(f"✅ Collection ready: {self.collection_name} "
                    f"(size={self.settings.VECTOR_SIZE}, distance={self.settings.DISTANCE_METRIC})")
        return True

    def _create_payload_index(self, field_name: str, schema_type: str) -> bool:
        try:
            self._request('PUT', f"{self.collection_path}/index", {
                'field_name': field_name,
                'field_schema': schema_type,
            })
        except TransportError as e:
            logger.warning(f"⚠️ Could not create payload index on {field_name}: {e}")
            return False
        return True

    def delete_collection(self) -> bool:
        try:
            self._request('DELETE', self.collection_path)
        except TransportError as e:
            logger.warning(f"⚠️ Could not delete collection {self.collection_name}: {e}")
            return False
        logger.info(f"🗑️  Deleted collection: {self.collection_name}")
        return True

    def collection_exists(self) -> bool:
        try:
            self._request('GET', self.collection_path)
        except TransportError as e:
            if e.status_code != 404:
                logger.warning(f"⚠️ Could not check collection {self.collection_name}: {e}")
            return False
        return True

    def get_collection_info(self) -> Optional[Dict]:
        try:
            body = self._request('GET', self.collection_path)
        except TransportError as e:
            logger.error(f"❌ Could not fetch collection info: {e}")
            return None
        return body.get('result')

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------
    def upload_points(self, points: List[Dict]) -> bool:
        """Upsert a batch of points. Any failure fails the whole batch."""
        if not points:
            return True

        start_time = time.time()
        try:
            self._request('PUT', f"{self.collection_path}/points", {'points': points})
        except TransportError as e:
            logger.error(f"❌ Failed to upload batch of {len(points)} points: {e}")
            return False

        elapsed = time.time() - start_time
        logger.info(f"   ✅ Uploaded {len(points)} points in {elapsed:.2f}s")
        return True

    def search(self, vector: List[float], limit: int = 5, score_threshold: float = 0.5,
               with_payload: bool = True, query_filter: Optional[Dict] = None) -> List[Dict]:
        """
        Similarity search

        Returns:
            Results ordered by descending score, each with score >= score_threshold
        """
        body = {
            'vector': vector,
            'limit': limit,
            'score_threshold': score_threshold,
            'with_payload': with_payload,
        }
        if query_filter:
            body['filter'] = query_filter

        logger.info(f"🔍 Searching for top {limit} results (threshold {score_threshold})...")
        start_time = time.time()
        try:
            response = self._request('POST', f"{self.collection_path}/points/search", body)
        except TransportError as e:
            logger.error(f"❌ Qdrant search error: {e}")
            return []

        results = [
            r for r in (response.get('result') or [])
            if r.get('score', 0.0) >= score_threshold
        ]
        results.sort(key=lambda r: r.get('score', 0.0), reverse=True)

        elapsed = time.time() - start_time
        logger.info(f"✅ Search returned {len(results)} result(s) in {elapsed:.4f}s")
        return results

    def search_by_content_hash(self, content_hash: str) -> Optional[Dict]:
        """Exact-match lookup of a point (with its vector) by payload content_hash"""
        try:
            response = self._request('POST', f"{self.collection_path}/points/scroll", {
                'filter': {
                    'must': [
                        {'key': self.CONTENT_HASH_FIELD, 'match': {'value': content_hash}},
                    ]
                },
                'limit': 1,
                'with_payload': True,
                'with_vector': True,
            })
        except TransportError as e:
            logger.warning(f"⚠️ Content hash lookup failed: {e}")
            return None

        points = (response.get('result') or {}).get('points') or []
        return points[0] if points else None

    @staticmethod
    def build_language_filter(language: str) -> Dict:
        return {'must': [{'key': 'language', 'match': {'value': language}}]}

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _request(self, method: str, endpoint: str, body: Optional[Dict] = None) -> Dict:
        """
        Send one request to Qdrant.

        Raises:
            SerializationError: body could not be encoded
            TransportError: connection problem, timeout or non-2xx status
        """
        url = f"{self.base_url}{endpoint}"
        data = None

        if body is not None:
            try:
                data = json.dumps(sanitize_payload(body), allow_nan=False).encode('utf-8')
            except (TypeError, ValueError) as e:
                logger.error(f"❌ Qdrant: JSON encoding failed - {e}")
                raise SerializationError(f"JSON encoding failed: {e}") from e

        try:
            response = self.session.request(method, url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"{method} {endpoint} failed: {e}") from e

        if not response.ok:
            raise TransportError(
                f"{method} {endpoint} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            parsed = response.json()
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
