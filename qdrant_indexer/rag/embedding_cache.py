"""
Embedding Cache Module
======================
Key/value stores behind the embedder's local cache.

The embedder only needs three verbs: get(key), put(key, value) and
delete_prefix(prefix). Entries never expire; they are invalidated solely by
a content-hash mismatch, which the embedder checks.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class EmbeddingCache(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...


class InMemoryEmbeddingCache:
    """Dict-backed cache, lives as long as the process"""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._data if k.startswith(prefix)]
        for k in doomed:
            del self._data[k]
        return len(doomed)

    def __len__(self):
        return len(self._data)


class JsonFileEmbeddingCache:
    """
    Persistent cache storing one JSON file per key.

    Files are read only when their key is requested, so a large cache costs
    nothing until it is used.
    """

    SUFFIX = ".json"

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"💾 Embedding cache directory: {self.directory}")

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}{self.SUFFIX}"

    def get(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Unreadable cache entry {path.name}: {e}")
            return None

    def put(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(value, f)
        tmp_path.replace(path)

    def delete_prefix(self, prefix: str) -> int:
        safe_prefix = _UNSAFE_KEY_CHARS.sub('_', prefix)
        deleted = 0
        for path in self.directory.glob(f"{safe_prefix}*{self.SUFFIX}"):
            try:
                path.unlink()
                deleted += 1
            except FileNotFoundError:
                continue
        logger.info(f"🗑️  Deleted {deleted} cache file(s) with prefix '{prefix}'")
        return deleted
