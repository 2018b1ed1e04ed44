"""
config.py: centralized indexer settings
Uses pydantic-settings to read from .env, validate types, and provide defaults.

Usage:
    from qdrant_indexer.core.config import get_settings
    settings = get_settings()
    settings.register_content_type("post")
    print(settings.COLLECTION_NAME)
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import Field, PrivateAttr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qdrant_indexer.core.exceptions import ConfigurationError

DISTANCE_METRICS = {
    "cosine": "Cosine",
    "euclid": "Euclid",
    "dot": "Dot",
    "manhattan": "Manhattan",
}


@dataclass(frozen=True)
class DefaultFields:
    """Use the built-in extraction, adding the named fields (empty = all fields)."""
    fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CustomFunction:
    """Hand the raw item to a caller-supplied function returning its text."""
    extractor: Callable[[object], str]


ExtractionRule = Union[DefaultFields, CustomFunction]


class Settings(BaseSettings):
    """
    BaseSettings automatically reads from environment variables and .env files.
    Field(...) means required, construction fails without it.
    Field("default") means optional, falls back to the given value.

    Any validation problem is re-raised as ConfigurationError.
    """

    # Embedding provider (OpenAI)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key used for embeddings")
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small",
        description="Embedding model sent with every request"
    )
    EMBEDDING_URL: str = Field(
        default="https://api.openai.com/v1/embeddings",
        description="Embedding endpoint"
    )
    EMBEDDING_TIMEOUT: float = Field(default=30, gt=0)
    EMBED_DELAY_SECONDS: float = Field(
        default=0.1, ge=0,
        description="Pause after every freshly generated embedding"
    )

    # Vector store (Qdrant)
    QDRANT_URL: str = Field(..., description="Base URL of the Qdrant service")
    QDRANT_API_KEY: str = Field(..., description="Qdrant API key")
    COLLECTION_NAME: str = Field(..., description="Qdrant collection name")
    VECTOR_SIZE: int = Field(default=1536, gt=0)
    DISTANCE_METRIC: str = Field(default="Cosine")
    QDRANT_TIMEOUT: float = Field(default=60, gt=0)

    # Indexing
    BATCH_SIZE: int = Field(default=50, gt=0, description="Points per upload")
    CHUNK_SIZE: int = Field(default=3000, gt=0, description="Max characters per chunk")
    MIN_CONTENT_LENGTH: int = Field(
        default=100, ge=0,
        description="Items with less extracted text are skipped"
    )
    DEFAULT_LANGUAGE: str = Field(default="en")

    # Embedding cache
    ENABLE_CACHE: bool = Field(default=True)
    CACHE_PREFIX: str = Field(default="qdrant_embedding_")
    CACHE_DIR: str = Field(
        default="./data/embedding_cache",
        description="Directory holding the persistent embedding cache"
    )

    # Answer generation (Gemini)
    GEMINI_API_KEY: Optional[str] = Field(default=None)
    GEMINI_MODEL: str = Field(default="gemini-2.0-flash")

    # Logs
    LOG_DIR: str = Field(default="./data/logs")
    LOG_LEVEL: str = Field(default="INFO")

    # Pydantic settings config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    _content_types: Dict[str, ExtractionRule] = PrivateAttr(default_factory=dict)

    def __init__(self, **values):
        try:
            super().__init__(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid configuration: {problems}") from exc

    @field_validator("OPENAI_API_KEY", "QDRANT_URL", "QDRANT_API_KEY", "COLLECTION_NAME")
    @classmethod
    def _require_non_blank(cls, value: str, info) -> str:
        if value is None or not str(value).strip():
            raise ValueError(f"{info.field_name} is required")
        return str(value).strip()

    @field_validator("DISTANCE_METRIC")
    @classmethod
    def _normalize_distance(cls, value: str) -> str:
        canonical = DISTANCE_METRICS.get(str(value).strip().lower())
        if canonical is None:
            raise ValueError(
                f"unknown distance metric {value!r}, "
                f"expected one of {sorted(DISTANCE_METRICS.values())}"
            )
        return canonical

    @property
    def cache_dir(self) -> Path:
        return Path(self.CACHE_DIR)

    @property
    def log_dir(self) -> Path:
        return Path(self.LOG_DIR)

    def ensure_directories(self):
        """Create all necessary directories"""
        for d in [self.cache_dir, self.log_dir]:
            d.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Content-type registry
    # ------------------------------------------------------------------
    def register_content_type(self, type_name: str, fields: Sequence[str] = (),
                              extractor: Optional[Callable[[object], str]] = None) -> None:
        """
        Register a content type for indexing.

        Args:
            type_name: Content type as reported by the content source
            fields: Extra fields to extract (empty = let the source pick)
            extractor: Optional function raw_item -> text, replaces default extraction
        """
        if not type_name:
            raise ConfigurationError("Content type name is required")
        if extractor is not None:
            self._content_types[type_name] = CustomFunction(extractor)
        else:
            self._content_types[type_name] = DefaultFields(tuple(fields))

    def get_extraction_rule(self, type_name: str) -> Optional[ExtractionRule]:
        """None means the type is not indexed."""
        return self._content_types.get(type_name)

    def get_fields_for_content_type(self, type_name: str) -> List[str]:
        rule = self._content_types.get(type_name)
        if isinstance(rule, DefaultFields):
            return list(rule.fields)
        return []

    def get_extractor_for_content_type(self, type_name: str) -> Optional[Callable[[object], str]]:
        rule = self._content_types.get(type_name)
        if isinstance(rule, CustomFunction):
            return rule.extractor
        return None

    @property
    def content_types(self) -> List[str]:
        return list(self._content_types)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance, read from the environment on first use."""
    return Settings()
