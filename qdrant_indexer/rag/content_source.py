"""
Content Source Module
=====================
Where indexable items come from.

The indexer only talks to the ContentSource protocol: list the raw items of
a content type, turn one into text, describe it with citation metadata.
Two sources ship with the package:
  - RecordContentSource: CMS records (e.g. a JSON export of posts/pages)
  - DirectoryContentSource: .pdf / .txt / .md files in a folder
"""

import html
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence

from pypdf import PdfReader

from qdrant_indexer.core.config import CustomFunction, DefaultFields, ExtractionRule

logger = logging.getLogger(__name__)

MIN_FIELD_TEXT_LENGTH = 20
EXCERPT_WORDS = 30

_SCRIPT_STYLE = re.compile(r"<(script|style)\b.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAGS = re.compile(r"<[^>]+>")
_SHORTCODES = re.compile(r"\[/?[A-Za-z][\w-]*[^\]]*\]")
_WHITESPACE = re.compile(r"\s+")
_BLOCK_OPEN = re.compile(r"<!-- wp:(\S+) (\{)", re.DOTALL)


@dataclass(frozen=True)
class ContentItem:
    """One item read from a content source; never modified afterwards"""
    id: Any
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class ContentSource(Protocol):
    def list_items(self, type_name: str, limit: Optional[int] = None) -> Sequence[Any]: ...

    def item_id(self, raw_item: Any) -> Any: ...

    def extract_text(self, raw_item: Any, rule: DefaultFields) -> str: ...

    def extract_metadata(self, raw_item: Any) -> Dict[str, Any]: ...


def extract_item(source: ContentSource, rule: ExtractionRule, raw_item: Any) -> ContentItem:
    """Apply the registered extraction rule to one raw item."""
    if isinstance(rule, CustomFunction):
        text = rule.extractor(raw_item) or ""
    else:
        text = source.extract_text(raw_item, rule)
    return ContentItem(
        id=source.item_id(raw_item),
        text=text,
        metadata=dict(source.extract_metadata(raw_item)),
    )


def iter_content_items(source: ContentSource, settings,
                       content_types: Optional[Sequence[str]] = None,
                       limit: Optional[int] = None,
                       on_error: Optional[Callable[[str, Exception], None]] = None,
                       ) -> Iterator[ContentItem]:
    """
    Yield ContentItems for every registered content type.

    Args:
        source: Content source to read from
        settings: Settings holding the content-type registry
        content_types: Restrict to these types (default: all registered)
        limit: Max raw items per type
        on_error: Called with (type_name, error) when an item fails to
            extract; the item is skipped either way

    Unregistered types are not indexed. A custom extractor wins over the
    default extraction.
    """
    type_names = list(content_types) if content_types else settings.content_types

    for type_name in type_names:
        rule = settings.get_extraction_rule(type_name)
        if rule is None:
            logger.warning(f"⚠️ Content type '{type_name}' is not registered, skipping")
            continue

        raw_items = source.list_items(type_name, limit)
        logger.info(f"   - Gathering {type_name}: {len(raw_items)} item(s)")

        for raw_item in raw_items:
            try:
                item = extract_item(source, rule, raw_item)
            except Exception as e:
                logger.error(f"❌ Failed to extract {type_name} item: {e}")
                if on_error is not None:
                    on_error(type_name, e)
                continue
            yield item


# ----------------------------------------------------------------------
# Text helpers
# ----------------------------------------------------------------------
def strip_tags(value: str) -> str:
    value = _SCRIPT_STYLE.sub(" ", value)
    return html.unescape(_TAGS.sub(" ", value)).strip()


def clean_html(content: str) -> str:
    """Remove shortcodes and markup, collapse whitespace"""
    content = _SHORTCODES.sub(" ", content)
    content = strip_tags(content)
    return _WHITESPACE.sub(" ", content).strip()


def collect_text(value: Any, output: List[str]) -> None:
    """
    Recursively gather human text from nested lists/dicts.

    Keys starting with '_' are private and skipped; strings shorter than
    MIN_FIELD_TEXT_LENGTH after tag stripping are treated as noise.
    """
    if isinstance(value, dict):
        for key, inner in value.items():
            if isinstance(key, str) and key.startswith('_'):
                continue
            collect_text(inner, output)
    elif isinstance(value, (list, tuple)):
        for inner in value:
            collect_text(inner, output)
    elif isinstance(value, str):
        cleaned = strip_tags(value)
        if len(cleaned) > MIN_FIELD_TEXT_LENGTH:
            output.append(cleaned)


def extract_block_text(content: str) -> str:
    """Text from the JSON attributes of block comments (<!-- wp:name {...} -->)"""
    decoder = json.JSONDecoder()
    extracted: List[str] = []
    offset = 0

    while True:
        match = _BLOCK_OPEN.search(content, offset)
        if not match:
            break
        start = match.start(2)
        try:
            data, end = decoder.raw_decode(content, start)
        except ValueError:
            offset = start + 1
            continue
        collect_text(data, extracted)
        offset = end

    return "\n\n".join(extracted)


# ----------------------------------------------------------------------
# CMS records
# ----------------------------------------------------------------------
class RecordContentSource:
    """
    Content source over CMS records.

    Record shape (only id and type are mandatory):
        {"id": 12, "type": "post", "title": "...", "content": "<p>...</p>",
         "excerpt": "...", "url": "https://...", "language": "en",
         "fields": {"custom_field": ...}, "terms": {"Category": ["News"]}}
    """

    def __init__(self, records: Iterable[Dict[str, Any]], default_language: str = "en"):
        self.records = list(records)
        self.default_language = default_language
        logger.info(f"📚 Record source with {len(self.records)} record(s)")

    @classmethod
    def from_json_file(cls, path, default_language: str = "en") -> "RecordContentSource":
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get('items', [])
        return cls(data, default_language=default_language)

    def list_items(self, type_name: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        items = [r for r in self.records if r.get('type') == type_name]
        return items[:limit] if limit else items

    def item_id(self, raw_item: Dict[str, Any]) -> Any:
        return raw_item['id']

    def extract_text(self, raw_item: Dict[str, Any], rule: DefaultFields) -> str:
        parts: List[str] = []
        content = raw_item.get('content') or ""

        parts.append(raw_item.get('title') or "")
        if content:
            parts.append(clean_html(content))
        if raw_item.get('excerpt'):
            parts.append(raw_item['excerpt'])

        blocks = extract_block_text(content)
        if blocks:
            parts.append(blocks)

        fields = raw_item.get('fields') or {}
        if rule.fields:
            parts.append(self._extract_named_fields(fields, rule.fields))
        else:
            found: List[str] = []
            collect_text(fields, found)
            parts.append("\n\n".join(found))

        for label, terms in (raw_item.get('terms') or {}).items():
            names = [str(t) for t in (terms or []) if t]
            if names:
                parts.append(f"{label}: {', '.join(names)}")

        return "\n\n".join(p for p in parts if p)

    @staticmethod
    def _extract_named_fields(fields: Dict[str, Any], names: Sequence[str]) -> str:
        parts: List[str] = []
        for name in names:
            value = fields.get(name)
            if not value:
                continue
            if isinstance(value, str):
                parts.append(strip_tags(value))
            else:
                collect_text(value, parts)
        return "\n\n".join(p for p in parts if p)

    def extract_metadata(self, raw_item: Dict[str, Any]) -> Dict[str, Any]:
        excerpt = raw_item.get('excerpt')
        if not excerpt:
            words = clean_html(raw_item.get('content') or "").split()
            excerpt = " ".join(words[:EXCERPT_WORDS])
            if len(words) > EXCERPT_WORDS:
                excerpt += "..."
        return {
            'title': raw_item.get('title') or "",
            'url': raw_item.get('url') or "",
            'type': raw_item.get('type') or "",
            'excerpt': excerpt,
            'language': raw_item.get('language') or self.default_language,
        }


# ----------------------------------------------------------------------
# Files on disk
# ----------------------------------------------------------------------
class DirectoryContentSource:
    """Content source over a folder; the content type is the file suffix"""

    SUPPORTED_TYPES = ("pdf", "txt", "md")

    def __init__(self, data_folder, default_language: str = "en"):
        self.data_folder = Path(data_folder)
        self.default_language = default_language
        logger.info(f"📁 Directory source: {self.data_folder}")

    def list_items(self, type_name: str, limit: Optional[int] = None) -> List[Path]:
        if type_name not in self.SUPPORTED_TYPES:
            logger.warning(f"⚠️ Unsupported file type: {type_name}")
            return []
        files = sorted(p for p in self.data_folder.rglob(f"*.{type_name}") if p.is_file())
        return files[:limit] if limit else files

    def item_id(self, raw_item: Path) -> str:
        return raw_item.relative_to(self.data_folder).as_posix()

    def extract_text(self, raw_item: Path, rule: DefaultFields) -> str:
        if raw_item.suffix.lower() == ".pdf":
            return self._load_pdf(raw_item)
        return raw_item.read_text(encoding="utf-8", errors="replace").strip()

    @staticmethod
    def _load_pdf(pdf_path: Path) -> str:
        logger.info(f"📄 Loading: {pdf_path.name}")
        reader = PdfReader(pdf_path)
        pages_text = []
        for page_num, page in enumerate(reader.pages, 1):
            text = page.extract_text()
            if text and text.strip():
                pages_text.append(text.strip())
                logger.debug(f"   ✓ Page {page_num}: {len(text)} chars")
        return "\n\n".join(pages_text)

    def extract_metadata(self, raw_item: Path) -> Dict[str, Any]:
        return {
            'title': raw_item.stem.replace('_', ' ').replace('-', ' '),
            'url': raw_item.resolve().as_uri(),
            'type': raw_item.suffix.lstrip('.').lower(),
            'language': self.default_language,
        }
