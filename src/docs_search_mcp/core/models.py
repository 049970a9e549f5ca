"""
Data model shared by the indexer, the index artifact and the query engine.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple

from docs_search_mcp.core.text import content_hash


@dataclass(frozen=True)
class Document:
    """Immutable unit of indexed content produced by a corpus loader."""

    id: str
    title: str
    body: str
    category: str = "General"
    version: Optional[str] = None  # None matches every version filter
    tags: FrozenSet[str] = field(default_factory=frozenset)
    last_modified: Optional[float] = None  # epoch seconds, used for recency

    @property
    def content_hash(self) -> str:
        return content_hash(self.title, self.body)


@dataclass(frozen=True)
class DocumentMeta:
    """Document metadata stored in the index artifact.

    The raw markdown body is not kept; ``text`` is its markup-free form, used
    to cut snippets around matched terms.
    """

    id: str
    title: str
    category: str
    version: Optional[str]
    tags: Tuple[str, ...]
    last_modified: Optional[float]
    content_hash: str
    length: int
    preview: str
    text: str = ""

    def matches_version(self, version_filter: Optional[str]) -> bool:
        if not version_filter or self.version is None:
            return True
        return self.version == version_filter

    def matches_category(self, category_filter: Optional[str]) -> bool:
        if not category_filter:
            return True
        return category_filter.lower() in self.category.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "version": self.version,
            "tags": list(self.tags),
            "last_modified": self.last_modified,
            "content_hash": self.content_hash,
            "length": self.length,
            "preview": self.preview,
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentMeta":
        return cls(
            id=data["id"],
            title=data["title"],
            category=data["category"],
            version=data.get("version"),
            tags=tuple(data.get("tags", ())),
            last_modified=data.get("last_modified"),
            content_hash=data["content_hash"],
            length=int(data.get("length", 0)),
            preview=data.get("preview", ""),
            text=data.get("text", ""),
        )


@dataclass(frozen=True)
class SearchOptions:
    """Per-query options."""

    limit: int = 10
    version_filter: Optional[str] = None
    category_filter: Optional[str] = None


@dataclass(frozen=True)
class RankedResult:
    """One entry of a ranked result list."""

    document_id: str
    score: float
    snippet: str
    matched_terms: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "score": self.score,
            "snippet": self.snippet,
            "matched_terms": list(self.matched_terms),
        }
