"""
Text Normalization Module

Shared normalization and tokenization used by both the indexer and the query
engine. Index-time and query-time text must go through the same functions
here, otherwise documents become unreachable for terms they contain.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

# Markup patterns (order matters: fences before inline code)
_CODE_FENCE_RE = re.compile(r"(```|~~~).*?(\1|$)", re.DOTALL)
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_INLINE_CODE_RE = re.compile(r"`([^`]*)`")
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*{1,3}|_{2,3}|~~)")
_WHITESPACE_RE = re.compile(r"\s+")

# Alphanumeric runs; underscores split identifiers into separate terms
_WORD_RE = re.compile(r"[^\W_]+")

MIN_TERM_LENGTH = 2

STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "but",
        "by",
        "for",
        "from",
        "has",
        "have",
        "if",
        "in",
        "into",
        "is",
        "it",
        "its",
        "of",
        "on",
        "or",
        "so",
        "that",
        "the",
        "their",
        "then",
        "there",
        "these",
        "this",
        "to",
        "was",
        "were",
        "will",
        "with",
    }
)


@dataclass(frozen=True)
class Token:
    """A normalized term and its word position in the source text."""

    term: str
    position: int


def strip_markup(text: str) -> str:
    """Remove markdown/HTML markup and code fences, keeping readable text."""
    if not text:
        return ""
    text = _CODE_FENCE_RE.sub(" ", text)
    text = _IMAGE_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _INLINE_CODE_RE.sub(r"\1", text)
    text = _HTML_TAG_RE.sub(" ", text)
    text = _HEADING_RE.sub("", text)
    text = _LIST_MARKER_RE.sub("", text)
    text = _EMPHASIS_RE.sub("", text)
    return text


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip markup and code fences, collapse whitespace."""
    if not text:
        return ""
    return collapse_whitespace(strip_markup(text)).lower()


def tokenize(text: Optional[str]) -> List[Token]:
    """
    Normalize and split text into indexable terms.

    Positions count every word, including dropped stopwords, so adjacency
    between the surviving terms reflects the source text.
    """
    tokens: List[Token] = []
    for position, match in enumerate(_WORD_RE.finditer(normalize_text(text))):
        term = match.group(0)
        if len(term) < MIN_TERM_LENGTH or term in STOPWORDS:
            continue
        tokens.append(Token(term=term, position=position))
    return tokens


def query_tokens(text: Optional[str]) -> List[Token]:
    """First occurrence of each query term, with its position in the query."""
    seen = set()
    tokens: List[Token] = []
    for token in tokenize(text):
        if token.term not in seen:
            seen.add(token.term)
            tokens.append(token)
    return tokens


def query_terms(text: Optional[str]) -> List[str]:
    """Unique terms of a query, in first-occurrence order."""
    return [token.term for token in query_tokens(text)]


def last_word(text: Optional[str]) -> str:
    """Final word of normalized text, stopwords and short words included."""
    words = _WORD_RE.findall(normalize_text(text))
    return words[-1] if words else ""


def content_hash(title: Optional[str], body: Optional[str]) -> str:
    """
    Deterministic fingerprint of a document's normalized title and body.

    Hashing happens after normalization so that whitespace-only or
    markup-only edits keep the same hash.
    """
    payload = f"{normalize_text(title)}\x1f{normalize_text(body)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def plain_text(body: Optional[str]) -> str:
    """Readable, markup-free document body on one line."""
    return collapse_whitespace(strip_markup(body or ""))


def make_preview(body: Optional[str], max_chars: int = 200) -> str:
    """Readable, markup-free prefix of a document body."""
    plain = plain_text(body)
    if len(plain) <= max_chars:
        return plain
    return plain[:max_chars].rstrip() + "..."


def make_snippet(text: str, terms: Sequence[str], width: int = 160) -> str:
    """Cut a window of plain document text around the first matched term."""
    if not text:
        return ""
    if len(text) <= width:
        return text

    lowered = text.lower()
    hit = -1
    for term in terms:
        match = re.search(rf"\b{re.escape(term)}", lowered)
        if match and (hit < 0 or match.start() < hit):
            hit = match.start()

    if hit < 0:
        return text[:width].rstrip() + "..."

    start = max(0, hit - width // 3)
    end = min(len(text), start + width)
    start = max(0, end - width)
    snippet = text[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def contains_phrase(
    positions: Iterable[Sequence[int]], offsets: Optional[Sequence[int]] = None
) -> bool:
    """
    True if the terms occur in a document with the same spacing as in the query.

    ``positions`` holds, per query term in query order, the positions of that
    term in a document. ``offsets`` are the query positions of the same terms
    (consecutive when omitted), so stopwords dropped from the query still
    count towards the spacing.
    """
    lists = [set(p) for p in positions]
    if len(lists) < 2 or any(not p for p in lists):
        return False
    if offsets is None:
        offsets = range(len(lists))
    offsets = list(offsets)
    if len(offsets) != len(lists):
        raise ValueError("One offset per term is required")
    gaps = [offset - offsets[0] for offset in offsets]
    for start in lists[0]:
        if all((start + gaps[i]) in lists[i] for i in range(1, len(lists))):
            return True
    return False
