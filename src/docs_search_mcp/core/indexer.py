"""
Indexer Module

Turns a batch of documents into an index artifact: keyword postings over
the title, body, category and tags of every document, and one embedding
per document with a non-empty body.
Embeddings come from the cache when the content hash and model version
match, and are computed (and cached immediately) otherwise. When the model
is unavailable the affected documents are indexed for keyword search only.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from docs_search_mcp.core.artifact import IndexArtifact
from docs_search_mcp.core.cache import EmbeddingCache
from docs_search_mcp.core.embedder import EmbeddingModel
from docs_search_mcp.core.errors import EmbeddingUnavailable, IndexBuildError
from docs_search_mcp.core.models import Document, DocumentMeta
from docs_search_mcp.core.postings import PostingIndex
from docs_search_mcp.core.text import (
    Token,
    content_hash,
    make_preview,
    normalize_text,
    plain_text,
    tokenize,
)

logger = logging.getLogger(__name__)

# Position gap between indexed fields so phrases never span two fields
FIELD_GAP = 100


def document_tokens(document: Document) -> List[Token]:
    """
    Searchable terms of a document: title, body, category and each tag.

    Every field is tokenized on its own and placed after the previous one
    with a gap of FIELD_GAP positions.
    """
    fields = [document.title, document.body, document.category, *sorted(document.tags)]
    tokens: List[Token] = []
    offset = 0
    for text in fields:
        field_tokens = tokenize(text)
        if not field_tokens:
            continue
        tokens.extend(Token(term=t.term, position=t.position + offset) for t in field_tokens)
        offset = tokens[-1].position + FIELD_GAP
    return tokens


@dataclass
class BuildReport:
    """Summary of one indexer run."""

    documents: int = 0
    embedded: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    shared: int = 0
    model_available: bool = True
    empty_bodies: List[str] = field(default_factory=list)
    missing_embeddings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "documents": self.documents,
            "embedded": self.embedded,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "shared": self.shared,
            "model_available": self.model_available,
            "empty_bodies": list(self.empty_bodies),
            "missing_embeddings": list(self.missing_embeddings),
        }


@dataclass
class _Prepared:
    document: Document
    normalized: str
    content_hash: str


class Indexer:
    """Builds index artifacts from documents."""

    def __init__(
        self,
        embedder: EmbeddingModel,
        cache: Optional[EmbeddingCache] = None,
        max_workers: int = 4,
        preview_chars: int = 200,
    ):
        """
        Args:
            embedder: Embedding model adapter
            cache: Embedding cache shared across builds (in-memory if omitted)
            max_workers: Threads used for embedding documents
            preview_chars: Length of the stored body preview
        """
        self.embedder = embedder
        self.cache = cache if cache is not None else EmbeddingCache()
        self.max_workers = max(1, max_workers)
        self.preview_chars = preview_chars
        self.last_report: Optional[BuildReport] = None

    def build(
        self,
        documents: Sequence[Document],
        cache: Optional[EmbeddingCache] = None,
    ) -> IndexArtifact:
        """
        Build an artifact from documents.

        Raises:
            IndexBuildError: empty corpus, non-document entries, missing or
                duplicate ids
        """
        cache = cache if cache is not None else self.cache
        self._validate(documents)

        report = BuildReport(documents=len(documents))
        hits_before, misses_before, shared_before = cache.hits, cache.misses, cache.shared
        model_version = self.embedder.model_version

        postings = PostingIndex()
        metas: List[DocumentMeta] = []
        to_embed: List[_Prepared] = []

        for document in documents:
            normalized_body = normalize_text(document.body)
            tokens = document_tokens(document)
            postings.add(document.id, tokens)
            digest = content_hash(document.title, document.body)

            metas.append(
                DocumentMeta(
                    id=document.id,
                    title=document.title,
                    category=document.category,
                    version=document.version,
                    tags=tuple(sorted(document.tags)),
                    last_modified=document.last_modified,
                    content_hash=digest,
                    length=len(tokens),
                    preview=make_preview(document.body, self.preview_chars),
                    text=plain_text(document.body),
                )
            )

            if not normalized_body:
                logger.warning(
                    f"Document '{document.id}' has an empty body, indexing for keyword search only"
                )
                report.empty_bodies.append(document.id)
                continue

            to_embed.append(
                _Prepared(
                    document=document,
                    normalized=f"{normalize_text(document.title)}\n{normalized_body}",
                    content_hash=digest,
                )
            )

        report.model_available = self._ensure_model()
        vectors = self._embed_all(to_embed, cache, model_version, report)

        embedding_ids = [p.document.id for p in to_embed if p.document.id in vectors]
        dimension = 0
        if embedding_ids:
            matrix = np.stack([vectors[doc_id] for doc_id in embedding_ids]).astype(
                np.float32
            )
            dimension = int(matrix.shape[1])
        else:
            matrix = np.zeros((0, 0), dtype=np.float32)

        report.embedded = len(embedding_ids)
        report.cache_hits = cache.hits - hits_before
        report.cache_misses = cache.misses - misses_before
        report.shared = cache.shared - shared_before

        if report.missing_embeddings:
            logger.warning(
                f"{len(report.missing_embeddings)} documents lack embeddings "
                f"and are searchable by keyword only"
            )
        logger.info(
            f"Indexed {report.documents} documents "
            f"({report.embedded} embedded, {report.cache_hits} cache hits, "
            f"{report.cache_misses} computed)"
        )

        self.last_report = report
        return IndexArtifact(
            model_version=model_version,
            documents=metas,
            postings=postings,
            embedding_ids=embedding_ids,
            embeddings=matrix,
            missing_embeddings=report.missing_embeddings + report.empty_bodies,
            dimension=dimension,
        )

    def build_to(
        self,
        path: Union[str, Path],
        documents: Sequence[Document],
        cache: Optional[EmbeddingCache] = None,
    ) -> IndexArtifact:
        """Build and atomically write the artifact to ``path``."""
        artifact = self.build(documents, cache=cache)
        artifact.save(path)
        artifact.path = Path(path)
        return artifact

    def _validate(self, documents: Sequence[Document]) -> None:
        if not documents:
            raise IndexBuildError("Corpus is empty; refusing to build an empty index")

        seen = set()
        for position, document in enumerate(documents):
            if not isinstance(document, Document):
                raise IndexBuildError(
                    f"Corpus entry {position} is not a Document: {type(document).__name__}"
                )
            if not document.id or not str(document.id).strip():
                raise IndexBuildError(f"Corpus entry {position} has no id")
            if document.id in seen:
                raise IndexBuildError(f"Duplicate document id '{document.id}'")
            seen.add(document.id)

    def _ensure_model(self) -> bool:
        if self.embedder.is_loaded:
            return True
        try:
            self.embedder.load()
            return True
        except EmbeddingUnavailable as e:
            logger.warning(f"Embedding model unavailable, using cached vectors only: {e}")
            return False

    def _embed_all(
        self,
        prepared: List[_Prepared],
        cache: EmbeddingCache,
        model_version: str,
        report: BuildReport,
    ) -> Dict[str, np.ndarray]:
        if not prepared:
            return {}

        def compute_for(item: _Prepared):
            def compute() -> np.ndarray:
                if not self.embedder.is_loaded:
                    raise EmbeddingUnavailable("Embedding model is not loaded")
                return self.embedder.embed(item.normalized)

            try:
                vector, _ = cache.get_or_compute(item.content_hash, model_version, compute)
                return item.document.id, vector
            except EmbeddingUnavailable as e:
                logger.debug(f"No embedding for '{item.document.id}': {e}")
                return item.document.id, None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(compute_for, prepared))

        vectors: Dict[str, np.ndarray] = {}
        for doc_id, vector in results:
            if vector is None:
                report.missing_embeddings.append(doc_id)
            else:
                vectors[doc_id] = vector
        return vectors
