"""
Query Engine Module

Answers one query against the current index artifact. Lexical relevance
comes from BM25 over the posting index; semantic relevance is the cosine
similarity between the query embedding and document embeddings, used only
when the loader is ready and the artifact's model version matches the
loaded model. Both signals are min-max normalized over their candidates
and fused with fixed weights.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

import numpy as np

from docs_search_mcp.core.artifact import IndexArtifact
from docs_search_mcp.core.embedder import EmbeddingModel
from docs_search_mcp.core.errors import (
    EmbeddingUnavailable,
    QueryCancelled,
    QueryTimeout,
)
from docs_search_mcp.core.loader import ProgressiveLoader
from docs_search_mcp.core.models import RankedResult, SearchOptions
from docs_search_mcp.core.text import (
    last_word,
    make_snippet,
    normalize_text,
    query_terms,
    query_tokens,
)

logger = logging.getLogger(__name__)

SEMANTIC_WEIGHT = 0.6
LEXICAL_WEIGHT = 0.4

TITLE_BOOST = 1.2
MIN_RERANK_WINDOW = 30

DEFAULT_MIN_SIMILARITY = 0.3
DEFAULT_QUERY_TIMEOUT = 5.0

MIN_SUGGEST_LENGTH = 2
MAX_SUGGEST_CANDIDATES = 50


def min_max_normalize(scores: Dict[str, float]) -> Dict[str, float]:
    """
    Scale scores to [0, 1] over the given candidates.

    When every candidate has the same score, positive scores map to 1.0 and
    non-positive scores to 0.0.
    """
    if not scores:
        return {}
    high = max(scores.values())
    low = min(scores.values())
    if high == low:
        value = 1.0 if high > 0 else 0.0
        return {doc_id: value for doc_id in scores}
    span = high - low
    return {doc_id: (score - low) / span for doc_id, score in scores.items()}


def fuse_scores(
    lexical: Dict[str, float],
    semantic: Dict[str, float],
    semantic_available: bool,
) -> Dict[str, float]:
    """
    Combine normalized signals into final scores.

    Documents missing from one signal contribute 0 for it. Without semantic
    scoring the lexical signal carries full weight.
    """
    if not semantic_available:
        return dict(lexical)

    fused: Dict[str, float] = {}
    for doc_id in set(lexical) | set(semantic):
        fused[doc_id] = SEMANTIC_WEIGHT * semantic.get(
            doc_id, 0.0
        ) + LEXICAL_WEIGHT * lexical.get(doc_id, 0.0)
    return fused


class QueryEngine:
    """Hybrid keyword + semantic ranking over an index artifact."""

    def __init__(
        self,
        artifact: IndexArtifact,
        embedder: Optional[EmbeddingModel] = None,
        loader: Optional[ProgressiveLoader] = None,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        query_timeout: float = DEFAULT_QUERY_TIMEOUT,
    ):
        """
        Args:
            artifact: Index artifact to search
            embedder: Model used for query embeddings (None = keyword only)
            loader: Progressive loader gating semantic readiness; without one
                semantic scoring is used whenever the artifact embeddings
                and the model are loaded
            min_similarity: Cosine similarity below which a document is not
                a semantic candidate
            query_timeout: Seconds allowed for embedding one query
        """
        self.artifact = artifact
        self.embedder = embedder
        self.loader = loader
        self.min_similarity = min_similarity
        self.query_timeout = query_timeout

        self.last_used_semantic = False
        self._generation = 0
        self._inflight: Optional[asyncio.Future] = None
        self._mismatch_logged = False

    def semantic_available(self) -> bool:
        """Whether semantic scoring may be used right now."""
        if self.embedder is None:
            return False
        if self.loader is not None and not self.loader.is_ready():
            return False
        if self.artifact.vector_store is None or not self.embedder.is_loaded:
            return False
        if self.artifact.model_version != self.embedder.model_version:
            if not self._mismatch_logged:
                logger.warning(
                    f"Index built with model '{self.artifact.model_version}' but "
                    f"'{self.embedder.model_version}' is loaded; using keyword search"
                )
                self._mismatch_logged = True
            return False
        return True

    async def search(
        self, query: str, options: Optional[SearchOptions] = None
    ) -> List[RankedResult]:
        """
        Rank documents for a query.

        A newer call supersedes this one while its embedding is in flight;
        the superseded call raises QueryCancelled. Embedding failures and
        timeouts fall back to keyword-only ranking.
        """
        options = options or SearchOptions()
        normalized = normalize_text(query)
        if not normalized or options.limit <= 0:
            return []

        self._generation += 1
        generation = self._generation
        previous = self._inflight
        if previous is not None and not previous.done():
            logger.debug("Cancelling embedding of a superseded query")
            previous.cancel()
        self._inflight = None

        semantic_scores: Optional[Dict[str, float]] = None
        if self.semantic_available():
            task = asyncio.ensure_future(self._embed_query(normalized))
            self._inflight = task
            try:
                vector = await task
            except asyncio.CancelledError:
                if generation != self._generation:
                    raise QueryCancelled(f"Query '{query}' superseded by a newer query")
                raise
            except QueryTimeout as e:
                logger.warning(f"{e}; answering with keyword search")
            except EmbeddingUnavailable as e:
                logger.warning(f"Query embedding failed, answering with keyword search: {e}")
            else:
                # Readiness may have changed while awaiting
                if generation == self._generation and self.semantic_available():
                    semantic_scores = self._semantic_scores(vector)
            finally:
                if self._inflight is task:
                    self._inflight = None

        if generation != self._generation:
            raise QueryCancelled(f"Query '{query}' superseded by a newer query")

        return self.rank(query, options, semantic_scores)

    async def _embed_query(self, text: str) -> np.ndarray:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.embedder.embed, text),
                timeout=self.query_timeout,
            )
        except asyncio.TimeoutError:
            raise QueryTimeout(
                f"Query embedding exceeded {self.query_timeout:.1f}s"
            ) from None
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"Query embedding failed: {e}") from e

    def _semantic_scores(self, vector: np.ndarray) -> Optional[Dict[str, float]]:
        try:
            similarities = self.artifact.vector_store.similarities(vector)
        except EmbeddingUnavailable as e:
            logger.warning(f"Semantic scoring skipped: {e}")
            return None
        return {
            doc_id: score
            for doc_id, score in similarities.items()
            if score >= self.min_similarity and doc_id in self.artifact.documents
        }

    def rank(
        self,
        query: str,
        options: SearchOptions,
        semantic_scores: Optional[Dict[str, float]] = None,
    ) -> List[RankedResult]:
        """
        Score, fuse, filter and order documents for a query.

        Args:
            query: Raw query text
            options: Limit and hard filters
            semantic_scores: Raw cosine similarities by document id, or None
                when semantic scoring is unavailable
        """
        normalized = normalize_text(query)
        if not normalized or options.limit <= 0:
            return []

        tokens = query_tokens(query)
        terms = [token.term for token in tokens]
        postings = self.artifact.postings
        lexical, matched = postings.score(
            terms,
            offsets=[token.position for token in tokens],
            prefix_terms=postings.prefix_expansions(terms),
        )
        lexical = {doc_id: s for doc_id, s in lexical.items() if doc_id in self.artifact.documents}

        use_semantic = semantic_scores is not None
        self.last_used_semantic = use_semantic

        fused = fuse_scores(
            min_max_normalize(lexical),
            min_max_normalize(semantic_scores or {}),
            use_semantic,
        )

        documents = self.artifact.documents
        candidates = [
            doc_id
            for doc_id in fused
            if documents[doc_id].matches_version(options.version_filter)
            and documents[doc_id].matches_category(options.category_filter)
        ]
        candidates.sort(key=lambda doc_id: self._sort_key(doc_id, fused[doc_id]))

        # Bounded title re-rank
        window = max(options.limit * 3, MIN_RERANK_WINDOW)
        for doc_id in candidates[:window]:
            if normalized in normalize_text(documents[doc_id].title):
                fused[doc_id] *= TITLE_BOOST
        candidates.sort(key=lambda doc_id: self._sort_key(doc_id, fused[doc_id]))

        results = []
        for doc_id in candidates[: options.limit]:
            doc_terms = tuple(matched.get(doc_id, ()))
            results.append(
                RankedResult(
                    document_id=doc_id,
                    score=fused[doc_id],
                    snippet=make_snippet(
                        documents[doc_id].text or documents[doc_id].preview,
                        doc_terms or terms,
                    ),
                    matched_terms=doc_terms,
                )
            )

        logger.debug(
            f"Query '{query}': {len(lexical)} lexical, "
            f"{len(semantic_scores or {})} semantic candidates, "
            f"{len(results)} results ({'hybrid' if use_semantic else 'keyword'})"
        )
        return results

    def suggest(self, text: str, limit: int = 5) -> List[str]:
        """
        Complete the final word of a partial query from the index vocabulary.

        Completions are ranked by how many documents contain them together
        with every earlier query term. A completion sharing no document with
        the earlier terms is dropped.

        Args:
            text: Partial query, e.g. "event sou"
            limit: Maximum number of suggestions

        Returns:
            Full query suggestions, e.g. ["event sourcing"]
        """
        partial = last_word(text)
        if len(partial) < MIN_SUGGEST_LENGTH or limit <= 0:
            return []

        normalized = normalize_text(text)
        head = normalized[: normalized.rfind(partial)].strip()
        postings = self.artifact.postings

        scope: Optional[Set[str]] = None
        for term in query_terms(head):
            docs = set(postings.postings.get(term, {}))
            scope = docs if scope is None else scope & docs
        if scope is not None and not scope:
            return []

        candidates = postings.terms_with_prefix(partial, limit=MAX_SUGGEST_CANDIDATES)
        if partial in postings.postings:
            candidates.insert(0, partial)

        counted = []
        for term in candidates:
            docs = postings.postings[term]
            count = len(docs) if scope is None else len(scope.intersection(docs))
            if count:
                counted.append((count, term))
        counted.sort(key=lambda item: (-item[0], item[1]))

        return [f"{head} {term}" if head else term for _, term in counted[:limit]]

    def _sort_key(self, doc_id: str, score: float):
        last_modified = self.artifact.documents[doc_id].last_modified or 0.0
        return (-score, -last_modified, doc_id)
