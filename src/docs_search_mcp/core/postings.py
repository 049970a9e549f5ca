"""
Posting index with BM25 scoring.

Maps each normalized term to the documents containing it, together with the
term positions in each document (term frequency is the number of positions).
"""

import bisect
import math
from typing import Dict, List, Optional, Sequence, Tuple

from docs_search_mcp.core.text import Token, contains_phrase

# BM25 parameters
K1 = 1.2
B = 0.75

PHRASE_BOOST = 1.25

# Vocabulary terms reached through a query prefix score at this fraction
PREFIX_WEIGHT = 0.5
MIN_PREFIX_LENGTH = 3
MAX_PREFIX_EXPANSIONS = 10


class PostingIndex:
    """Inverted index over document terms."""

    def __init__(self):
        self.postings: Dict[str, Dict[str, List[int]]] = {}
        self.doc_lengths: Dict[str, int] = {}
        self._vocabulary: Optional[List[str]] = None

    def add(self, doc_id: str, tokens: Sequence[Token]) -> None:
        self.doc_lengths[doc_id] = len(tokens)
        for token in tokens:
            self.postings.setdefault(token.term, {}).setdefault(doc_id, []).append(
                token.position
            )
        self._vocabulary = None

    @property
    def num_documents(self) -> int:
        return len(self.doc_lengths)

    @property
    def average_length(self) -> float:
        if not self.doc_lengths:
            return 0.0
        return sum(self.doc_lengths.values()) / len(self.doc_lengths)

    @property
    def vocabulary(self) -> List[str]:
        """All indexed terms, sorted."""
        if self._vocabulary is None:
            self._vocabulary = sorted(self.postings)
        return self._vocabulary

    def document_frequency(self, term: str) -> int:
        return len(self.postings.get(term, {}))

    def idf(self, term: str) -> float:
        n = self.num_documents
        df = self.document_frequency(term)
        return math.log(1.0 + (n - df + 0.5) / (df + 0.5))

    def terms_with_prefix(
        self, prefix: str, limit: int = MAX_PREFIX_EXPANSIONS
    ) -> List[str]:
        """
        Indexed terms starting with ``prefix`` (the prefix itself excluded).

        Ordered by document frequency, most common first, then alphabetically.
        """
        if not prefix or limit <= 0:
            return []
        vocabulary = self.vocabulary
        start = bisect.bisect_left(vocabulary, prefix)
        found = []
        for term in vocabulary[start:]:
            if not term.startswith(prefix):
                break
            if term != prefix:
                found.append(term)
        found.sort(key=lambda term: (-self.document_frequency(term), term))
        return found[:limit]

    def prefix_expansions(self, terms: Sequence[str]) -> List[str]:
        """Completions of the final query term, for search-as-you-type."""
        if not terms or len(terms[-1]) < MIN_PREFIX_LENGTH:
            return []
        return [t for t in self.terms_with_prefix(terms[-1]) if t not in terms]

    def score(
        self,
        terms: Sequence[str],
        offsets: Optional[Sequence[int]] = None,
        prefix_terms: Sequence[str] = (),
    ) -> Tuple[Dict[str, float], Dict[str, List[str]]]:
        """
        Score every document containing at least one of ``terms``.

        Args:
            terms: Unique query terms in query order
            offsets: Query positions of ``terms``, used for the phrase boost
            prefix_terms: Extra vocabulary terms matched by prefix; they count
                at PREFIX_WEIGHT and never towards the phrase boost

        Returns:
            (scores by document id, matched terms by document id)
        """
        scores: Dict[str, float] = {}
        matched: Dict[str, List[str]] = {}

        for term in terms:
            self._accumulate(term, 1.0, scores, matched)
        for term in prefix_terms:
            self._accumulate(term, PREFIX_WEIGHT, scores, matched)

        if len(terms) > 1:
            for doc_id in scores:
                if all(doc_id in self.postings.get(term, {}) for term in terms) and (
                    contains_phrase((self.postings[term][doc_id] for term in terms), offsets)
                ):
                    scores[doc_id] *= PHRASE_BOOST

        return scores, matched

    def _accumulate(
        self,
        term: str,
        weight: float,
        scores: Dict[str, float],
        matched: Dict[str, List[str]],
    ) -> None:
        docs = self.postings.get(term)
        if not docs:
            return
        idf = self.idf(term)
        avg_length = self.average_length or 1.0
        for doc_id, positions in docs.items():
            tf = len(positions)
            length = self.doc_lengths.get(doc_id, 0)
            norm = K1 * (1.0 - B + B * length / avg_length)
            scores[doc_id] = scores.get(doc_id, 0.0) + weight * idf * tf * (K1 + 1.0) / (
                tf + norm
            )
            matched.setdefault(doc_id, []).append(term)

    def to_dict(self) -> Dict[str, Dict]:
        return {"doc_lengths": self.doc_lengths, "postings": self.postings}

    @classmethod
    def from_dict(cls, data: Dict[str, Dict]) -> "PostingIndex":
        index = cls()
        index.doc_lengths = {k: int(v) for k, v in data.get("doc_lengths", {}).items()}
        index.postings = {
            term: {doc_id: list(positions) for doc_id, positions in docs.items()}
            for term, docs in data.get("postings", {}).items()
        }
        return index
