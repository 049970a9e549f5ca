"""
FAISS Vector Store

Exact cosine similarity over document embeddings: vectors are L2-normalized
and kept in an inner-product flat index.
"""

import logging
from typing import Dict, List, Sequence

import faiss  # type: ignore
import numpy as np

from docs_search_mcp.core.errors import ArtifactVersionMismatch

logger = logging.getLogger(__name__)


class FAISSVectorStore:
    """Flat inner-product FAISS index keyed by document id."""

    def __init__(self, dimension: int, model_version: str = "unknown"):
        """
        Args:
            dimension: Embedding dimension
            model_version: Model version the stored vectors come from
        """
        self.dimension = dimension
        self.model_version = model_version
        self.index = faiss.IndexFlatIP(dimension)
        self.ids: List[str] = []

    def add(self, ids: Sequence[str], vectors: np.ndarray) -> None:
        """Add vectors for the given document ids."""
        if len(ids) != len(vectors):
            raise ValueError("Number of ids must match number of vectors")
        if len(ids) == 0:
            return

        matrix = np.array(vectors, dtype=np.float32).reshape(len(ids), -1)
        if matrix.shape[1] != self.dimension:
            raise ValueError(
                f"Vector dimension {matrix.shape[1]} does not match index dimension {self.dimension}"
            )
        faiss.normalize_L2(matrix)
        self.index.add(matrix)
        self.ids.extend(ids)
        logger.debug(f"Added {len(ids)} vectors to vector store")

    def similarities(self, query_vector: np.ndarray) -> Dict[str, float]:
        """
        Cosine similarity between the query and every stored vector.

        Args:
            query_vector: Query embedding

        Raises:
            ArtifactVersionMismatch: query vector has a different dimension
        """
        if self.index.ntotal == 0:
            return {}

        query = np.array(query_vector, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self.dimension:
            raise ArtifactVersionMismatch(
                self.model_version, f"<{query.shape[1]}-dimensional model>"
            )
        faiss.normalize_L2(query)

        distances, indices = self.index.search(query, self.index.ntotal)
        scores: Dict[str, float] = {}
        for score, idx in zip(distances[0], indices[0]):
            if idx < 0:
                continue
            scores[self.ids[idx]] = float(score)
        return scores

    def __len__(self) -> int:
        return self.index.ntotal

    def get_stats(self):
        return {
            "num_vectors": self.index.ntotal,
            "dimension": self.dimension,
            "model_version": self.model_version,
        }
