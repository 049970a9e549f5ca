"""
HybridSearchManager - session facade over the documentation search engine

Opens the index artifact, assesses capability, starts progressive semantic
loading and answers queries through the query engine. Keyword search is
available as soon as the artifact manifest is open; semantic search joins
once the loader reports ready.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from docs_search_mcp.config import SearchConfig
from docs_search_mcp.core.artifact import IndexArtifact
from docs_search_mcp.core.cache import EmbeddingCache
from docs_search_mcp.core.capability import CapabilityDetector, CapabilityProfile
from docs_search_mcp.core.embedder import EmbeddingModel, SentenceEmbedder
from docs_search_mcp.core.engine import QueryEngine
from docs_search_mcp.core.errors import ArtifactNotFound, SearchEngineError
from docs_search_mcp.core.indexer import BuildReport, Indexer
from docs_search_mcp.core.loader import LoaderState, ProgressiveLoader
from docs_search_mcp.core.models import Document, RankedResult, SearchOptions
from docs_search_mcp.utils.parser import load_corpus

logger = logging.getLogger(__name__)


class SearchMode(Enum):
    """Scoring mode currently in effect."""

    HYBRID = "hybrid"  # semantic + keyword fusion
    KEYWORD = "keyword"  # keyword only


class HybridSearchManager:
    """
    Owns one search session.

    Nothing here raises on a missing index or an unavailable model; search
    returns an empty list until an index exists and ranks by keywords until
    semantic search is ready.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        embedder: Optional[EmbeddingModel] = None,
        profile: Optional[CapabilityProfile] = None,
    ):
        """
        Args:
            config: Search configuration (defaults when omitted)
            embedder: Embedding model adapter (a SentenceEmbedder built from
                the config when omitted)
            profile: Capability profile for this session (measured when omitted)
        """
        self.config = config or SearchConfig()
        self.embedder = embedder or SentenceEmbedder(
            model_name=self.config.model_name,
            device=self.config.device,
            model_version=self.config.effective_model_version,
        )
        self.profile = profile or CapabilityProfile.detect(
            force_keyword_only=self.config.keyword_only
        )
        self.detector = CapabilityDetector(self.profile, self.config.min_memory_gb)

        self.artifact: Optional[IndexArtifact] = None
        self.loader: Optional[ProgressiveLoader] = None
        self.engine: Optional[QueryEngine] = None

        self._open_artifact()
        logger.info(f"HybridSearchManager initialized (index: {self.config.index_path})")

    def _open_artifact(self) -> None:
        try:
            artifact = IndexArtifact.open(self.config.index_path)
        except ArtifactNotFound as e:
            logger.warning(f"{e}; run a build first. Searches return no results")
            return
        except SearchEngineError as e:
            logger.error(f"Failed to open index artifact: {e}")
            return

        self.artifact = artifact
        self.loader = ProgressiveLoader(
            artifact, self.embedder, self.detector, timeout=self.config.load_timeout
        )
        self.engine = QueryEngine(
            artifact,
            embedder=self.embedder,
            loader=self.loader,
            min_similarity=self.config.min_similarity,
            query_timeout=self.config.query_timeout,
        )

    async def start(self) -> None:
        """Begin semantic loading in the background (no-op without an index)."""
        if self.loader is not None and self.loader.state is LoaderState.IDLE:
            self.loader.start()

    async def wait_until_settled(self) -> Optional[LoaderState]:
        """Wait for semantic loading to finish, successfully or not."""
        if self.loader is None:
            return None
        await self.start()
        return await self.loader.wait()

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        version_filter: Optional[str] = None,
        category_filter: Optional[str] = None,
    ) -> List[RankedResult]:
        """
        Search the documentation.

        Args:
            query: Search query
            limit: Maximum number of results (config default when omitted)
            version_filter: Keep documents of this version (plus unversioned ones)
            category_filter: Keep documents whose category contains this text

        Returns:
            Ranked results, best first

        Raises:
            QueryCancelled: a newer search superseded this one
        """
        if self.engine is None:
            return []

        await self.start()
        options = SearchOptions(
            limit=limit if limit is not None else self.config.default_limit,
            version_filter=version_filter or None,
            category_filter=category_filter or None,
        )
        logger.debug(f"Search: query='{query}', options={options}")
        return await self.engine.search(query, options)

    def current_mode(self) -> SearchMode:
        if self.engine is not None and self.engine.semantic_available():
            return SearchMode.HYBRID
        return SearchMode.KEYWORD

    def suggest(self, text: str, limit: int = 5) -> List[str]:
        """Complete a partial query from the index vocabulary."""
        if self.engine is None:
            return []
        return self.engine.suggest(text, limit=limit)

    def list_categories(self, version_filter: Optional[str] = None) -> Dict[str, int]:
        """Document count per category, sorted by category name."""
        if self.artifact is None:
            return {}
        counts: Dict[str, int] = {}
        for meta in self.artifact.documents.values():
            if meta.matches_version(version_filter):
                counts[meta.category] = counts.get(meta.category, 0) + 1
        return dict(sorted(counts.items()))

    def list_documents(
        self,
        category_filter: Optional[str] = None,
        version_filter: Optional[str] = None,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Documents grouped by category.

        Args:
            category_filter: Keep categories containing this text (case-insensitive)
            version_filter: Keep documents of this version (plus unversioned ones)

        Returns:
            Category name -> documents ({id, title, version, preview}), by id
        """
        if self.artifact is None:
            return {}
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for doc_id in sorted(self.artifact.documents):
            meta = self.artifact.documents[doc_id]
            if not (
                meta.matches_category(category_filter) and meta.matches_version(version_filter)
            ):
                continue
            grouped.setdefault(meta.category, []).append(
                {
                    "id": meta.id,
                    "title": meta.title,
                    "version": meta.version,
                    "preview": meta.preview,
                }
            )
        return dict(sorted(grouped.items()))

    def build_index(self, documents: Sequence[Document]) -> BuildReport:
        """
        Build the index artifact from documents and write it atomically.

        The running session keeps serving the previous artifact until
        :meth:`reload` is called.

        Raises:
            IndexBuildError: the corpus is malformed
        """
        with EmbeddingCache(self.config.cache_path) as cache:
            indexer = Indexer(self.embedder, cache=cache, max_workers=self.config.max_workers)
            indexer.build_to(self.config.index_path, documents)
        return indexer.last_report

    def build_from_directory(self, docs_path: Optional[Union[str, Path]] = None) -> BuildReport:
        """Load a Markdown tree and build the index from it."""
        root = Path(docs_path) if docs_path else self.config.docs_path
        return self.build_index(load_corpus(root))

    async def reload(self) -> None:
        """Switch to the artifact currently on disk."""
        await self._teardown()
        self._open_artifact()
        await self.start()

    async def close(self) -> None:
        await self._teardown()

    async def _teardown(self) -> None:
        if self.loader is not None:
            await self.loader.cancel()
        if self.artifact is not None:
            # Embeddings may still be read by a worker thread of a cancelled load
            await asyncio.to_thread(self.artifact.close)
        self.artifact = None
        self.loader = None
        self.engine = None

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "index_path": str(self.config.index_path),
            "index_available": self.artifact is not None,
            "mode": self.current_mode().value,
            "model_version": self.embedder.model_version,
            "capability": {
                "available_memory_gb": self.profile.available_memory_gb,
                "force_keyword_only": self.profile.force_keyword_only,
                "prior_failure": self.profile.prior_failure,
                "failure_reason": self.profile.failure_reason,
            },
        }
        if self.artifact is not None:
            stats["index"] = self.artifact.get_stats()
        if self.loader is not None:
            stats["loader"] = self.loader.get_stats()
        if self.artifact is not None and self.artifact.vector_store is not None:
            stats["vector_store"] = self.artifact.vector_store.get_stats()
        return stats
