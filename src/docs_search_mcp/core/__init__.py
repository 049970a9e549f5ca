"""
Core components for documentation search.

This module provides the core functionality including:
- Indexing with an embedding cache
- Keyword and semantic scoring
- Progressive semantic loading
- Search management
"""

from .artifact import IndexArtifact
from .cache import EmbeddingCache
from .capability import CapabilityDetector, CapabilityProfile
from .embedder import EmbeddingModel, SentenceEmbedder
from .engine import QueryEngine
from .indexer import BuildReport, Indexer
from .loader import LoaderState, ProgressiveLoader
from .manager import HybridSearchManager, SearchMode
from .models import Document, DocumentMeta, RankedResult, SearchOptions
from .vector_store import FAISSVectorStore

__all__ = [
    "IndexArtifact",
    "EmbeddingCache",
    "CapabilityDetector",
    "CapabilityProfile",
    "EmbeddingModel",
    "SentenceEmbedder",
    "QueryEngine",
    "BuildReport",
    "Indexer",
    "LoaderState",
    "ProgressiveLoader",
    "HybridSearchManager",
    "SearchMode",
    "Document",
    "DocumentMeta",
    "RankedResult",
    "SearchOptions",
    "FAISSVectorStore",
]
