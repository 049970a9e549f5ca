"""
Docs Search MCP: hybrid documentation search for Model Context Protocol

Keyword (BM25) and semantic (sentence embeddings + FAISS) relevance fused
into one ranking, with keyword search available immediately and semantic
search loaded progressively in the background.
"""

__version__ = "1.0.0"

from .core.manager import HybridSearchManager, SearchMode
from .core.indexer import Indexer, BuildReport
from .core.engine import QueryEngine
from .core.models import Document, RankedResult, SearchOptions
from .config import SearchConfig

__all__ = [
    "HybridSearchManager",
    "SearchMode",
    "Indexer",
    "BuildReport",
    "QueryEngine",
    "Document",
    "RankedResult",
    "SearchOptions",
    "SearchConfig",
]
