#!/usr/bin/env python3
"""
Documentation Search MCP Server

Exposes hybrid keyword + semantic documentation search through the Model
Context Protocol (MCP). Keyword search answers immediately; semantic search
joins once the embedding model and index vectors finish loading.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Import MCP SDK
from mcp.server import FastMCP

from docs_search_mcp.config import SearchConfig
from docs_search_mcp.core.errors import QueryCancelled
from docs_search_mcp.core.manager import HybridSearchManager

logger = logging.getLogger(__name__)

# Create FastMCP server
mcp = FastMCP("docs-search")

# Global search manager
search_manager: Optional[HybridSearchManager] = None


def get_working_directory() -> Path:
    """Get the working directory the index paths are resolved against"""
    if "MCP_WORKING_DIR" in os.environ:
        logger.info(f"Using MCP_WORKING_DIR: {os.environ['MCP_WORKING_DIR']}")
        return Path(os.environ["MCP_WORKING_DIR"])

    if "WORKING_DIR" in os.environ:
        logger.info(f"Using WORKING_DIR: {os.environ['WORKING_DIR']}")
        return Path(os.environ["WORKING_DIR"])

    if len(sys.argv) > 1:
        for i, arg in enumerate(sys.argv):
            if arg == "--working-dir" and i + 1 < len(sys.argv):
                working_dir = Path(sys.argv[i + 1])
                logger.info(f"Using command-line working dir: {working_dir}")
                return working_dir

    cwd = Path.cwd()
    logger.info(f"Using current working directory: {cwd}")
    return cwd


def initialize_search_manager():
    """Initialize the search manager"""
    global search_manager

    if search_manager is not None:
        return

    try:
        working_dir = get_working_directory()
        config = SearchConfig.from_env(working_dir=working_dir)
        logger.info(f"Index path: {config.index_path}")

        search_manager = HybridSearchManager(config=config)
        logger.info("Search manager initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize search manager: {e}")
        # Don't raise - tools report the failure
        search_manager = None


@mcp.tool()
async def search(
    query: str,
    limit: Optional[int] = None,
    version: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Search the documentation with hybrid keyword + semantic ranking

    Args:
        query: Search query
        limit: Maximum number of results to return (DOCS_SEARCH_LIMIT if not specified)
        version: Only documents of this version (e.g. 'v1.0.0' or 'drafts');
            unversioned documents always match
        category: Only documents whose category contains this text

    Returns:
        Ranked results with scores, snippets and matched terms
    """
    try:
        logger.info(f"Search request: query='{query}', limit={limit}, version={version}")

        if search_manager is None:
            initialize_search_manager()

        if search_manager is None:
            return {"error": "Search manager initialization failed"}

        try:
            results = await search_manager.search(
                query,
                limit=limit,
                version_filter=version,
                category_filter=category,
            )
        except QueryCancelled as e:
            logger.debug(str(e))
            return {"query": query, "results": [], "total": 0, "cancelled": True}

        return {
            "query": query,
            "results": [result.to_dict() for result in results],
            "total": len(results),
            "mode_used": search_manager.current_mode().value,
        }

    except Exception as e:
        logger.exception(f"Search execution failed: {e}")
        return {"error": str(e)}


@mcp.tool()
async def suggest(query: str, limit: int = 5) -> Dict[str, Any]:
    """
    Complete a partially typed query from the indexed vocabulary

    Args:
        query: Partial query, e.g. 'event sou'
        limit: Maximum number of suggestions

    Returns:
        Suggested full queries
    """
    try:
        if search_manager is None:
            initialize_search_manager()

        if search_manager is None:
            return {"error": "Search manager initialization failed"}

        suggestions = search_manager.suggest(query, limit=limit)
        return {"query": query, "suggestions": suggestions}

    except Exception as e:
        logger.error(f"Suggest failed: {e}")
        return {"error": str(e)}


@mcp.tool()
async def list_categories(version: Optional[str] = None) -> Dict[str, Any]:
    """
    List documentation categories with their document counts

    Args:
        version: Only count documents of this version (unversioned always count)

    Returns:
        Categories and document counts
    """
    try:
        if search_manager is None:
            initialize_search_manager()

        if search_manager is None:
            return {"error": "Search manager initialization failed"}

        categories = search_manager.list_categories(version_filter=version)
        return {
            "categories": [
                {"category": name, "documents": count} for name, count in categories.items()
            ],
            "total": len(categories),
        }

    except Exception as e:
        logger.error(f"Listing categories failed: {e}")
        return {"error": str(e)}


@mcp.tool()
async def list_docs_by_category(
    category: Optional[str] = None, version: Optional[str] = None
) -> Dict[str, Any]:
    """
    List documents grouped by category

    Args:
        category: Only categories containing this text (all if not specified)
        version: Only documents of this version (unversioned always match)

    Returns:
        Documents per category
    """
    try:
        if search_manager is None:
            initialize_search_manager()

        if search_manager is None:
            return {"error": "Search manager initialization failed"}

        grouped = search_manager.list_documents(
            category_filter=category, version_filter=version
        )
        return {
            "categories": grouped,
            "total": sum(len(docs) for docs in grouped.values()),
        }

    except Exception as e:
        logger.error(f"Listing documents failed: {e}")
        return {"error": str(e)}


@mcp.tool()
async def get_stats() -> Dict[str, Any]:
    """
    Get search engine statistics and the current search mode

    Returns:
        Index, loader and capability statistics
    """
    try:
        if search_manager is None:
            initialize_search_manager()

        if search_manager is None:
            return {
                "status": "not_initialized",
                "error": "Failed to initialize search manager",
            }

        stats = search_manager.get_stats()
        return {
            "status": "ready" if stats["index_available"] else "no_index",
            "mode": stats["mode"],
            "statistics": stats,
        }

    except Exception as e:
        logger.error(f"Stats retrieval failed: {e}")
        return {"error": str(e)}


@mcp.tool()
async def build_index(docs_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Build or rebuild the search index from a Markdown documentation tree

    Args:
        docs_path: Documentation directory (configured docs path if not specified)

    Returns:
        Build report
    """
    try:
        if search_manager is None:
            initialize_search_manager()

        if search_manager is None:
            return {
                "status": "failed",
                "message": "Search manager initialization failed",
            }

        root = Path(docs_path).resolve() if docs_path else search_manager.config.docs_path
        logger.info(f"Building index for: {root}")

        report = await asyncio.to_thread(search_manager.build_from_directory, root)
        await search_manager.reload()

        return {
            "status": "success",
            "docs_path": str(root),
            "report": report.to_dict(),
            "message": f"Index built with {report.documents} documents "
            f"({report.embedded} embedded)",
        }

    except Exception as e:
        logger.error(f"Index building failed: {e}")
        return {"status": "error", "message": str(e)}


def main():
    """Main entry point for the MCP server."""
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting Documentation Search MCP Server")
    try:
        initialize_search_manager()
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
