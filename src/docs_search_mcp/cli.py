"""CLI for the documentation search engine."""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from docs_search_mcp import __version__
from docs_search_mcp.config import SearchConfig
from docs_search_mcp.core.errors import IndexBuildError
from docs_search_mcp.core.manager import HybridSearchManager

logger = logging.getLogger(__name__)


def _load_config(args: argparse.Namespace) -> SearchConfig:
    config = SearchConfig.from_env()
    overrides = {}
    if args.index:
        overrides["index_path"] = Path(args.index)
    if args.cache:
        overrides["cache_path"] = Path(args.cache)
    if getattr(args, "keyword_only", False):
        overrides["keyword_only"] = True
    return replace(config, **overrides) if overrides else config


def build(args: argparse.Namespace) -> int:
    """Build the index from a Markdown documentation tree."""
    config = _load_config(args)
    manager = HybridSearchManager(config=config)
    docs_path = args.docs or config.docs_path

    try:
        report = manager.build_from_directory(docs_path)
    except (IndexBuildError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Indexed {report.documents} documents from {docs_path}")
    print(f"  Embedded: {report.embedded}")
    print(f"  Cache hits: {report.cache_hits}, computed: {report.cache_misses}")
    if report.missing_embeddings or report.empty_bodies:
        print(
            f"  Keyword only: {len(report.missing_embeddings) + len(report.empty_bodies)} documents"
        )
    print(f"  Index: {config.index_path}")
    return 0


async def _run_search(args: argparse.Namespace) -> int:
    manager = HybridSearchManager(config=_load_config(args))
    try:
        if args.wait:
            await manager.wait_until_settled()
        results = await manager.search(
            args.query,
            limit=args.limit,
            version_filter=args.version,
            category_filter=args.category,
        )
        mode = manager.current_mode().value
    finally:
        await manager.close()

    if args.json:
        print(
            json.dumps(
                {"query": args.query, "mode": mode, "results": [r.to_dict() for r in results]},
                indent=2,
            )
        )
        return 0

    if not results:
        print("No results.")
        return 0

    print(f"{len(results)} results ({mode} search)\n")
    for i, result in enumerate(results, 1):
        print(f"{i}. [{result.score:.3f}] {result.document_id}")
        if result.snippet:
            print(f"   {result.snippet}")
    return 0


def search(args: argparse.Namespace) -> int:
    """Run a single query."""
    return asyncio.run(_run_search(args))


def suggest(args: argparse.Namespace) -> int:
    """Complete a partial query."""
    manager = HybridSearchManager(config=_load_config(args))
    try:
        suggestions = manager.suggest(args.query, limit=args.limit)
    finally:
        asyncio.run(manager.close())

    for suggestion in suggestions:
        print(suggestion)
    return 0


def categories(args: argparse.Namespace) -> int:
    """List categories, or the documents of matching categories."""
    manager = HybridSearchManager(config=_load_config(args))
    try:
        if args.docs:
            grouped = manager.list_documents(
                category_filter=args.category, version_filter=args.version
            )
        else:
            counts = manager.list_categories(version_filter=args.version)
    finally:
        asyncio.run(manager.close())

    if args.docs:
        for name, docs in grouped.items():
            print(f"{name} ({len(docs)})")
            for doc in docs:
                print(f"  {doc['id']}: {doc['title']}")
    else:
        for name, count in counts.items():
            print(f"{name}: {count}")
    return 0


def serve(args: argparse.Namespace) -> int:
    """Start the MCP server."""
    from docs_search_mcp.server import main as serve_main

    serve_main()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docs-search",
        description="Hybrid keyword + semantic documentation search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  docs-search build --docs docs/          Build the index
  docs-search search "event sourcing"     Query the index
  docs-search suggest "event sou"         Complete a partial query
  docs-search categories --docs           List documents by category
  docs-search serve                       Start the MCP server

Environment variables:
  DOCS_SEARCH_INDEX_PATH     Index artifact (default: .search/index.npz)
  DOCS_SEARCH_MODEL          Embedding model
  DOCS_SEARCH_KEYWORD_ONLY   Disable semantic search
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--index", type=str, help="Index artifact path")
    parser.add_argument("--cache", type=str, help="Embedding cache path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build_parser = subparsers.add_parser("build", help="Build the search index")
    build_parser.add_argument("--docs", type=str, help="Documentation directory")
    build_parser.set_defaults(func=build)

    search_parser = subparsers.add_parser("search", help="Search the documentation")
    search_parser.add_argument("query", type=str, help="Search query")
    search_parser.add_argument(
        "--limit", type=int, help="Maximum results (default: DOCS_SEARCH_LIMIT or 10)"
    )
    search_parser.add_argument("--version", dest="version", type=str, help="Version filter")
    search_parser.add_argument("--category", type=str, help="Category filter")
    search_parser.add_argument(
        "--keyword-only", action="store_true", help="Skip semantic search"
    )
    search_parser.add_argument(
        "--wait", action="store_true", help="Wait for semantic search to load first"
    )
    search_parser.add_argument("--json", action="store_true", help="JSON output")
    search_parser.set_defaults(func=search)

    suggest_parser = subparsers.add_parser("suggest", help="Complete a partial query")
    suggest_parser.add_argument("query", type=str, help="Partial query")
    suggest_parser.add_argument("--limit", type=int, default=5, help="Maximum suggestions")
    suggest_parser.set_defaults(func=suggest)

    categories_parser = subparsers.add_parser("categories", help="List categories")
    categories_parser.add_argument(
        "--docs", action="store_true", help="List the documents of each category"
    )
    categories_parser.add_argument("--category", type=str, help="Category filter")
    categories_parser.add_argument("--version", dest="version", type=str, help="Version filter")
    categories_parser.set_defaults(func=categories)

    serve_parser = subparsers.add_parser("serve", help="Start the MCP server")
    serve_parser.set_defaults(func=serve)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return args.func(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
