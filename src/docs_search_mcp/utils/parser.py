"""
Markdown Corpus Loader

Reads a documentation tree of Markdown files into ``Document`` records.

Layout conventions::

    docs/
      v1.0.0/architecture/saga.md      version "v1.0.0", category "Architecture"
      drafts/event-sourcing.md         version "drafts"
      internal-docs/...                skipped
      getting-started.md               unversioned unless frontmatter says so
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from docs_search_mcp.core.models import Document

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES = frozenset({"internal-docs"})
STATE_FOLDERS = frozenset({"drafts", "proposals", "backlog", "declined"})
DEFAULT_CATEGORY = "General"

_VERSION_RE = re.compile(r"^v\d+(\.\d+)*$")
_HEADING_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def parse_frontmatter(content: str) -> Tuple[Dict[str, str], str]:
    """
    Split simple ``key: value`` frontmatter from the body.

    Returns:
        (metadata, body)
    """
    metadata: Dict[str, str] = {}
    if not content.startswith("---"):
        return metadata, content

    parts = content.split("---", 2)
    if len(parts) < 3:
        return metadata, content

    for line in parts[1].strip().split("\n"):
        if ":" in line:
            key, value = line.split(":", 1)
            metadata[key.strip().lower()] = value.strip().strip("\"'")
    return metadata, parts[2].lstrip("\n")


def parse_tags(value: Optional[str]) -> frozenset:
    if not value:
        return frozenset()
    value = value.strip().strip("[]")
    return frozenset(
        tag.strip().strip("\"'") for tag in value.split(",") if tag.strip().strip("\"'")
    )


def _display_name(name: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name.replace("-", " ").replace("_", " "))


def is_version_folder(name: str) -> bool:
    return bool(_VERSION_RE.match(name)) or name in STATE_FOLDERS


class MarkdownCorpusLoader:
    """Load Markdown files under a root directory as documents."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def load(self) -> List[Document]:
        """
        Read every ``*.md`` file, in path order.

        Raises:
            FileNotFoundError: the root directory does not exist
        """
        if not self.root.is_dir():
            raise FileNotFoundError(f"Documentation directory not found: {self.root}")

        documents = []
        for path in sorted(self.root.rglob("*.md")):
            relative = path.relative_to(self.root)
            if any(part in SKIPPED_DIRECTORIES for part in relative.parts[:-1]):
                continue
            try:
                documents.append(self.parse_file(path))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable file {path}: {e}")

        logger.info(f"Loaded {len(documents)} documents from {self.root}")
        return documents

    def parse_file(self, path: Path) -> Document:
        relative = path.relative_to(self.root)
        content = path.read_text(encoding="utf-8")
        metadata, body = parse_frontmatter(content)

        folders = list(relative.parts[:-1])
        version = None
        doc_id = relative.with_suffix("").as_posix()
        if folders and is_version_folder(folders[0]):
            version = folders.pop(0)
            if metadata.get("slug"):
                doc_id = f"{version}/{metadata['slug']}"
        elif metadata.get("slug"):
            doc_id = metadata["slug"]
        if version is None and metadata.get("version"):
            version = metadata["version"]

        title = metadata.get("title")
        if not title:
            heading = _HEADING_RE.search(body)
            title = heading.group(1).strip() if heading else _display_name(path.stem)

        category = metadata.get("category")
        if not category and folders:
            category = _display_name(folders[0])

        return Document(
            id=doc_id,
            title=title,
            body=body,
            category=category or DEFAULT_CATEGORY,
            version=version,
            tags=parse_tags(metadata.get("tags")),
            last_modified=path.stat().st_mtime,
        )


def load_corpus(root: Union[str, Path]) -> List[Document]:
    return MarkdownCorpusLoader(root).load()
