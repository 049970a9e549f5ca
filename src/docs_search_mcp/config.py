"""
Configuration for the documentation search engine.

Values come from ``DOCS_SEARCH_*`` environment variables; relative paths are
resolved against the working directory given to :meth:`SearchConfig.from_env`.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "DOCS_SEARCH_"

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class SearchConfig:
    index_path: Path = field(default_factory=lambda: Path(".search/index.npz"))
    cache_path: Path = field(default_factory=lambda: Path(".search/embedding-cache.sqlite3"))
    docs_path: Path = field(default_factory=lambda: Path("docs"))
    model_name: str = DEFAULT_MODEL_NAME
    model_version: Optional[str] = None
    device: str = "auto"
    keyword_only: bool = False
    min_memory_gb: float = 2.0
    load_timeout: float = 30.0
    query_timeout: float = 5.0
    min_similarity: float = 0.3
    max_workers: int = 4
    default_limit: int = 10

    def __post_init__(self):
        self.index_path = Path(self.index_path)
        self.cache_path = Path(self.cache_path)
        self.docs_path = Path(self.docs_path)
        if self.device not in ("auto", "cpu", "cuda"):
            raise ValueError(f"Invalid device '{self.device}': expected auto, cpu or cuda")
        for name in ("load_timeout", "query_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.min_memory_gb < 0:
            raise ValueError("min_memory_gb must not be negative")
        if not -1.0 <= self.min_similarity <= 1.0:
            raise ValueError("min_similarity must be within [-1, 1]")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.default_limit < 1:
            raise ValueError("default_limit must be at least 1")

    @property
    def effective_model_version(self) -> str:
        return self.model_version or self.model_name

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        working_dir: Optional[Path] = None,
    ) -> "SearchConfig":
        """
        Build a config from environment variables.

        Raises:
            ValueError: a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        base = Path(working_dir) if working_dir else None

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value is not None else None

        def path(name: str, default: Path) -> Path:
            value = get(name)
            result = Path(value) if value else default
            if base is not None and not result.is_absolute():
                result = base / result
            return result

        defaults = cls()
        config = cls(
            index_path=path("INDEX_PATH", defaults.index_path),
            cache_path=path("CACHE_PATH", defaults.cache_path),
            docs_path=path("DOCS_PATH", defaults.docs_path),
            model_name=get("MODEL") or defaults.model_name,
            model_version=get("MODEL_VERSION") or None,
            device=(get("DEVICE") or defaults.device).lower(),
            keyword_only=_parse_bool("KEYWORD_ONLY", get("KEYWORD_ONLY"), defaults.keyword_only),
            min_memory_gb=_parse_number(
                "MIN_MEMORY_GB", get("MIN_MEMORY_GB"), defaults.min_memory_gb, float
            ),
            load_timeout=_parse_number(
                "LOAD_TIMEOUT", get("LOAD_TIMEOUT"), defaults.load_timeout, float
            ),
            query_timeout=_parse_number(
                "QUERY_TIMEOUT", get("QUERY_TIMEOUT"), defaults.query_timeout, float
            ),
            min_similarity=_parse_number(
                "MIN_SIMILARITY", get("MIN_SIMILARITY"), defaults.min_similarity, float
            ),
            max_workers=_parse_number("MAX_WORKERS", get("MAX_WORKERS"), defaults.max_workers, int),
            default_limit=_parse_number("LIMIT", get("LIMIT"), defaults.default_limit, int),
        )
        logger.debug(f"Config: {config}")
        return config


def _parse_bool(name: str, value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got '{value}'")


def _parse_number(name: str, value: Optional[str], default, kind):
    if value is None or value == "":
        return default
    try:
        return kind(value)
    except ValueError:
        raise ValueError(
            f"{ENV_PREFIX}{name} must be {'an integer' if kind is int else 'a number'}, "
            f"got '{value}'"
        ) from None
