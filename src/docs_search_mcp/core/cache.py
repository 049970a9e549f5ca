"""
Embedding Cache Module

Content-hash keyed store of embedding vectors, persisted in SQLite across
builds. Every put is committed immediately so an interrupted build keeps the
work already done. Entries recorded for another model version are never
returned; they stay on disk until removed by maintenance.
"""

import logging
import sqlite3
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS embeddings (
    content_hash TEXT NOT NULL,
    model_version TEXT NOT NULL,
    dimension INTEGER NOT NULL,
    vector BLOB NOT NULL,
    created_at REAL NOT NULL,
    PRIMARY KEY (content_hash, model_version)
)
"""


class EmbeddingCache:
    """SQLite-backed embedding cache with per-hash computation claims."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Args:
            path: Database file; None keeps the cache in memory
        """
        self.path = Path(path) if path is not None else None
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            str(self.path) if self.path is not None else ":memory:",
            check_same_thread=False,
        )
        if self.path is not None:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_SCHEMA)
        self._conn.commit()

        self._db_lock = threading.Lock()
        self._claims_lock = threading.Lock()
        self._claims: Dict[Tuple[str, str], Future] = {}

        self.hits = 0
        self.misses = 0
        self.shared = 0

    def get(self, content_hash: str, model_version: str) -> Optional[np.ndarray]:
        """Return the cached vector, or None on a miss or a stale model version."""
        with self._db_lock:
            row = self._conn.execute(
                "SELECT dimension, vector FROM embeddings "
                "WHERE content_hash = ? AND model_version = ?",
                (content_hash, model_version),
            ).fetchone()
        if row is None:
            return None
        dimension, blob = row
        vector = np.frombuffer(blob, dtype=np.float32)
        if vector.shape[0] != dimension:
            logger.warning(f"Corrupt cache entry for {content_hash[:12]}, ignoring")
            return None
        return vector.copy()

    def put(self, content_hash: str, model_version: str, vector: np.ndarray) -> None:
        data = np.asarray(vector, dtype=np.float32).ravel()
        with self._db_lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO embeddings "
                "(content_hash, model_version, dimension, vector, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (content_hash, model_version, int(data.shape[0]), data.tobytes(), time.time()),
            )
            self._conn.commit()

    def get_or_compute(
        self,
        content_hash: str,
        model_version: str,
        compute: Callable[[], np.ndarray],
    ) -> Tuple[np.ndarray, bool]:
        """
        Return ``(vector, was_cached)``, computing and storing on a miss.

        The first caller for a hash claims it and computes; concurrent callers
        for the same hash wait for that result instead of recomputing.
        """
        key = (content_hash, model_version)
        with self._claims_lock:
            claim = self._claims.get(key)
            owner = claim is None
            if owner:
                cached = self.get(content_hash, model_version)
                if cached is not None:
                    self.hits += 1
                    return cached, True
                claim = Future()
                self._claims[key] = claim
                self.misses += 1
            else:
                self.shared += 1

        if not owner:
            return claim.result(), True

        try:
            vector = np.asarray(compute(), dtype=np.float32)
            self.put(content_hash, model_version, vector)
        except BaseException as e:
            claim.set_exception(e)
            raise
        else:
            claim.set_result(vector)
            return vector, False
        finally:
            with self._claims_lock:
                self._claims.pop(key, None)

    def count(self, model_version: Optional[str] = None) -> int:
        with self._db_lock:
            if model_version is None:
                row = self._conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM embeddings WHERE model_version = ?",
                    (model_version,),
                ).fetchone()
        return int(row[0])

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
        self.shared = 0

    def get_stats(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "shared": self.shared,
            "entries": self.count(),
        }

    def close(self) -> None:
        with self._db_lock:
            self._conn.close()

    def __enter__(self) -> "EmbeddingCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
