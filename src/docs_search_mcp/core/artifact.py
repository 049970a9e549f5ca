"""
Index Artifact Module

The persisted search index: posting structure, document metadata, embedding
vectors and the model version stamp, stored as one ``.npz`` archive.

Saving writes a temporary file next to the target and renames it over the
target, so readers never observe a partially written artifact. Opening reads
the manifest (postings + metadata) eagerly; the embedding arrays are read
later by :meth:`IndexArtifact.load_embeddings`, from the same open file so a
concurrent rebuild cannot mix two builds.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from docs_search_mcp.core.errors import ArtifactNotFound, SearchEngineError
from docs_search_mcp.core.models import DocumentMeta
from docs_search_mcp.core.postings import PostingIndex
from docs_search_mcp.core.vector_store import FAISSVectorStore

logger = logging.getLogger(__name__)

FORMAT_VERSION = 2


class IndexArtifact:
    """In-memory view of a built or loaded index."""

    def __init__(
        self,
        model_version: str,
        documents: Sequence[DocumentMeta],
        postings: PostingIndex,
        embedding_ids: Optional[Sequence[str]] = None,
        embeddings: Optional[np.ndarray] = None,
        missing_embeddings: Optional[Sequence[str]] = None,
        dimension: int = 0,
    ):
        self.model_version = model_version
        self.documents: Dict[str, DocumentMeta] = {doc.id: doc for doc in documents}
        self.postings = postings
        self.missing_embeddings: List[str] = list(missing_embeddings or [])
        self.dimension = dimension

        self.embedding_ids: Optional[List[str]] = (
            list(embedding_ids) if embedding_ids is not None else None
        )
        self.embeddings: Optional[np.ndarray] = embeddings
        self.vector_store: Optional[FAISSVectorStore] = None

        self.path: Optional[Path] = None
        self._archive = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # persistence

    def save(self, path: Union[str, Path]) -> Path:
        """Write the artifact atomically (temp file, then rename)."""
        if self.embeddings is None or self.embedding_ids is None:
            raise SearchEngineError("Cannot save an artifact whose embeddings are not loaded")

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                np.savez(f, **self._arrays())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        logger.info(f"Index artifact saved to {target}")
        return target

    @classmethod
    def open(cls, path: Union[str, Path]) -> "IndexArtifact":
        """
        Open an artifact, loading postings and metadata only.

        Raises:
            ArtifactNotFound: no file at ``path``
            SearchEngineError: the file is not a readable artifact
        """
        source = Path(path)
        if not source.exists():
            raise ArtifactNotFound(f"Index artifact not found at {source}")

        try:
            archive = np.load(str(source), allow_pickle=False)
        except Exception as e:
            raise SearchEngineError(f"Unreadable index artifact {source}: {e}") from e

        try:
            if isinstance(archive, np.ndarray):
                raise ValueError("not an .npz archive")
            manifest = json.loads(archive["manifest"].tobytes().decode("utf-8"))
            if manifest.get("format_version") != FORMAT_VERSION:
                raise ValueError(
                    f"unsupported artifact format {manifest.get('format_version')!r}"
                )
            artifact = cls(
                model_version=str(manifest["model_version"]),
                documents=[DocumentMeta.from_dict(d) for d in manifest["documents"]],
                postings=PostingIndex.from_dict(manifest["postings"]),
                missing_embeddings=manifest.get("missing_embeddings", []),
                dimension=int(manifest.get("dimension", 0)),
            )
        except Exception as e:
            if hasattr(archive, "close"):
                archive.close()
            raise SearchEngineError(f"Unreadable index artifact {source}: {e}") from e

        artifact.path = source
        artifact._archive = archive
        logger.info(
            f"Index artifact opened: {len(artifact.documents)} documents, "
            f"model {artifact.model_version}"
        )
        return artifact

    def load_embeddings(self) -> Optional[FAISSVectorStore]:
        """
        Read the embedding portion and build the vector store.

        Blocking; meant to run off the event loop. Returns None when the
        artifact carries no embeddings.
        """
        with self._lock:
            if self.embeddings is None:
                if self._archive is None:
                    raise SearchEngineError("Artifact has no embedding source")
                ids = [str(i) for i in self._archive["embedding_ids"].tolist()]
                matrix = np.asarray(self._archive["embeddings"], dtype=np.float32)
                self.embedding_ids = ids
                self.embeddings = matrix.reshape(len(ids), -1) if ids else matrix

            if self.vector_store is None and self.embedding_ids and self.dimension > 0:
                store = FAISSVectorStore(self.dimension, model_version=self.model_version)
                store.add(self.embedding_ids, self.embeddings)
                self.vector_store = store

            return self.vector_store

    @property
    def embeddings_loaded(self) -> bool:
        return self.embeddings is not None

    def close(self) -> None:
        with self._lock:
            if self._archive is not None:
                self._archive.close()
                self._archive = None

    # ------------------------------------------------------------------
    # content

    def manifest(self) -> Dict:
        return {
            "format_version": FORMAT_VERSION,
            "model_version": self.model_version,
            "dimension": self.dimension,
            "documents": [doc.to_dict() for doc in self.documents.values()],
            "missing_embeddings": self.missing_embeddings,
            "postings": self.postings.to_dict(),
        }

    def _manifest_bytes(self) -> bytes:
        return json.dumps(
            self.manifest(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    def _arrays(self) -> Dict[str, np.ndarray]:
        ids = self.embedding_ids or []
        matrix = self.embeddings
        if matrix is None or len(ids) == 0:
            matrix = np.zeros((0, self.dimension), dtype=np.float32)
        return {
            "manifest": np.frombuffer(self._manifest_bytes(), dtype=np.uint8),
            "embedding_ids": np.array(ids, dtype=np.str_),
            "embeddings": np.asarray(matrix, dtype=np.float32),
        }

    def fingerprint(self) -> str:
        """Hash of the artifact content, independent of archive timestamps."""
        self.load_embeddings()
        digest = hashlib.sha256(self._manifest_bytes())
        for doc_id in self.embedding_ids or []:
            digest.update(doc_id.encode("utf-8"))
            digest.update(b"\x00")
        if self.embeddings is not None:
            digest.update(np.ascontiguousarray(self.embeddings, dtype=np.float32).tobytes())
        return digest.hexdigest()

    def get_stats(self) -> Dict:
        return {
            "num_documents": len(self.documents),
            "num_terms": len(self.postings.postings),
            "model_version": self.model_version,
            "dimension": self.dimension,
            "missing_embeddings": len(self.missing_embeddings),
            "embeddings_loaded": self.embeddings_loaded,
            "path": str(self.path) if self.path else None,
        }
