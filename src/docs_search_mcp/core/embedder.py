"""
Sentence Embedder Module

Fixed-size sentence embeddings for documents and queries, with an explicit
load step separate from inference so callers decide when the model is
fetched. Inputs longer than the model window are split into windows whose
embeddings are averaged.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Protocol

import numpy as np
import torch
from sentence_transformers import SentenceTransformer

from docs_search_mcp.config import DEFAULT_MODEL_NAME
from docs_search_mcp.core.errors import EmbeddingUnavailable
from docs_search_mcp.utils.hardware import select_device

logger = logging.getLogger(__name__)


class EmbeddingModel(Protocol):
    """Interface the indexer and the query engine rely on."""

    @property
    def model_version(self) -> str: ...

    @property
    def is_loaded(self) -> bool: ...

    def load(self) -> None: ...

    def embed(self, text: str) -> np.ndarray: ...


class SentenceEmbedder:
    """sentence-transformers backed embedding model adapter."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        device: Optional[str] = None,
        batch_size: int = 16,
        max_seq_length: int = 256,
        max_chunks: int = 8,
        cache_dir: Optional[Path] = None,
        model_version: Optional[str] = None,
    ):
        """
        Args:
            model_name: Hugging Face model name
            device: 'cpu', 'cuda' or 'auto'/None for auto-detect
            batch_size: Batch size used when encoding the windows of one text
            max_seq_length: Model window in tokens
            max_chunks: Windows kept for long inputs; the rest is truncated
            cache_dir: Cache directory for model files
            model_version: Version stamp recorded in index artifacts
                (defaults to the model name)
        """
        self.model_name = model_name
        self.device_preference = device or "auto"
        self.device: Optional[str] = None
        self.batch_size = batch_size
        self.max_seq_length = max_seq_length
        self.max_chunks = max(1, max_chunks)
        self.cache_dir = cache_dir
        self._model_version = model_version or model_name

        self.model: Optional[SentenceTransformer] = None
        self._load_lock = threading.Lock()

    @property
    def model_version(self) -> str:
        return self._model_version

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def load(self) -> None:
        """Fetch and initialize the model. Safe to call more than once."""
        with self._load_lock:
            if self.model is not None:
                return

            device = select_device(self.device_preference)
            logger.info(f"Loading {self.model_name} model on {device}...")
            try:
                model = SentenceTransformer(
                    self.model_name,
                    device=device,
                    cache_folder=str(self.cache_dir) if self.cache_dir else None,
                )
                model.max_seq_length = self.max_seq_length
                model.eval()
            except Exception as e:
                logger.error(f"Failed to load model: {e}")
                raise EmbeddingUnavailable(
                    f"Failed to load embedding model '{self.model_name}': {e}"
                ) from e

            self.device = device
            self.model = model
            logger.info("Model loaded successfully")

    def get_embedding_dimension(self) -> Optional[int]:
        if self.model is None:
            return None
        return self.model.get_sentence_embedding_dimension()

    def embed(self, text: str) -> np.ndarray:
        """
        Embed one text as a unit-length float32 vector.

        Raises:
            EmbeddingUnavailable: model not loaded or inference failed
        """
        if self.model is None:
            raise EmbeddingUnavailable("Embedding model is not loaded")

        try:
            windows = self._split_windows(text or "")
            with torch.no_grad():
                vectors = self.model.encode(
                    windows,
                    batch_size=self.batch_size,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                    convert_to_numpy=True,
                )
        except Exception as e:
            logger.error(f"Encoding failed: {e}")
            raise EmbeddingUnavailable(f"Embedding inference failed: {e}") from e

        vectors = np.asarray(vectors, dtype=np.float32).reshape(len(windows), -1)
        return _unit(vectors.mean(axis=0))

    def _split_windows(self, text: str) -> List[str]:
        """Split text into model-sized windows, keeping at most max_chunks."""
        tokenizer = self.model.tokenizer
        ids = tokenizer(text, add_special_tokens=False, truncation=False)["input_ids"]

        # Room for [CLS] and [SEP]
        window = max(1, self.max_seq_length - 2)
        if len(ids) <= window:
            return [text]

        starts = list(range(0, len(ids), window))
        if len(starts) > self.max_chunks:
            logger.debug(
                f"Input of {len(ids)} tokens truncated to {self.max_chunks} windows"
            )
            starts = starts[: self.max_chunks]
        return [tokenizer.decode(ids[start : start + window]) for start in starts]


def _unit(vector: np.ndarray) -> np.ndarray:
    vector = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


__all__ = ["EmbeddingModel", "SentenceEmbedder", "DEFAULT_MODEL_NAME"]
