"""Shared fixtures: a deterministic embedding model and a small corpus."""

import hashlib
import threading
import time
from typing import Dict, Optional

import numpy as np
import pytest

from docs_search_mcp.core.errors import EmbeddingUnavailable
from docs_search_mcp.core.models import Document
from docs_search_mcp.core.text import tokenize

DIMENSION = 64


class FakeEmbedder:
    """Bag-of-words hashing embedder; texts sharing terms are similar."""

    def __init__(
        self,
        model_version: str = "fake-v1",
        dimension: int = DIMENSION,
        fail_load: bool = False,
        fail_embed: bool = False,
        loaded: bool = True,
        vectors: Optional[Dict[str, np.ndarray]] = None,
        delays: Optional[Dict[str, float]] = None,
        load_delay: float = 0.0,
    ):
        self._model_version = model_version
        self.dimension = dimension
        self.fail_load = fail_load
        self.fail_embed = fail_embed
        self._loaded = loaded
        self.vectors = vectors or {}
        self.delays = delays or {}
        self.load_delay = load_delay
        self.embed_calls = 0
        self.load_calls = 0
        self._lock = threading.Lock()

    @property
    def model_version(self) -> str:
        return self._model_version

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        self.load_calls += 1
        if self.load_delay:
            time.sleep(self.load_delay)
        if self.fail_load:
            raise EmbeddingUnavailable("model download failed")
        self._loaded = True

    def embed(self, text: str) -> np.ndarray:
        with self._lock:
            self.embed_calls += 1
        if not self._loaded:
            raise EmbeddingUnavailable("Embedding model is not loaded")
        if self.fail_embed:
            raise EmbeddingUnavailable("inference failed")
        if text in self.delays:
            time.sleep(self.delays[text])
        if text in self.vectors:
            return np.asarray(self.vectors[text], dtype=np.float32)

        vector = np.zeros(self.dimension, dtype=np.float32)
        for token in tokenize(text):
            digest = hashlib.md5(token.term.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "little") % self.dimension] += 1.0
        norm = np.linalg.norm(vector)
        return vector / norm if norm else vector


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


def make_corpus():
    return [
        Document(
            id="v1.0.0/patterns/saga",
            title="Saga Pattern",
            body="A saga coordinates a long running transaction across services "
            "using compensating actions.",
            category="Patterns",
            version="v1.0.0",
            last_modified=100.0,
        ),
        Document(
            id="drafts/saga-orchestration",
            title="Saga Orchestration Saga",
            body="Saga saga saga: orchestration of saga steps with a saga coordinator.",
            category="Patterns",
            version="drafts",
            last_modified=200.0,
        ),
        Document(
            id="v1.0.0/architecture/event-sourcing",
            title="Event Sourcing",
            body="Event sourcing stores every state change as an immutable event "
            "in an append-only log.",
            category="Architecture",
            version="v1.0.0",
            last_modified=150.0,
        ),
        Document(
            id="getting-started",
            title="Getting Started",
            body="Install the toolkit and run the development server.",
            category="General",
            version=None,
            last_modified=50.0,
        ),
    ]


@pytest.fixture
def corpus():
    return make_corpus()
