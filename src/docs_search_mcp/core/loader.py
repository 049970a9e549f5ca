"""
Progressive Loader Module

Brings semantic search online in the background without blocking keyword
search. States::

    IDLE -> LOADING -> READY | FAILED
    IDLE -> DISABLED                (capability detector declined)

A failed or timed-out load is recorded in the capability profile and not
retried within the session. Cancelling a load abandons in-flight work
silently.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from docs_search_mcp.core.artifact import IndexArtifact
from docs_search_mcp.core.capability import CapabilityDetector
from docs_search_mcp.core.embedder import EmbeddingModel
from docs_search_mcp.core.errors import ArtifactVersionMismatch

logger = logging.getLogger(__name__)

DEFAULT_LOAD_TIMEOUT = 30.0


class LoaderState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    DISABLED = "disabled"


class ProgressiveLoader:
    """Loads the embedding portion of an artifact and the model asynchronously."""

    def __init__(
        self,
        artifact: IndexArtifact,
        embedder: EmbeddingModel,
        detector: CapabilityDetector,
        timeout: float = DEFAULT_LOAD_TIMEOUT,
    ):
        self.artifact = artifact
        self.embedder = embedder
        self.detector = detector
        self.timeout = timeout

        self._state = LoaderState.IDLE
        self.reason = "not started"
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> LoaderState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is LoaderState.READY

    def _transition(self, state: LoaderState, reason: str) -> None:
        logger.info(f"Semantic loader: {self._state.value} -> {state.value} ({reason})")
        self._state = state
        self.reason = reason

    def start(self) -> Optional[asyncio.Task]:
        """
        Begin loading if the capability detector allows it.

        Must be called from a running event loop. Returns the background
        task, or None when no load was started.
        """
        if self._state is not LoaderState.IDLE:
            return self._task

        assessment = self.detector.assess()
        if not assessment.semantic_enabled:
            self._transition(LoaderState.DISABLED, assessment.reason)
            return None

        # State changes before the first await so concurrent queries see LOADING
        self._transition(LoaderState.LOADING, assessment.reason)
        self._task = asyncio.get_running_loop().create_task(self._load())
        return self._task

    async def wait(self) -> LoaderState:
        """Wait for a started load to settle and return the final state."""
        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        return self._state

    async def cancel(self) -> None:
        """Abandon an in-flight load; no error reaches the caller."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # Cancelled before the task got to run
        if self._state is LoaderState.LOADING:
            self._state = LoaderState.FAILED
            self.reason = "cancelled"

    async def _load(self) -> None:
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    asyncio.to_thread(self.artifact.load_embeddings),
                    asyncio.to_thread(self.embedder.load),
                ),
                timeout=self.timeout,
            )

            if self.artifact.model_version != self.embedder.model_version:
                raise ArtifactVersionMismatch(
                    self.artifact.model_version, self.embedder.model_version
                )
            if self.artifact.vector_store is None:
                self._fail("index artifact carries no embeddings")
                return

            self._transition(LoaderState.READY, "semantic search available")

        except asyncio.CancelledError:
            # Host torn down; leave quietly and never restart in this session
            self._state = LoaderState.FAILED
            self.reason = "cancelled"
            logger.debug("Semantic loading cancelled")
            raise
        except asyncio.TimeoutError:
            self._fail(f"loading exceeded {self.timeout:.0f}s")
        except Exception as e:
            self._fail(str(e))

    def _fail(self, reason: str) -> None:
        logger.warning(f"Semantic search unavailable, using keyword search: {reason}")
        self.detector.profile.record_failure(reason)
        self._transition(LoaderState.FAILED, reason)

    def get_stats(self):
        return {"state": self._state.value, "reason": self.reason}
