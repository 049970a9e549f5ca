"""
Capability Detection Module

Decides once per session whether semantic search should be attempted. The
decision itself is a pure function of the session's capability profile; the
profile is where measurements and failure records live.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from docs_search_mcp.utils.hardware import available_memory_gb

logger = logging.getLogger(__name__)

MIN_MEMORY_GB = 2.0


@dataclass
class CapabilityProfile:
    """Runtime attributes of the current session (never persisted)."""

    available_memory_gb: Optional[float] = None
    prior_failure: bool = False
    failure_reason: Optional[str] = None
    force_keyword_only: bool = False

    @classmethod
    def detect(cls, force_keyword_only: bool = False) -> "CapabilityProfile":
        """Measure the current environment."""
        return cls(
            available_memory_gb=available_memory_gb(),
            force_keyword_only=force_keyword_only,
        )

    def record_failure(self, reason: str) -> None:
        """Remember a failed semantic attempt for the rest of the session."""
        self.prior_failure = True
        self.failure_reason = reason


@dataclass(frozen=True)
class CapabilityAssessment:
    semantic_enabled: bool
    reason: str


class CapabilityDetector:
    """Pure decision over a capability profile."""

    def __init__(self, profile: CapabilityProfile, min_memory_gb: float = MIN_MEMORY_GB):
        self.profile = profile
        self.min_memory_gb = min_memory_gb

    def assess(self) -> CapabilityAssessment:
        profile = self.profile

        if profile.force_keyword_only:
            return CapabilityAssessment(False, "keyword-only mode forced by override")

        if profile.prior_failure:
            detail = f": {profile.failure_reason}" if profile.failure_reason else ""
            return CapabilityAssessment(
                False, f"semantic mode failed earlier in this session{detail}"
            )

        memory = profile.available_memory_gb
        if memory is None:
            return CapabilityAssessment(True, "available memory unknown, attempting semantic mode")

        if memory < self.min_memory_gb:
            return CapabilityAssessment(
                False,
                f"insufficient memory ({memory:.1f}GB < {self.min_memory_gb:.1f}GB required)",
            )

        return CapabilityAssessment(True, f"{memory:.1f}GB available")
