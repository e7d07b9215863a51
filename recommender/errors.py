"""
Exception definitions for the recommendation engine.

All exceptions carry a message and a details dict so callers can log
structured context without parsing strings.

Only ``CandidateSourceError`` and ``RankingCancelledError`` ever reach the
caller of the ranking API; the others are contained inside the engine and
surface only as lower scores or cache misses.
"""
from __future__ import annotations

from typing import Any


class RecommenderError(Exception):
    """
    Base exception for recommendation engine errors.

    Attributes:
        message: Error message
        details: Additional context as a dictionary
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StrategyEvaluationError(RecommenderError):
    """Raised when one strategy fails for one item."""


class ExternalDependencyError(StrategyEvaluationError):
    """
    Raised when the semantic scoring service fails.

    Covers a missing API key, network errors, timeouts, and responses that
    cannot be parsed into a score.
    """


class CandidateSourceError(RecommenderError):
    """Raised when the catalog cannot supply candidate items."""


class CacheBackendError(RecommenderError):
    """Raised by a cache backend when its store is unreachable."""


class RankingCancelledError(RecommenderError):
    """Raised when the caller cancels a ranking request in flight."""
