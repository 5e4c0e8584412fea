"""Exception types shared across the maturity engine."""
from __future__ import annotations

from typing import Any


class MaturityError(Exception):
    """Base class for all engine errors."""


# ---------------------------------------------------------------------------
# Input errors: rejected immediately, never guessed around
# ---------------------------------------------------------------------------


class InvalidAnswerValue(MaturityError):
    """An answer is not an integer in the closed interval [1, 5]."""
    def __init__(self, question_id: str, value: Any):
        super().__init__(f"Answer for {question_id!r} must be an integer 1-5, got {value!r}")
        self.question_id = question_id
        self.value = value


class MissingCatalog(MaturityError):
    """The active question catalog is empty or could not be loaded."""


class MissingScores(MaturityError):
    """A category-score vector was required but is empty."""


# ---------------------------------------------------------------------------
# Collaborator errors: recovered locally by the narrative and roadmap paths
# ---------------------------------------------------------------------------


class GenerationError(MaturityError):
    """Text generation failed."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class GenerationUnavailable(GenerationError):
    """Network, auth, quota or timeout failure talking to the generator."""
    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class MalformedResponse(GenerationError):
    """The generator answered, but not in the requested shape."""
    def __init__(self, message: str):
        super().__init__(message, retryable=False)


class NotFound(MaturityError, LookupError):
    """A stored record (survey result, question, plan entry) does not exist."""
    def __init__(self, kind: str, key: Any):
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key
