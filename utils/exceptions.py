"""
Custom exception hierarchy for EvalArena.

All project-specific exceptions inherit from EvalArenaError.
"""

from typing import Optional


class EvalArenaError(Exception):
    """Base exception for EvalArena."""

    pass


class ConfigError(EvalArenaError):
    """Invalid or missing configuration."""

    pass


class RequestError(EvalArenaError):
    """Malformed evaluation request."""

    pass


class ProviderError(EvalArenaError):
    """Error raised by a model backend."""

    pass


class UnsupportedModelError(ProviderError):
    """Model identifier does not map to any known provider."""

    def __init__(self, model_id: str):
        super().__init__(f"Unsupported model: {model_id}")
        self.model_id = model_id


class ScoringError(EvalArenaError):
    """Error while computing an evaluation metric."""

    pass


class StreamClosedError(EvalArenaError):
    """Write attempted on an output stream that is already closed."""

    pass


class DatabaseError(EvalArenaError):
    """Error with result store operations."""

    pass


class NotFoundError(DatabaseError):
    """Referenced record does not exist."""

    pass


class ReportingError(EvalArenaError):
    """Error during report generation."""

    pass


class EvaluationClientError(EvalArenaError):
    """HTTP error returned to the evaluation client."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
