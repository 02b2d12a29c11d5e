"""
Exception hierarchy for upstream calls.

Estimator failures are classified here so the request queue can decide
whether to retry without knowing which SDK produced them.
"""
from typing import Optional


class EstimatorError(Exception):
    """The probability estimator call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(EstimatorError):
    """Upstream signalled throttling (HTTP 429 or equivalent)."""


class UpstreamServerError(EstimatorError):
    """Upstream returned a 5xx."""


class UpstreamConnectionError(EstimatorError):
    """Connection reset, refused, or timed out."""


class EstimatorConfigError(RuntimeError):
    """No estimator provider is configured."""


class SearchError(Exception):
    """A news / deep-search request failed."""


class SearchConfigError(RuntimeError):
    """A search client was built without its API key."""


class QueueClearedError(Exception):
    """A pending queue task was cancelled by RequestQueue.clear()."""
