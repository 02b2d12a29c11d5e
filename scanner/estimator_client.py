"""
Claude-backed probability estimator client.

Thin wrapper over anthropic.AsyncAnthropic that:
  - fails fast at construction when no API key is configured
  - maps SDK errors onto models.errors so the request queue can classify
    them without depending on the SDK's exception types
"""
import logging
from typing import Optional

import anthropic

from config import (
    ANTHROPIC_API_KEY,
    CLAUDE_MODEL,
    ESTIMATOR_MAX_TOKENS,
    ESTIMATOR_TEMPERATURE,
    ESTIMATOR_TIMEOUT_SECONDS,
)
from models.errors import (
    EstimatorConfigError,
    EstimatorError,
    RateLimitedError,
    UpstreamConnectionError,
    UpstreamServerError,
)

logger = logging.getLogger("recommender.estimator")


def translate_error(e: Exception) -> Exception:
    """Map an anthropic SDK error onto the EstimatorError hierarchy."""
    if isinstance(e, anthropic.RateLimitError):
        return RateLimitedError(str(e), status_code=429)
    if isinstance(e, anthropic.APIConnectionError):  # includes APITimeoutError
        return UpstreamConnectionError(str(e))
    if isinstance(e, anthropic.APIStatusError):
        if e.status_code >= 500:
            return UpstreamServerError(str(e), status_code=e.status_code)
        return EstimatorError(str(e), status_code=e.status_code)
    return e


class EstimatorClient:
    def __init__(
        self,
        api_key: Optional[str] = ANTHROPIC_API_KEY,
        model: str = CLAUDE_MODEL,
        max_tokens: int = ESTIMATOR_MAX_TOKENS,
        temperature: float = ESTIMATOR_TEMPERATURE,
        timeout: float = ESTIMATOR_TIMEOUT_SECONDS,
    ):
        if not api_key:
            raise EstimatorConfigError("No AI provider configured: set ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        # Retries are owned by RequestQueue
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def generate(self, prompt: str, system: str = "") -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
                system=system,
            )
        except anthropic.APIError as e:
            raise translate_error(e) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        if not text:
            raise EstimatorError("Empty response from estimator")
        return text
