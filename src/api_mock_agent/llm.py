"""LLM client wrapper around litellm.

Provides a unified interface for calling any LLM model supported by litellm.
Mock generation wants low-variance output, so sampling temperature and the
request timeout are fixed per client and can be lowered per call.
"""

import logging

from litellm import completion

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_TIMEOUT_SECONDS = 60.0


class LlmClient:
    """Wrapper for LLM API calls via litellm."""

    def __init__(
        self,
        model: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.model = model or DEFAULT_MODEL
        self.temperature = temperature
        self.timeout = timeout

    def call(self, system: str, user: str, temperature: float | None = None) -> str:
        """Send a system+user message to the LLM and return the response text (empty if none)."""
        temperature = self.temperature if temperature is None else temperature
        logger.debug(
            "Calling %s (temperature %.2f, system %d chars, user %d chars)",
            self.model, temperature, len(system), len(user),
        )
        response = completion(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            timeout=self.timeout,
        )
        return response.choices[0].message.content or ""
