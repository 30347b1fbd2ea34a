"""Anthropic text generator using httpx.

Talks to the Anthropic Messages API directly through httpx instead of the
anthropic SDK.
"""

import logging
from typing import Any

import httpx

from ember.llm.client import GenerateTextParams, GenerationError, ModelTier

logger = logging.getLogger(__name__)

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"


class AnthropicGenerator:
    """Text generator for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        models: dict[ModelTier, str],
        max_tokens: int = 4096,
        timeout: int = 120,
        temperature: float = 0.7,
        base_url: str = ANTHROPIC_BASE_URL,
    ):
        """Initialize Anthropic generator.

        Args:
            api_key: Anthropic API key
            models: Concrete model name for each capability tier
            max_tokens: Default max tokens for responses
            timeout: Request timeout in seconds
            temperature: Default sampling temperature
            base_url: API host
        """
        self.models = models
        self.max_tokens = max_tokens
        self.temperature = temperature

        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_API_VERSION,
                "content-type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
        )

    async def generate_text(self, params: GenerateTextParams) -> str:
        """Generate a completion from Anthropic.

        Args:
            params: System prompt, user prompt, model tier and stop sequences

        Returns:
            The text blocks of the reply, joined

        Raises:
            GenerationError: On HTTP failures or an unknown tier
        """
        if params.model not in self.models:
            raise GenerationError(f"No model configured for tier {params.model}")

        payload: dict[str, Any] = {
            "model": self.models[params.model],
            "messages": [{"role": "user", "content": params.prompt}],
            "max_tokens": params.max_tokens or self.max_tokens,
            "temperature": (
                params.temperature if params.temperature is not None else self.temperature
            ),
        }

        if params.system:
            payload["system"] = params.system

        if params.stop:
            payload["stop_sequences"] = params.stop

        try:
            response = await self.client.post("/v1/messages", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise GenerationError(f"Anthropic request failed: {e}") from e

        data = response.json()
        text = "".join(
            block["text"] for block in data.get("content", []) if block.get("type") == "text"
        )
        logger.debug(
            "Generated %d characters with %s (stop_reason=%s)",
            len(text),
            payload["model"],
            data.get("stop_reason"),
        )
        return text

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
