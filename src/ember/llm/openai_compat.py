"""Text generator for OpenAI-compatible inference servers."""

import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from ember.llm.client import GenerateTextParams, GenerationError, ModelTier

logger = logging.getLogger(__name__)


class OpenAICompatibleGenerator:
    """Text generator for any OpenAI-compatible ``/v1/chat/completions`` endpoint.

    OpenAI, vLLM, SGLang, Ollama and llama.cpp all expose this endpoint, so
    one client covers them; only the base URL and model names differ.
    """

    def __init__(
        self,
        models: dict[ModelTier, str],
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        timeout: int = 120,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> None:
        """Initialise the generator.

        Args:
            models: Concrete model name for each capability tier.
            base_url: OpenAI-compatible endpoint (must include ``/v1``).
            api_key: API key (many local backends ignore this but the SDK requires one).
            timeout: Request timeout in seconds.
            temperature: Default sampling temperature.
            max_tokens: Default maximum tokens to generate.
        """
        self.models = models
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = AsyncOpenAI(
            base_url=base_url, api_key=api_key or "none", timeout=timeout, max_retries=0
        )

    def model_for(self, tier: ModelTier) -> str:
        if tier not in self.models:
            raise GenerationError(f"No model configured for tier {tier}")
        return self.models[tier]

    async def generate_text(self, params: GenerateTextParams) -> str:
        """Generate a completion.

        Args:
            params: System prompt, user prompt, model tier and stop sequences.

        Returns:
            The assistant message content.

        Raises:
            GenerationError: If the request fails or the reply is empty.
        """
        request: dict[str, Any] = {
            "model": self.model_for(params.model),
            "messages": [
                {"role": "system", "content": params.system},
                {"role": "user", "content": params.prompt},
            ],
            "temperature": (
                params.temperature if params.temperature is not None else self.temperature
            ),
            "max_tokens": params.max_tokens or self.max_tokens,
        }

        if params.stop:
            # The API accepts at most four stop sequences
            request["stop"] = params.stop[:4]

        try:
            response = await self.client.chat.completions.create(**request)
        except OpenAIError as e:
            raise GenerationError(f"OpenAI-compatible request failed: {e}") from e

        if not response.choices:
            raise GenerationError("OpenAI-compatible backend returned no choices")

        content = response.choices[0].message.content or ""
        logger.debug("Generated %d characters with %s", len(content), request["model"])
        return content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()
