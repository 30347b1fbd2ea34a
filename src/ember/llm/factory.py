"""Factory function for creating text generators from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ember.llm.anthropic import AnthropicGenerator
from ember.llm.client import ModelTier, TextGenerator
from ember.llm.openai_compat import OpenAICompatibleGenerator
from ember.llm.retry import RetryingGenerator

if TYPE_CHECKING:
    from ember.config.schema import EmberConfig


def create_text_generator(config: EmberConfig) -> TextGenerator:
    """Create a text generator based on configuration.

    Reads ``config.llm.backend`` and returns the matching generator, wrapped
    in a :class:`RetryingGenerator` when ``config.llm.max_retries`` is set.

    Args:
        config: Ember configuration.

    Returns:
        A text generator for the configured backend.

    Raises:
        ValueError: If the backend is not recognised or lacks an API key.
    """
    llm = config.llm
    models: dict[ModelTier, str] = {
        "SMALL": llm.models.small,
        "MEDIUM": llm.models.medium,
        "LARGE": llm.models.large,
    }

    generator: TextGenerator
    if llm.backend == "openai":
        generator = OpenAICompatibleGenerator(
            models=models,
            base_url=llm.base_url,
            api_key=llm.api_key,
            timeout=llm.timeout,
            temperature=llm.temperature,
            max_tokens=llm.max_tokens,
        )
    elif llm.backend == "anthropic":
        if not llm.api_key:
            raise ValueError("The anthropic backend requires llm.api_key")
        generator = AnthropicGenerator(
            api_key=llm.api_key,
            models=models,
            max_tokens=llm.max_tokens,
            timeout=llm.timeout,
            temperature=llm.temperature,
        )
    else:
        raise ValueError(f"Unknown LLM backend: {llm.backend}")

    if llm.max_retries > 0:
        return RetryingGenerator(generator, llm.max_retries, llm.retry_delay)
    return generator
