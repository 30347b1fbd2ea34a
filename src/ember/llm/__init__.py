"""Text-generation port and its implementations."""

from .anthropic import AnthropicGenerator
from .client import (
    GenerateTextParams,
    GenerationError,
    GenerationTimeoutError,
    ModelTier,
    TextGenerator,
)
from .factory import create_text_generator
from .openai_compat import OpenAICompatibleGenerator
from .retry import RetryingGenerator

__all__ = [
    "AnthropicGenerator",
    "GenerateTextParams",
    "GenerationError",
    "GenerationTimeoutError",
    "ModelTier",
    "OpenAICompatibleGenerator",
    "RetryingGenerator",
    "TextGenerator",
    "create_text_generator",
]
