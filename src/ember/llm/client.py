"""Text-generation protocol and data types."""

from dataclasses import dataclass, field
from typing import Literal, Protocol, runtime_checkable

ModelTier = Literal["SMALL", "MEDIUM", "LARGE"]


class GenerationError(Exception):
    """The text-generation backend failed to produce a reply."""


class GenerationTimeoutError(GenerationError):
    """A generation round did not finish within its time budget."""


@dataclass
class GenerateTextParams:
    """One request to the text-generation capability."""

    system: str
    prompt: str
    model: ModelTier = "LARGE"
    stop: list[str] = field(default_factory=list)
    max_tokens: int | None = None
    temperature: float | None = None


@runtime_checkable
class TextGenerator(Protocol):
    """Protocol for text-generation backends.

    The core treats the model tier as an opaque capability selector; mapping
    tiers to concrete models is the implementation's concern.
    """

    async def generate_text(self, params: GenerateTextParams) -> str:
        """Generate text from a system prompt and a user prompt.

        Args:
            params: System prompt, user prompt, model tier and stop sequences

        Returns:
            Generated text

        Raises:
            GenerationError: If the backend fails
        """
        ...
