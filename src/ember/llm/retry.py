"""Retry wrapper for text generators."""

import asyncio
import logging

from ember.llm.client import GenerateTextParams, GenerationError, TextGenerator

logger = logging.getLogger(__name__)


class RetryingGenerator:
    """Retry failed generations with exponential backoff.

    Only :class:`GenerationError` is retried; anything else propagates on
    the first attempt.
    """

    def __init__(self, inner: TextGenerator, max_retries: int = 2, retry_delay: float = 1.0):
        """Wrap a generator.

        Args:
            inner: Generator doing the actual work
            max_retries: Retries after the first failed attempt
            retry_delay: Initial delay in seconds, doubled after every failure
        """
        self.inner = inner
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def generate_text(self, params: GenerateTextParams) -> str:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                return await self.inner.generate_text(params)
            except GenerationError as e:
                if attempt == attempts - 1:
                    raise

                wait_time = self.retry_delay * 2**attempt
                logger.warning(
                    "Generation failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    attempts,
                    wait_time,
                    e,
                )
                await asyncio.sleep(wait_time)

        raise GenerationError("Generation failed")  # pragma: no cover

    async def close(self) -> None:
        close = getattr(self.inner, "close", None)
        if close is not None:
            await close()
