"""
Text Generation — the external language-model collaborator.

Stakeholder introductions, opinions and reflection feedback are free text
produced by a language model. The engine never depends on that text: a
failed or timed-out call degrades to fallback text, and votes are recorded
regardless.

Two generators are provided:
- LiteLLMTextGenerator — real completions through LiteLLM
- EchoTextGenerator    — offline stand-in that echoes the prompt
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import litellm

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 150
DEFAULT_TEMPERATURE = 0.7


class TextGenerationError(Exception):
    """Raised when the language model fails to produce text."""
    pass


class TextGenerator(Protocol):
    """Anything that turns a prompt into free text."""

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        ...


class LiteLLMTextGenerator:
    """
    Text generator backed by ``litellm.acompletion``.

    The prompt is sent as a single system message, which is how the
    stakeholder and feedback prompts are written.
    """

    def __init__(
        self,
        model: str,
        timeout_seconds: float = 20.0,
        api_key: str | None = None,
    ) -> None:
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key or None

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        """
        Generate a completion for the prompt.

        Raises:
            TextGenerationError: On timeout, provider error or empty output.
        """
        try:
            response = await asyncio.wait_for(
                litellm.acompletion(
                    model=self.model,
                    messages=[{"role": "system", "content": prompt}],
                    max_tokens=max_tokens,
                    temperature=temperature,
                    api_key=self.api_key,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TextGenerationError(
                f"{self.model} did not answer within {self.timeout_seconds}s"
            ) from e
        except Exception as e:
            raise TextGenerationError(f"{self.model} completion failed: {e}") from e

        content = response.choices[0].message.content or ""
        if not content.strip():
            raise TextGenerationError(f"{self.model} returned an empty completion")
        return content.strip()


class EchoTextGenerator:
    """Offline generator used when no language model is configured."""

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        return f"This is a simulated AI response for: {prompt.strip()[:50]}..."


async def generate_or_fallback(
    generator: TextGenerator,
    prompt: str,
    fallback: str,
    *,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    temperature: float = DEFAULT_TEMPERATURE,
) -> str:
    """
    Generate text, substituting ``fallback`` when the generator fails.

    Only TextGenerationError and timeouts are absorbed; programming
    errors propagate.
    """
    try:
        return await generator.generate(
            prompt, max_tokens=max_tokens, temperature=temperature,
        )
    except (TextGenerationError, asyncio.TimeoutError) as e:
        logger.warning("Text generation failed, using fallback: %s", e)
        return fallback


def build_text_generator(
    model: str,
    api_key: str = "",
    timeout_seconds: float = 20.0,
) -> TextGenerator:
    """LiteLLM when an API key is configured, otherwise the offline echo."""
    if not api_key:
        logger.warning("No language model API key configured — using offline echo generator")
        return EchoTextGenerator()
    return LiteLLMTextGenerator(model=model, timeout_seconds=timeout_seconds, api_key=api_key)
