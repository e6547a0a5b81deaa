"""Text generation backends with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present, for local runs and tests.
"""

import hashlib
import json
import logging
from typing import Protocol

from openai import AsyncOpenAI

from backend.hearthere.config import Settings, get_settings

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Protocol for generative text backends."""

    @property
    def name(self) -> str:
        """Model identity reported as modelUsed."""
        ...

    async def generate(self, prompt: str) -> str:
        """Generate text for a prompt.

        Raises:
            Exception: Backend errors; API-level errors are classified by the invoker
        """
        ...


class DeterministicStubGenerator:
    """Deterministic stub generator for testing (no API key required)."""

    def __init__(self, name: str = "stub") -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def generate(self, prompt: str) -> str:
        """Generate deterministic text derived from the prompt."""
        digest = hashlib.sha256(prompt.encode()).hexdigest()[:8]

        # Summary prompts ask for a JSON object
        if "Respond as JSON" in prompt:
            return json.dumps(
                {
                    "summary": f"Placeholder area overview ({digest}).",
                    "keyFacts": [f"Placeholder fact {i + 1}" for i in range(3)],
                }
            )

        first_line = prompt.strip().splitlines()[0] if prompt.strip() else ""
        return (
            f"Welcome! This is a placeholder narration ({digest}).\n\n"
            f"{first_line[:200]}\n\n"
            "This script was generated without a language model."
        )


class OpenAITextGenerator:
    """OpenAI-backed text generator."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.7,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize OpenAI generator.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Chat model name
            temperature: Sampling temperature
            client: Optional preconfigured client (shared between generators)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature

    @property
    def name(self) -> str:
        return self.model

    async def generate(self, prompt: str) -> str:
        """Generate text using the chat completions API."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        return response.choices[0].message.content or ""


def get_text_generators(settings: Settings | None = None) -> tuple[TextGenerator, TextGenerator]:
    """Build the (primary, fallback) generator pair from config.

    Returns:
        OpenAI generators if an API key is configured, deterministic stubs otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info(
            "Using OpenAI generators (primary=%s, fallback=%s)",
            settings.openai_model,
            settings.openai_fallback_model,
        )
        client = AsyncOpenAI(api_key=api_key.get_secret_value())
        primary = OpenAITextGenerator(
            api_key.get_secret_value(),
            model=settings.openai_model,
            temperature=settings.generation_temperature,
            client=client,
        )
        fallback = OpenAITextGenerator(
            api_key.get_secret_value(),
            model=settings.openai_fallback_model,
            temperature=settings.generation_temperature,
            client=client,
        )
        return primary, fallback

    logger.warning("No OpenAI API key configured, using deterministic stub generators")
    return DeterministicStubGenerator("stub-primary"), DeterministicStubGenerator("stub-fallback")
