"""Text generation client: routes model ids to provider adapters."""

import logging
from typing import Callable, Optional, Protocol

from config.exceptions import (
    BookStudioError,
    ProviderError,
    ProviderResponseParseError,
    UnknownModelError,
)
from config.settings import Settings, get_settings
from tools.llm_client import parse_json_response, parse_json_list

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """A provider adapter that turns a prompt into text."""

    async def generate(self, prompt: str, model_id: str, system_prompt: str = "") -> str:
        ...


class ProviderRegistry:
    """Maps model ids to text generators.

    Lookup order: exact id, then rules in registration order.
    """

    def __init__(self):
        self._exact: dict[str, TextGenerator] = {}
        self._rules: list[tuple[str, Callable[[str], bool], TextGenerator]] = []

    def register(self, model_id: str, generator: TextGenerator) -> None:
        self._exact[model_id] = generator

    def register_prefix(self, prefix: str, generator: TextGenerator) -> None:
        self._rules.append((f"{prefix}*", lambda m, p=prefix: m.startswith(p), generator))

    def register_rule(self, name: str, predicate: Callable[[str], bool], generator: TextGenerator) -> None:
        self._rules.append((name, predicate, generator))

    def resolve(self, model_id: str) -> TextGenerator:
        if not model_id:
            raise UnknownModelError(model_id or "")
        if model_id in self._exact:
            return self._exact[model_id]
        for _name, predicate, generator in self._rules:
            if predicate(model_id):
                return generator
        raise UnknownModelError(model_id)

    def describe(self) -> list[str]:
        return list(self._exact) + [name for name, _, _ in self._rules]

    @classmethod
    def default(cls, settings: Optional[Settings] = None) -> "ProviderRegistry":
        """Registry with the Claude, OpenAI and OpenRouter adapters."""
        from tools.agent_sdk_client import ClaudeAgentGenerator
        from tools.openai_client import openai_generator, openrouter_generator

        settings = settings or get_settings()
        registry = cls()
        claude = ClaudeAgentGenerator()
        openai_native = openai_generator(settings)
        registry.register_prefix("claude-", claude)
        for prefix in ("gpt-", "o1", "o3"):
            registry.register_prefix(prefix, openai_native)
        registry.register_rule("vendor/model", lambda m: "/" in m, openrouter_generator(settings))
        return registry


class TextGenerationClient:
    """Single entry point for text generation calls.

    Resolves the adapter for a model id, logs each call, and normalizes
    failures into the ProviderError family.
    """

    def __init__(self, registry: Optional[ProviderRegistry] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.registry = registry or ProviderRegistry.default(self.settings)
        self.total_calls = 0

    async def generate(self, prompt: str, model_id: str, system_prompt: str = "") -> str:
        """Generate text with the adapter registered for ``model_id``.

        Raises:
            UnknownModelError: If no adapter handles the model id.
            ProviderError: If the call fails or returns no text.
        """
        generator = self.registry.resolve(model_id)
        self.total_calls += 1
        logger.debug("Text call #%d: model=%s, prompt=%d chars", self.total_calls, model_id, len(prompt))

        try:
            text = await generator.generate(prompt, model_id, system_prompt)
        except BookStudioError:
            raise
        except Exception as e:
            raise ProviderError(f"Text generation failed: {e}", {"model": model_id}) from e

        if not text or not text.strip():
            raise ProviderError("Provider returned an empty response", {"model": model_id})

        logger.debug("Text call #%d done: %d chars", self.total_calls, len(text))
        return text

    async def generate_json(self, prompt: str, model_id: str, system_prompt: str = "") -> dict:
        text = await self.generate(prompt, model_id, system_prompt)
        try:
            return parse_json_response(text)
        except ValueError as e:
            raise ProviderResponseParseError(str(e), raw_response=text) from e

    async def generate_json_list(self, prompt: str, model_id: str, system_prompt: str = "", key: str = "references") -> list:
        text = await self.generate(prompt, model_id, system_prompt)
        try:
            return parse_json_list(text, key=key)
        except ValueError as e:
            raise ProviderResponseParseError(str(e), raw_response=text) from e

    def get_usage_summary(self) -> dict:
        """Return call count statistics."""
        return {"total_calls": self.total_calls}
