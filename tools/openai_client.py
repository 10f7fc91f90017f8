"""OpenAI-compatible chat adapter, used for OpenAI and OpenRouter model ids."""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from config.exceptions import (
    InvalidConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from config.settings import Settings

logger = logging.getLogger(__name__)


def _retry_after(error: openai.RateLimitError) -> Optional[float]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class OpenAICompatibleGenerator:
    """Text generator for any OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        name: str,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        timeout: float = 180.0,
        default_headers: Optional[dict] = None,
    ):
        self.name = name
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._default_headers = default_headers or {}
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise InvalidConfigError(f"No API key configured for provider '{self.name}'")
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                default_headers=self._default_headers or None,
            )
        return self._client

    async def generate(self, prompt: str, model_id: str, system_prompt: str = "") -> str:
        """Run one chat completion and return the message text.

        Raises:
            ProviderRateLimitError: On HTTP 429.
            ProviderTimeoutError: If the request times out.
            ProviderError: For any other API failure.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        logger.debug("%s call: model=%s", self.name, model_id)
        try:
            response = await self.client.chat.completions.create(model=model_id, messages=messages)
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(f"{self.name} rate limit: {e}", retry_after=_retry_after(e)) from e
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(f"{self.name} request timed out", {"model": model_id}) from e
        except openai.APIError as e:
            raise ProviderError(f"{self.name} request failed: {e}", {"model": model_id}) from e

        if not response.choices:
            return ""
        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                "%s usage: prompt=%s, completion=%s",
                self.name, usage.prompt_tokens, usage.completion_tokens,
            )
        return content


def openai_generator(settings: Settings) -> OpenAICompatibleGenerator:
    return OpenAICompatibleGenerator(
        name="openai",
        api_key=settings.openai_api_key,
        timeout=settings.provider_timeout,
    )


def openrouter_generator(settings: Settings) -> OpenAICompatibleGenerator:
    return OpenAICompatibleGenerator(
        name="openrouter",
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        timeout=settings.provider_timeout,
        default_headers={"HTTP-Referer": settings.app_url, "X-Title": "BookStudio"},
    )
