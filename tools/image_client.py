"""Cover image generation: prompt building and image provider adapters."""

import logging
from typing import Optional, Protocol

import openai
from openai import AsyncOpenAI

from config.exceptions import BookStudioError, ImageGenerationError, InvalidConfigError
from config.settings import Settings, get_settings
from models.enums import CoverSide
from tools.text_client import ProviderRegistry

logger = logging.getLogger(__name__)

# The DALL-E API only accepts these style values
DALLE_STYLES = ("vivid", "natural")


class ImageGenerator(Protocol):
    async def generate_image(self, prompt: str, model_id: str, style: str) -> str:
        ...


def build_cover_prompt(
    title: str,
    author: str,
    genre: str,
    description: str,
    style: str,
    side: CoverSide = CoverSide.FRONT,
) -> str:
    """Build the artwork prompt for one side of the cover.

    Neither side asks for rendered text; the back cover also leaves out
    any author or product branding.
    """
    if side == CoverSide.BACK:
        return (
            f"Generate the BACK COVER artwork for a {genre} book titled \"{title}\".\n\n"
            f"Description: {description[:300]}\n"
            f"Style: {style}, matching a premium front cover\n\n"
            "Requirements:\n"
            "- Portrait orientation (2:3 aspect ratio)\n"
            "- Calm area in the upper half where a blurb can be overlaid later\n"
            "- DO NOT include any text, author names, logos, or branding\n"
            "- Professional publishing quality\n"
        )
    return (
        f"Generate a stunning professional book cover image for a {genre} book.\n\n"
        f"Title: \"{title}\"\n"
        f"Author: {author}\n"
        f"Description: {description[:300]}\n"
        f"Style: {style}, premium publishing quality\n\n"
        "Requirements:\n"
        "- Portrait orientation (2:3 aspect ratio suitable for book covers)\n"
        f"- High quality, eye-catching design appropriate for {genre}\n"
        "- DO NOT include any text, titles, or author names in the image\n"
        "- Focus on mood, atmosphere, and visual storytelling\n\n"
        "Generate only the background artwork for a book cover."
    )


def extract_image_url(message: dict) -> Optional[str]:
    """Find the image in an OpenRouter chat completion message.

    Images arrive in ``images``, in list ``content`` parts, as a bare
    URL/data URL string, or as ``image_url`` on the message itself.
    """
    for image in message.get("images") or []:
        if not isinstance(image, dict):
            continue
        url = (image.get("image_url") or {}).get("url") or image.get("url")
        if url:
            return url
        if image.get("b64_json"):
            return f"data:image/png;base64,{image['b64_json']}"

    content = message.get("content")
    if isinstance(content, list):
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") in ("image_url", "image"):
                url = (part.get("image_url") or {}).get("url")
                if url:
                    return url
                if part.get("type") == "image" and part.get("data"):
                    return f"data:image/png;base64,{part['data']}"
    elif isinstance(content, str) and content.startswith(("http", "data:image")):
        return content

    direct = message.get("image_url")
    if isinstance(direct, dict) and direct.get("url"):
        return direct["url"]
    if isinstance(direct, str) and direct:
        return direct
    return None


class DallEImageGenerator:
    """OpenAI Images API adapter."""

    def __init__(self, api_key: Optional[str], timeout: float = 180.0):
        self._api_key = api_key
        self._timeout = timeout
        self._client: Optional[AsyncOpenAI] = None

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise InvalidConfigError("OPENAI_API_KEY is required for DALL-E image generation")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def generate_image(self, prompt: str, model_id: str, style: str) -> str:
        api_style = style if style in DALLE_STYLES else "natural"
        logger.debug("DALL-E call: model=%s, style=%s", model_id, api_style)
        try:
            response = await self.client.images.generate(
                model=model_id,
                prompt=prompt,
                n=1,
                size="1024x1792",
                quality="hd",
                style=api_style,
            )
        except openai.APIError as e:
            raise ImageGenerationError(f"DALL-E image generation failed: {e}", {"model": model_id}) from e

        if not response.data or not response.data[0].url:
            raise ImageGenerationError("No images generated by DALL-E", {"model": model_id})
        return response.data[0].url


class OpenRouterImageGenerator:
    """Chat completions with image output modality, via OpenRouter."""

    def __init__(self, settings: Settings, fallback: Optional[DallEImageGenerator] = None):
        self.settings = settings
        self.fallback = fallback
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openrouter_api_key:
                raise InvalidConfigError("OPENROUTER_API_KEY is required for OpenRouter image generation")
            self._client = AsyncOpenAI(
                api_key=self.settings.openrouter_api_key,
                base_url=self.settings.openrouter_base_url,
                timeout=self.settings.provider_timeout,
                default_headers={"HTTP-Referer": self.settings.app_url, "X-Title": "BookStudio"},
            )
        return self._client

    async def generate_image(self, prompt: str, model_id: str, style: str) -> str:
        logger.debug("OpenRouter image call: model=%s", model_id)
        try:
            response = await self.client.chat.completions.create(
                model=model_id,
                messages=[{"role": "user", "content": prompt}],
                extra_body={"modalities": ["image", "text"]},
            )
        except openai.BadRequestError as e:
            # Model does not support image output
            if self.fallback and self.fallback.available:
                logger.warning("%s rejected image request, falling back to DALL-E: %s", model_id, e)
                return await self.fallback.generate_image(prompt, "dall-e-3", style)
            raise ImageGenerationError(f"OpenRouter image generation failed: {e}", {"model": model_id}) from e
        except openai.APIError as e:
            raise ImageGenerationError(f"OpenRouter image generation failed: {e}", {"model": model_id}) from e

        url = None
        if response.choices:
            url = extract_image_url(response.choices[0].message.model_dump())
        if url:
            return url

        if self.fallback and self.fallback.available:
            logger.warning("No image in %s response, falling back to DALL-E", model_id)
            return await self.fallback.generate_image(prompt, "dall-e-3", style)
        raise ImageGenerationError("Could not extract image URL from OpenRouter response", {"model": model_id})


def default_image_registry(settings: Settings) -> ProviderRegistry:
    dalle = DallEImageGenerator(settings.openai_api_key, timeout=settings.provider_timeout)
    registry = ProviderRegistry()
    registry.register_prefix("dall-e", dalle)
    registry.register_rule("vendor/model", lambda m: "/" in m, OpenRouterImageGenerator(settings, fallback=dalle))
    return registry


class ImageGenerationClient:
    """Generates front and back cover artwork. Never retries."""

    def __init__(self, registry: Optional[ProviderRegistry] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.registry = registry or default_image_registry(self.settings)

    async def generate_cover(
        self,
        title: str,
        author: str,
        genre: str,
        description: str,
        style: str = "vivid",
        side: CoverSide = CoverSide.FRONT,
        model_id: Optional[str] = None,
    ) -> str:
        """Generate one cover image and return its URL.

        Raises:
            ImageGenerationError: On any failure, including an unknown model.
        """
        model_id = model_id or self.settings.default_image_model
        prompt = build_cover_prompt(title, author, genre, description, style, side)
        logger.info("Generating %s cover for '%s' with %s", side.value, title, model_id)
        try:
            generator = self.registry.resolve(model_id)
            url = await generator.generate_image(prompt, model_id, style)
        except ImageGenerationError:
            raise
        except BookStudioError as e:
            raise ImageGenerationError(f"Cover generation failed: {e.message}", {"model": model_id, "side": side.value}) from e
        except Exception as e:
            raise ImageGenerationError(f"Cover generation failed: {e}", {"model": model_id, "side": side.value}) from e

        if not url:
            raise ImageGenerationError("Image provider returned no URL", {"model": model_id})
        return url
