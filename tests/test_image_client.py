"""Tests for cover prompts, image URL extraction and the image client."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock


class TestBuildCoverPrompt:
    def test_front_prompt_mentions_title_and_no_text(self):
        from models.enums import CoverSide
        from tools.image_client import build_cover_prompt
        prompt = build_cover_prompt("Tides", "Jane Doe", "fantasy", "A sea story", "vivid", CoverSide.FRONT)
        assert '"Tides"' in prompt
        assert "DO NOT include any text" in prompt
        assert "vivid" in prompt

    def test_back_prompt_excludes_branding(self):
        from models.enums import CoverSide
        from tools.image_client import build_cover_prompt
        prompt = build_cover_prompt("Tides", "Jane Doe", "fantasy", "A sea story", "photographic", CoverSide.BACK)
        assert "BACK COVER" in prompt
        assert "branding" in prompt
        assert "Jane Doe" not in prompt

    def test_description_truncated(self):
        from tools.image_client import build_cover_prompt
        prompt = build_cover_prompt("T", "A", "g", "x" * 1000, "vivid")
        assert "x" * 301 not in prompt


class TestExtractImageUrl:
    def test_images_field(self):
        from tools.image_client import extract_image_url
        message = {"images": [{"image_url": {"url": "https://img/1.png"}}]}
        assert extract_image_url(message) == "https://img/1.png"

    def test_base64_image(self):
        from tools.image_client import extract_image_url
        assert extract_image_url({"images": [{"b64_json": "QUJD"}]}) == "data:image/png;base64,QUJD"

    def test_content_parts(self):
        from tools.image_client import extract_image_url
        message = {"content": [{"type": "text", "text": "hi"}, {"type": "image_url", "image_url": {"url": "u"}}]}
        assert extract_image_url(message) == "u"

    def test_content_string_url(self):
        from tools.image_client import extract_image_url
        assert extract_image_url({"content": "https://img/2.png"}) == "https://img/2.png"

    def test_direct_image_url(self):
        from tools.image_client import extract_image_url
        assert extract_image_url({"content": "no image", "image_url": "https://img/3.png"}) == "https://img/3.png"

    def test_nothing_found(self):
        from tools.image_client import extract_image_url
        assert extract_image_url({"content": "sorry, text only"}) is None


class TestDallEImageGenerator:
    @pytest.mark.asyncio
    async def test_portrait_hd_request_and_style_mapping(self):
        from tools.image_client import DallEImageGenerator
        gen = DallEImageGenerator(api_key="sk-test")
        gen._client = MagicMock()
        gen._client.images.generate = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(url="https://img/d.png")])
        )
        assert await gen.generate_image("p", "dall-e-3", "photographic") == "https://img/d.png"
        kwargs = gen._client.images.generate.call_args.kwargs
        assert kwargs["size"] == "1024x1792"
        assert kwargs["quality"] == "hd"
        assert kwargs["style"] == "natural"

    @pytest.mark.asyncio
    async def test_empty_result_raises(self):
        from config.exceptions import ImageGenerationError
        from tools.image_client import DallEImageGenerator
        gen = DallEImageGenerator(api_key="sk-test")
        gen._client = MagicMock()
        gen._client.images.generate = AsyncMock(return_value=SimpleNamespace(data=[]))
        with pytest.raises(ImageGenerationError):
            await gen.generate_image("p", "dall-e-3", "vivid")


class TestOpenRouterImageGenerator:
    def _response(self, message: dict):
        msg = MagicMock()
        msg.model_dump.return_value = message
        return SimpleNamespace(choices=[SimpleNamespace(message=msg)])

    @pytest.mark.asyncio
    async def test_requests_image_modality(self, settings):
        from tools.image_client import OpenRouterImageGenerator
        gen = OpenRouterImageGenerator(settings)
        gen._client = MagicMock()
        gen._client.chat.completions.create = AsyncMock(
            return_value=self._response({"images": [{"image_url": {"url": "https://img/or.png"}}]})
        )
        assert await gen.generate_image("p", "google/gemini-image", "vivid") == "https://img/or.png"
        kwargs = gen._client.chat.completions.create.call_args.kwargs
        assert kwargs["extra_body"] == {"modalities": ["image", "text"]}

    @pytest.mark.asyncio
    async def test_falls_back_to_dalle_when_no_image(self, settings):
        from tools.image_client import OpenRouterImageGenerator
        fallback = MagicMock()
        fallback.available = True
        fallback.generate_image = AsyncMock(return_value="https://img/fallback.png")
        gen = OpenRouterImageGenerator(settings, fallback=fallback)
        gen._client = MagicMock()
        gen._client.chat.completions.create = AsyncMock(return_value=self._response({"content": "text only"}))

        assert await gen.generate_image("p", "google/gemini-image", "vivid") == "https://img/fallback.png"
        fallback.generate_image.assert_awaited_once_with("p", "dall-e-3", "vivid")

    @pytest.mark.asyncio
    async def test_no_image_without_fallback_raises(self, settings):
        from config.exceptions import ImageGenerationError
        from tools.image_client import OpenRouterImageGenerator
        gen = OpenRouterImageGenerator(settings)
        gen._client = MagicMock()
        gen._client.chat.completions.create = AsyncMock(return_value=self._response({"content": "text only"}))
        with pytest.raises(ImageGenerationError, match="extract"):
            await gen.generate_image("p", "google/gemini-image", "vivid")


class TestImageGenerationClient:
    @pytest.mark.asyncio
    async def test_generate_front_cover(self, image_client, fake_image):
        url = await image_client.generate_cover("Tides", "Jane", "fantasy", "desc")
        assert url.startswith("https://images.test/front")
        assert fake_image.calls[0]["style"] == "vivid"
        assert fake_image.calls[0]["model_id"] == "fake-image"

    @pytest.mark.asyncio
    async def test_back_cover_side(self, image_client, fake_image):
        from models.enums import CoverSide
        await image_client.generate_cover("Tides", "Jane", "fantasy", "desc", style="photographic", side=CoverSide.BACK)
        assert fake_image.calls[0]["side"] == "back"

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_image_error(self, image_client, fake_image):
        from config.exceptions import ImageGenerationError
        fake_image.fail_sides = {"front"}
        with pytest.raises(ImageGenerationError, match="down"):
            await image_client.generate_cover("Tides", "Jane", "fantasy", "desc")

    @pytest.mark.asyncio
    async def test_unknown_model_becomes_image_error(self, image_client):
        from config.exceptions import ImageGenerationError
        with pytest.raises(ImageGenerationError):
            await image_client.generate_cover("Tides", "Jane", "fantasy", "desc", model_id="no-such-image-model")
