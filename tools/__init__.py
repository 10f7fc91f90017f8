"""Tools package — provider clients, text utilities, and JSON parsing."""

from tools.llm_client import parse_json_response, parse_json_list
from tools.text_client import TextGenerator, ProviderRegistry, TextGenerationClient
from tools.image_client import ImageGenerationClient, build_cover_prompt
from tools.text_utils import (
    sanitize_chapter,
    strip_end_marker,
    count_words,
    estimate_pages,
    estimate_reading_time,
    split_into_paragraphs,
)

__all__ = [
    "parse_json_response",
    "parse_json_list",
    "TextGenerator",
    "ProviderRegistry",
    "TextGenerationClient",
    "ImageGenerationClient",
    "build_cover_prompt",
    "sanitize_chapter",
    "strip_end_marker",
    "count_words",
    "estimate_pages",
    "estimate_reading_time",
    "split_into_paragraphs",
]
