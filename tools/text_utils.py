"""Chapter text utilities: sanitization, word counting, page estimates."""

import math
import re

# Markers models append to chapter output
_META_PATTERNS = [
    re.compile(r"\[END CHAPTER\]", re.IGNORECASE),
    re.compile(r"\[CHAPTER END\]", re.IGNORECASE),
    re.compile(r"\[CONTINUE\]", re.IGNORECASE),
    re.compile(r"\[CONTINUED\]", re.IGNORECASE),
    re.compile(r"\[TO BE CONTINUED\]", re.IGNORECASE),
    re.compile(r"\[END\]", re.IGNORECASE),
    re.compile(r"\[START\]", re.IGNORECASE),
    re.compile(r"\[BEGIN\]", re.IGNORECASE),
    re.compile(r"Chapter \d+ - .+?\n", re.IGNORECASE),
    re.compile(r"---+\n"),
    re.compile(r"\*\*\*+\n"),
]

_END_CHAPTER_RE = re.compile(r"\s*\[END CHAPTER\]\s*$", re.IGNORECASE)


def remove_meta_text(text: str) -> str:
    """Strip bracketed markers, separator lines, and author notes."""
    for pattern in _META_PATTERNS:
        text = pattern.sub("", text)
    text = re.sub(r"^\[.*?\]$", "", text, flags=re.MULTILINE)
    text = re.sub(r"^Note:.*$", "", text, flags=re.MULTILINE)
    text = re.sub(r"^Author's Note:.*$", "", text, flags=re.MULTILINE)
    return text


def remove_markdown(text: str) -> str:
    """Remove code blocks, headers, emphasis, links and horizontal rules."""
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*\*(.+?)\*\*\*", r"\1", text)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"\*(.+?)\*", r"\1", text)
    text = re.sub(r"___(.+?)___", r"\1", text)
    text = re.sub(r"__(.+?)__", r"\1", text)
    text = re.sub(r"(?<!\w)_(.+?)_(?!\w)", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"^[-*_]{3,}$", "", text, flags=re.MULTILINE)
    return text


def fix_quotes(text: str) -> str:
    """Convert straight quotes to typographic quotes."""
    text = re.sub(r'"([^"]*)"', "\u201c\\1\u201d", text)
    text = re.sub(r"(\w)'(\w)", "\\1\u2019\\2", text)
    text = re.sub(r"'([^']*)'", "\u2018\\1\u2019", text)
    text = re.sub(r'^"', "\u201c", text, flags=re.MULTILINE)
    text = re.sub(r'"$', "\u201d", text, flags=re.MULTILINE)
    text = re.sub(r"^'", "\u2018", text, flags=re.MULTILINE)
    text = re.sub(r"'$", "\u2019", text, flags=re.MULTILINE)
    return text


def fix_dashes(text: str) -> str:
    text = text.replace("---", "\u2014").replace("--", "\u2014")
    text = re.sub(r"[ \t]+-[ \t]+", "\u2014", text)
    text = re.sub(r"(\d+)-(\d+)", "\\1\u2013\\2", text)
    return text


def fix_spacing(text: str) -> str:
    """Collapse runs of spaces and blank lines, tidy punctuation spacing."""
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+$", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[ \t]+", "", text, flags=re.MULTILINE)
    text = re.sub(r"[ \t]+([.,!?;:])", r"\1", text)
    text = re.sub(r"([.,!?;:])([A-Za-z])", r"\1 \2", text)
    return text


def sanitize_chapter(content: str) -> str:
    """Clean raw model output into publishable chapter prose.

    Chapter headings are kept; meta markers, markdown and spacing
    artifacts are removed and quotes/dashes are made typographic.
    """
    if not content:
        return ""
    text = remove_meta_text(content)
    text = remove_markdown(text)
    text = fix_quotes(text)
    text = fix_dashes(text)
    text = fix_spacing(text)
    return text.strip()


def strip_end_marker(content: str) -> str:
    """Remove a trailing [END CHAPTER] marker."""
    return _END_CHAPTER_RE.sub("", content).rstrip()


def count_words(text: str) -> int:
    """Count whitespace-separated tokens."""
    if not text:
        return 0
    return len(text.split())


def estimate_pages(word_count: int, words_per_page: int = 250) -> int:
    return math.ceil(word_count / words_per_page) if word_count > 0 else 0


def estimate_reading_time(word_count: int, words_per_minute: int = 250) -> int:
    """Estimated reading time in minutes."""
    return math.ceil(word_count / words_per_minute) if word_count > 0 else 0


def split_into_paragraphs(text: str) -> list[str]:
    """Split text into paragraphs by blank lines."""
    if not text:
        return []
    return [p.strip() for p in re.split(r"\n\n+", text) if p.strip()]
