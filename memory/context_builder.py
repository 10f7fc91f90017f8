"""Continuity context for chapter prompts, built from earlier chapters."""

from typing import Protocol, Sequence


class _ChapterLike(Protocol):
    title: str
    content: str


def build_chapter_context(
    chapters: Sequence[_ChapterLike],
    recent: int = 2,
    excerpt_chars: int = 500,
) -> str:
    """Summarize the most recent chapters for the next chapter's prompt.

    Takes the last ``recent`` chapters by position and renders each as
    ``Chapter <title>: <first excerpt_chars chars>...``, separated by a
    blank line. Returns an empty string for no chapters.
    """
    if not chapters or recent <= 0:
        return ""
    window = list(chapters)[-recent:]
    return "\n\n".join(
        f"Chapter {ch.title}: {ch.content[:excerpt_chars]}..." for ch in window
    )
