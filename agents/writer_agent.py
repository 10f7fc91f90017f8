"""Writer Agent: generates one chapter from the outline and continuity context."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import ContractViolationError
from config.settings import Settings
from models.chapter import GeneratedChapter
from models.outline import Outline
from tools.text_client import TextGenerationClient
from tools.text_utils import count_words, sanitize_chapter, strip_end_marker

logger = logging.getLogger(__name__)

# Floor for the requested chapter length
_MIN_CHAPTER_WORDS = 1500


class WriterAgent(BaseAgent):
    """Writes chapters. Fiction and non-fiction use different prompts."""

    def __init__(
        self,
        text_client: Optional[TextGenerationClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(text_client, settings)
        self._template = self._load_prompt("writer")

    def build_prompts(self, outline: Outline, chapter_number: int, context: str = "") -> tuple[str, str]:
        """Return (system_prompt, user_prompt) for one chapter.

        Raises:
            ContractViolationError: If the chapter is not in the outline.
        """
        spec = outline.get_chapter(chapter_number)
        if spec is None:
            raise ContractViolationError(
                f"Chapter {chapter_number} not found in outline",
                {"chapter_number": chapter_number, "total": outline.total_chapters},
            )

        kind = "Non-Fiction" if outline.is_non_fiction else "Fiction"
        system_prompt = self._extract_section(self._template, f"System Prompt ({kind})").format(
            genre=outline.genre,
        )

        context_block = ""
        if context:
            context_block = "\n" + self._extract_section(self._template, "Continuity").format(previous=context)

        characters = "\n".join(
            f"- {c.name} ({c.role}): {c.description}" for c in outline.characters
        ) or "None specified"

        user_prompt = self._extract_section(self._template, f"Chapter Instructions ({kind})").format(
            number=spec.number,
            book_title=outline.title,
            author=outline.author,
            chapter_title=spec.title,
            summary=spec.summary,
            word_count=spec.target_word_count or _MIN_CHAPTER_WORDS,
            min_words=_MIN_CHAPTER_WORDS,
            genre=outline.genre,
            characters=characters,
            themes=", ".join(outline.themes) or "General themes",
            context=context_block,
        )
        return system_prompt, user_prompt

    async def write_chapter(
        self,
        outline: Outline,
        chapter_number: int,
        context: str = "",
        model: Optional[str] = None,
    ) -> GeneratedChapter:
        """Write a single chapter.

        Args:
            outline: The book outline.
            chapter_number: Chapter to write; must exist in the outline.
            context: Continuity summary of earlier chapters.
            model: Model id. Defaults to the configured chapter model.

        Returns:
            GeneratedChapter with sanitized content and a computed word count.
        """
        system_prompt, user_prompt = self.build_prompts(outline, chapter_number, context)
        model = model or self.settings.default_chapter_model
        title = outline.get_chapter(chapter_number).title

        logger.info("Writing chapter %d with %s...", chapter_number, model)
        raw = await self.llm.generate(user_prompt, model, system_prompt)

        content = sanitize_chapter(strip_end_marker(raw))
        chapter = GeneratedChapter(
            chapter_number=chapter_number,
            title=title,
            content=content,
            word_count=count_words(content),
        )
        logger.info("Chapter %d written: %d words", chapter_number, chapter.word_count)
        return chapter
