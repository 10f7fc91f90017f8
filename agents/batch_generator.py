"""Chapter Batch Generator: writes a group of chapters in parallel or in order."""

import asyncio
import logging
from typing import Optional, Sequence

from agents.writer_agent import WriterAgent
from config.exceptions import ContractViolationError
from config.settings import Settings, get_settings
from memory.context_builder import build_chapter_context
from models.chapter import GeneratedChapter
from models.enums import ExecutionMode
from models.outline import Outline

logger = logging.getLogger(__name__)


class ChapterBatchGenerator:
    """Generates one batch of chapters.

    Parallel mode gives every chapter the same context, built from the
    chapters before the batch, and a failed call cancels the rest before
    the error propagates. Sequential mode writes in ascending order
    and rebuilds the context after each chapter.
    """

    def __init__(self, writer: WriterAgent, settings: Optional[Settings] = None):
        self.writer = writer
        self.settings = settings or get_settings()

    def _context(self, chapters: Sequence[GeneratedChapter]) -> str:
        return build_chapter_context(
            chapters,
            recent=self.settings.context_recent_chapters,
            excerpt_chars=self.settings.context_excerpt_chars,
        )

    async def generate_batch(
        self,
        outline: Outline,
        chapter_numbers: Sequence[int],
        previous_chapters: Sequence[GeneratedChapter],
        model: str,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> list[GeneratedChapter]:
        """Generate the requested chapters, returned in requested order.

        Raises:
            ContractViolationError: If a number is absent from the outline.
                Raised before any provider call.
            ProviderError: Propagated from the text client.
        """
        missing = [n for n in chapter_numbers if outline.get_chapter(n) is None]
        if missing:
            raise ContractViolationError(
                "Requested chapters are not in the outline",
                {"missing": missing},
            )
        if not chapter_numbers:
            return []

        logger.info(
            "Generating chapters %s (%s, model=%s)",
            list(chapter_numbers), mode.value, model,
        )

        if mode == ExecutionMode.PARALLEL:
            context = self._context(previous_chapters)
            tasks = [
                asyncio.ensure_future(self.writer.write_chapter(outline, number, context, model))
                for number in chapter_numbers
            ]
            try:
                chapters = await asyncio.gather(*tasks)
            except BaseException:
                # No sibling call may outlive a failed batch
                pending = [t for t in tasks if not t.done()]
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                if pending:
                    logger.warning("Cancelled %d in-flight chapter calls after a failure", len(pending))
                raise
            return list(chapters)

        generated: list[GeneratedChapter] = []
        context = self._context(previous_chapters)
        for number in sorted(chapter_numbers):
            chapter = await self.writer.write_chapter(outline, number, context, model)
            generated.append(chapter)
            context = self._context([*previous_chapters, *generated])

        by_number = {ch.chapter_number: ch for ch in generated}
        return [by_number[n] for n in chapter_numbers]
