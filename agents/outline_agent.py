"""Outline Agent: turns a short book brief into a structured Outline."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import InvalidConfigError, ProviderResponseParseError
from config.settings import Settings
from models.outline import CharacterSpec, Outline
from tools.text_client import TextGenerationClient

logger = logging.getLogger(__name__)

# Target manuscript length in words per length preset
LENGTH_WORDS = {
    "micro": 10000,
    "novella": 20000,
    "short-novel": 30000,
    "short": 50000,
    "medium": 80000,
    "long": 120000,
    "epic": 150000,
}


@dataclass
class OutlineBrief:
    """What the author asks for before an outline exists."""
    author: str
    genre: str
    description: str
    chapters: int = 10
    length: str = "medium"
    tone: str = "engaging"
    audience: str = "general readers"
    title: Optional[str] = None
    non_fiction: bool = False
    characters: list[CharacterSpec] = field(default_factory=list)
    instructions: str = ""

    @property
    def words_per_chapter(self) -> int:
        return LENGTH_WORDS.get(self.length, 80000) // max(self.chapters, 1)


class OutlineAgent(BaseAgent):
    """Generates book outlines as JSON and parses them into Outline objects."""

    def __init__(
        self,
        text_client: Optional[TextGenerationClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(text_client, settings)
        self._template = self._load_prompt("outline")

    def build_prompts(self, brief: OutlineBrief) -> tuple[str, str]:
        kind = "Non-Fiction" if brief.non_fiction else "Fiction"
        system_prompt = self._extract_section(self._template, f"System Prompt ({kind})")

        title = (brief.title or "").strip()
        title_instruction = (
            f"IMPORTANT - Use this EXACT title: \"{title}\". Do NOT create a different title."
            if title else ""
        )
        if brief.characters:
            character_instruction = (
                "IMPORTANT - Use these EXACT characters in the outline:\n"
                + "\n".join(f"- {c.name} ({c.role}): {c.description}" for c in brief.characters)
                + "\nDo NOT create new main characters."
            )
            character_line = "Use the EXACT characters provided above"
        else:
            character_instruction = ""
            character_line = "Main characters (name, role, brief description)"

        user_prompt = self._extract_section(self._template, f"Outline Request ({kind})").format(
            genre=brief.genre,
            chapters=brief.chapters,
            author=brief.author,
            tone=brief.tone,
            audience=brief.audience,
            description=brief.description,
            title_instruction=title_instruction,
            character_instruction=character_instruction,
            instructions=f"Instructions: {brief.instructions}" if brief.instructions else "",
            title_line=f"Use the exact title provided above: \"{title}\"" if title else "An engaging title",
            words_per_chapter=brief.words_per_chapter,
            character_line=character_line,
        )
        return system_prompt, user_prompt

    async def generate_outline(self, brief: OutlineBrief, model: Optional[str] = None) -> Outline:
        """Generate and validate an outline.

        A title or characters given in the brief override what the model
        returns. Non-fiction outlines never carry characters.

        Raises:
            ProviderResponseParseError: If the response is not a usable outline.
        """
        if brief.chapters < 1:
            raise InvalidConfigError("An outline needs at least one chapter")

        model = model or self.settings.default_outline_model
        system_prompt, user_prompt = self.build_prompts(brief)
        logger.info("Generating %d-chapter outline with %s", brief.chapters, model)

        data = await self.llm.generate_json(user_prompt, model, system_prompt)
        data.setdefault("author", brief.author)
        data.setdefault("genre", brief.genre)
        data.setdefault("description", brief.description)
        if brief.title:
            data["title"] = brief.title
        if brief.non_fiction:
            data["characters"] = []
        elif brief.characters:
            data["characters"] = [
                {"name": c.name, "role": c.role, "description": c.description}
                for c in brief.characters
            ]

        try:
            outline = Outline.from_dict(data)
            outline.validate()
        except InvalidConfigError as e:
            raise ProviderResponseParseError(f"Model returned an unusable outline: {e.message}") from e

        logger.info("Outline generated: '%s' (%d chapters)", outline.title, outline.total_chapters)
        return outline
