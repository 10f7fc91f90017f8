"""Outline and generation config: the immutable inputs of a run."""

from dataclasses import dataclass, asdict
from typing import Optional

from config.exceptions import InvalidConfigError
from models.enums import CitationStyle, ExecutionMode, GenerationSpeed

# Model used for a speed preset when the config names no model
SPEED_MODEL_MAP = {
    GenerationSpeed.QUALITY: "anthropic/claude-sonnet-4",
    GenerationSpeed.BALANCED: "google/gemini-2.5-flash-preview",
    GenerationSpeed.FAST: "anthropic/claude-3.5-haiku",
}


def _pick(data: dict, *keys, default=None):
    """Return the first present key, accepting both snake_case and camelCase payloads."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class ChapterSpec:
    """One planned chapter of an outline."""
    number: int
    title: str
    summary: str = ""
    target_word_count: int = 0


@dataclass(frozen=True)
class CharacterSpec:
    name: str
    role: str = ""
    description: str = ""


@dataclass(frozen=True)
class Outline:
    """Structured book plan used as generation input."""
    title: str
    author: str
    genre: str
    description: str
    chapters: tuple[ChapterSpec, ...]
    themes: tuple[str, ...] = ()
    characters: tuple[CharacterSpec, ...] = ()

    @property
    def total_chapters(self) -> int:
        return len(self.chapters)

    @property
    def is_non_fiction(self) -> bool:
        return not self.characters

    def get_chapter(self, number: int) -> Optional[ChapterSpec]:
        for spec in self.chapters:
            if spec.number == number:
                return spec
        return None

    def validate(self) -> None:
        """Check that chapters are non-empty and numbered exactly 1..N."""
        if not self.chapters:
            raise InvalidConfigError("Outline must contain at least one chapter")
        numbers = sorted(spec.number for spec in self.chapters)
        expected = list(range(1, len(self.chapters) + 1))
        if numbers != expected:
            raise InvalidConfigError(
                "Outline chapter numbers must be exactly 1..N",
                {"numbers": numbers},
            )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["chapters"] = [asdict(c) for c in self.chapters]
        data["themes"] = list(self.themes)
        data["characters"] = [asdict(c) for c in self.characters]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Outline":
        if not isinstance(data, dict):
            raise InvalidConfigError("Outline must be an object")
        try:
            chapters = tuple(
                ChapterSpec(
                    number=int(ch["number"]),
                    title=str(ch.get("title", "")),
                    summary=str(ch.get("summary", "")),
                    target_word_count=int(_pick(ch, "target_word_count", "wordCount", "word_count", default=0)),
                )
                for ch in data.get("chapters") or []
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfigError(f"Malformed outline chapter: {e}") from e

        characters = tuple(
            CharacterSpec(
                name=str(c.get("name", "")),
                role=str(c.get("role", "")),
                description=str(c.get("description", "")),
            )
            for c in data.get("characters") or []
            if isinstance(c, dict) and c.get("name")
        )
        outline = cls(
            title=str(data.get("title", "")).strip(),
            author=str(data.get("author", "")).strip(),
            genre=str(data.get("genre", "")).strip(),
            description=str(data.get("description", "")).strip(),
            chapters=tuple(sorted(chapters, key=lambda c: c.number)),
            themes=tuple(str(t) for t in data.get("themes") or []),
            characters=characters,
        )
        if not outline.title:
            raise InvalidConfigError("Outline title is required")
        return outline


@dataclass(frozen=True)
class GenerationConfig:
    """Per-run generation settings, validated at trigger time."""
    chapter_model: Optional[str] = None
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    bibliography_enabled: bool = False
    citation_style: CitationStyle = CitationStyle.APA
    generation_speed: Optional[GenerationSpeed] = None

    def resolve_chapter_model(self, default_model: str) -> str:
        """Explicit model first, then the speed preset, then the default."""
        if self.chapter_model:
            return self.chapter_model
        if self.generation_speed is not None:
            return SPEED_MODEL_MAP[self.generation_speed]
        return default_model

    def to_dict(self) -> dict:
        return {
            "chapter_model": self.chapter_model,
            "mode": self.mode.value,
            "bibliography_enabled": self.bibliography_enabled,
            "citation_style": self.citation_style.value,
            "generation_speed": self.generation_speed.value if self.generation_speed else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationConfig":
        if not isinstance(data, dict):
            raise InvalidConfigError("Generation config must be an object")

        mode_value = _pick(data, "mode")
        if mode_value is None and "useParallel" in data:
            mode_value = "parallel" if data["useParallel"] else "sequential"
        try:
            mode = ExecutionMode(mode_value or ExecutionMode.SEQUENTIAL.value)
        except ValueError as e:
            raise InvalidConfigError(f"Unsupported execution mode: {mode_value}") from e

        style_value = _pick(data, "citation_style", "citationStyle", default=CitationStyle.APA.value)
        try:
            style = CitationStyle(style_value)
        except ValueError as e:
            raise InvalidConfigError(f"Unsupported citation style: {style_value}") from e

        speed_value = _pick(data, "generation_speed", "generationSpeed")
        try:
            speed = GenerationSpeed(speed_value) if speed_value else None
        except ValueError as e:
            raise InvalidConfigError(f"Unsupported generation speed: {speed_value}") from e

        model = _pick(data, "chapter_model", "chapterModel")
        if model is not None and not isinstance(model, str):
            raise InvalidConfigError("chapter_model must be a string")

        return cls(
            chapter_model=model.strip() if model else None,
            mode=mode,
            bibliography_enabled=bool(_pick(data, "bibliography_enabled", "bibliographyEnabled", default=False)),
            citation_style=style,
            generation_speed=speed,
        )
