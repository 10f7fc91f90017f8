"""Event payloads that start, cancel and report on generation runs."""

from dataclasses import dataclass

from config.exceptions import InvalidConfigError
from models.outline import GenerationConfig, Outline

GENERATION_STARTED = "book/generation.started"
GENERATION_CANCELLED = "book/generation.cancelled"
GENERATION_COMPLETED = "book/generation.completed"


def _get(data: dict, snake: str, camel: str):
    if snake in data:
        return data[snake]
    return data.get(camel)


def _book_id(data: dict) -> int:
    value = _get(data, "book_id", "bookId")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfigError(f"Invalid book id: {value!r}") from e


@dataclass(frozen=True)
class GenerationStartedEvent:
    book_id: int
    user_id: str
    total_chapters: int
    outline: Outline
    config: GenerationConfig

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationStartedEvent":
        """Parse a trigger payload; snake_case and camelCase keys are accepted.

        Raises:
            InvalidConfigError: On a malformed payload or when total_chapters
                disagrees with the outline.
        """
        if not isinstance(data, dict):
            raise InvalidConfigError("Event payload must be an object")
        outline = Outline.from_dict(data.get("outline") or {})
        config = GenerationConfig.from_dict(data.get("config") or {})
        user_id = _get(data, "user_id", "userId")
        if not user_id:
            raise InvalidConfigError("user_id is required")

        total = _get(data, "total_chapters", "totalChapters")
        total = outline.total_chapters if total is None else total
        try:
            total = int(total)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"Invalid total_chapters: {total!r}") from e
        if total != outline.total_chapters:
            raise InvalidConfigError(
                "total_chapters does not match the outline",
                {"total_chapters": total, "outline_chapters": outline.total_chapters},
            )
        return cls(
            book_id=_book_id(data),
            user_id=str(user_id),
            total_chapters=total,
            outline=outline,
            config=config,
        )

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "user_id": self.user_id,
            "total_chapters": self.total_chapters,
            "outline": self.outline.to_dict(),
            "config": self.config.to_dict(),
        }


@dataclass(frozen=True)
class GenerationCancelledEvent:
    book_id: int

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationCancelledEvent":
        if not isinstance(data, dict):
            raise InvalidConfigError("Event payload must be an object")
        return cls(book_id=_book_id(data))


@dataclass(frozen=True)
class GenerationCompletedEvent:
    book_id: int
    total_chapters: int
    total_words: int

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "total_chapters": self.total_chapters,
            "total_words": self.total_words,
        }
