"""Chapter data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class GeneratedChapter:
    """A chapter produced during a run. Never mutated after creation."""
    chapter_number: int
    title: str
    content: str
    word_count: int

    def to_dict(self) -> dict:
        return {
            "chapter_number": self.chapter_number,
            "title": self.title,
            "content": self.content,
            "word_count": self.word_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GeneratedChapter":
        return cls(
            chapter_number=int(data["chapter_number"]),
            title=data.get("title", ""),
            content=data.get("content", ""),
            word_count=int(data.get("word_count", 0)),
        )


@dataclass
class Chapter:
    """A persisted chapter row."""
    id: Optional[int] = None
    book_id: int = 0
    chapter_number: int = 0
    title: str = ""
    content: str = ""
    word_count: int = 0
    is_edited: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
