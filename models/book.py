"""Book data model."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

from models.enums import BookStatus


@dataclass
class BookMetadata:
    """Aggregate stats recomputed after every persisted batch."""
    word_count: int = 0
    page_count: int = 0
    reading_time: int = 0  # minutes
    chapters: int = 0
    model_used: Optional[str] = None
    back_cover_url: Optional[str] = None
    last_modified: Optional[str] = None  # ISO timestamp

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BookMetadata":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class Book:
    """Represents a book record and its generation status."""
    id: Optional[int] = None
    user_id: str = ""
    title: str = ""
    author: str = ""
    genre: str = ""
    description: str = ""
    status: BookStatus = BookStatus.DRAFT
    cover_url: Optional[str] = None
    metadata: BookMetadata = field(default_factory=BookMetadata)
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
