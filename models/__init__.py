"""Models package — database, data models, and enums."""

from models.database import Database
from models.book import Book, BookMetadata
from models.chapter import Chapter, GeneratedChapter
from models.outline import ChapterSpec, CharacterSpec, Outline, GenerationConfig
from models.bibliography import Author, BibliographyReference, BibliographyConfig
from models.run import RunProgress, RunResult, CoverAssets
from models.enums import (
    BookStatus,
    RunStage,
    ExecutionMode,
    GenerationSpeed,
    CitationStyle,
    ReferenceType,
    CoverSide,
)

__all__ = [
    "Database",
    "Book",
    "BookMetadata",
    "Chapter",
    "GeneratedChapter",
    "ChapterSpec",
    "CharacterSpec",
    "Outline",
    "GenerationConfig",
    "Author",
    "BibliographyReference",
    "BibliographyConfig",
    "RunProgress",
    "RunResult",
    "CoverAssets",
    "BookStatus",
    "RunStage",
    "ExecutionMode",
    "GenerationSpeed",
    "CitationStyle",
    "ReferenceType",
    "CoverSide",
]
