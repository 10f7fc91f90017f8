"""Enumerations for book generation status tracking."""

from enum import Enum


class BookStatus(str, Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunStage(str, Enum):
    GENERATING_CHAPTERS = "generating_chapters"
    GENERATING_COVERS = "generating_covers"
    GENERATING_BIBLIOGRAPHY = "generating_bibliography"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStage.COMPLETE, RunStage.FAILED, RunStage.CANCELLED)


# Forward order of the non-abort stages
RUN_STAGE_ORDER = [
    RunStage.GENERATING_CHAPTERS,
    RunStage.GENERATING_COVERS,
    RunStage.GENERATING_BIBLIOGRAPHY,
    RunStage.FINALIZING,
    RunStage.COMPLETE,
]


class ExecutionMode(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class GenerationSpeed(str, Enum):
    QUALITY = "quality"
    BALANCED = "balanced"
    FAST = "fast"


class CitationStyle(str, Enum):
    APA = "APA"
    MLA = "MLA"
    CHICAGO = "Chicago"
    HARVARD = "Harvard"
    IEEE = "IEEE"
    VANCOUVER = "Vancouver"
    AMA = "AMA"


class ReferenceType(str, Enum):
    BOOK = "book"
    JOURNAL = "journal"
    WEBSITE = "website"
    REPORT = "report"
    CONFERENCE = "conference"


class CoverSide(str, Enum):
    FRONT = "front"
    BACK = "back"
