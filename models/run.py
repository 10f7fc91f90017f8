"""Run progress and result models."""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from config.exceptions import WorkflowError
from models.enums import RunStage, RUN_STAGE_ORDER


@dataclass
class RunProgress:
    """Pollable progress of one generation run, keyed by book id."""
    book_id: int
    total_chapters: int
    chapters_completed: int = 0
    stage: RunStage = RunStage.GENERATING_CHAPTERS
    error_message: Optional[str] = None
    updated_at: Optional[datetime] = None

    def can_move_to(self, stage: RunStage) -> bool:
        """Stages only move forward; failed/cancelled are reachable from any live stage."""
        if self.stage.is_terminal:
            return False
        if stage in (RunStage.FAILED, RunStage.CANCELLED):
            return True
        return RUN_STAGE_ORDER.index(stage) >= RUN_STAGE_ORDER.index(self.stage)

    def move_to(self, stage: RunStage) -> None:
        if not self.can_move_to(stage):
            raise WorkflowError(
                f"Illegal stage transition {self.stage.value} -> {stage.value}",
                {"book_id": self.book_id},
            )
        self.stage = stage

    @property
    def percentage(self) -> int:
        if self.stage == RunStage.COMPLETE:
            return 100
        if not self.total_chapters:
            return 0
        # Chapters account for 90% of the run
        return min(90, int(self.chapters_completed * 90 / self.total_chapters))


@dataclass(frozen=True)
class CoverAssets:
    front_url: Optional[str] = None
    back_url: Optional[str] = None


@dataclass
class RunResult:
    success: bool
    book_id: int
    chapters_generated: int = 0
    total_words: int = 0
    has_cover: bool = False
    has_back_cover: bool = False
    stage: RunStage = RunStage.COMPLETE
    references_saved: int = 0
    references_failed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data
