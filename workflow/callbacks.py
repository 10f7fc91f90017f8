"""Workflow progress callbacks for monitoring and terminal reporting."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class WorkflowCallback(Protocol):
    """Protocol for workflow progress callbacks."""

    def on_node_exit(self, node: str, state: dict) -> None:
        """Called after a node finishes executing with the accumulated state."""
        ...

    def on_batch_complete(self, chapters_done: int, total: int, words: int) -> None:
        """Called when a chapter batch has been persisted."""
        ...

    def on_error(self, node: str, error: str) -> None:
        ...

    def on_workflow_complete(self, final_state: dict) -> None:
        ...


class LoggingCallback:
    """Lightweight callback that logs progress to the standard logger."""

    def on_node_exit(self, node: str, state: dict) -> None:
        logger.debug("<- node: %s", node)

    def on_batch_complete(self, chapters_done: int, total: int, words: int) -> None:
        logger.info("Chapters %d/%d complete (%d words)", chapters_done, total, words)

    def on_error(self, node: str, error: str) -> None:
        logger.error("Workflow error in '%s': %s", node, error)

    def on_workflow_complete(self, final_state: dict) -> None:
        logger.info(
            "Workflow finished: stage=%s, chapters=%d",
            final_state.get("stage", "?"), len(final_state.get("chapters", [])),
        )


class RichProgressCallback:
    """Renders a Rich live progress display in the terminal."""

    # astream fires after each node, so show the step that is entering next
    _ENTERING_LABEL: dict[str, str] = {
        "initialize": "Writing chapters",
        "generate_batch": "Writing chapters",
        "generate_covers": "Compiling bibliography",
        "generate_bibliography": "Finalizing",
        "finalize": "Done",
        "mark_cancelled": "Cancelled",
        "handle_error": "Failed",
    }

    def __init__(self, console=None, total_chapters: int = 0):
        self._console = console
        self._total = total_chapters
        self._progress = None
        self._chapter_task_id = None
        self._node_task_id = None

    def start(self):
        """Start the progress display. Call before running the workflow."""
        from rich.console import Console
        from rich.progress import (
            Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn,
        )

        self._progress = Progress(
            SpinnerColumn("dots"),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self._console or Console(),
        )
        self._progress.start()
        self._chapter_task_id = self._progress.add_task(
            "Waiting to start...",
            total=self._total if self._total > 0 else None,
        )
        self._node_task_id = self._progress.add_task("[dim]Initializing...[/]", total=None)

    def stop(self):
        if self._progress:
            self._progress.stop()
            self._progress = None

    def on_node_exit(self, node: str, state: dict) -> None:
        if not self._progress:
            return
        label = self._ENTERING_LABEL.get(node, node)
        if node == "generate_batch" and state.get("batch_index", 0) >= len(state.get("batches", [])):
            label = "Generating covers"
        self._progress.update(self._node_task_id, description=f"[dim]{label}[/]")

    def on_batch_complete(self, chapters_done: int, total: int, words: int) -> None:
        if not self._progress:
            return
        self._progress.update(
            self._chapter_task_id,
            completed=chapters_done,
            description=f"[green]{chapters_done}/{total or '?'} chapters[/] ([cyan]{words:,}[/] words)",
        )

    def on_error(self, node: str, error: str) -> None:
        if not self._progress:
            return
        self._progress.update(self._node_task_id, description=f"[red]Error ({node}): {error[:80]}[/]")

    def on_workflow_complete(self, final_state: dict) -> None:
        if not self._progress:
            return
        stage = final_state.get("stage", "")
        self._progress.update(self._chapter_task_id, description=f"[bold]Run {stage}[/]")
        self._progress.update(self._node_task_id, description="")
