"""LangGraph StateGraph: orchestrates a background book generation run."""

import contextvars
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from langgraph.graph import StateGraph, END

from agents.batch_generator import ChapterBatchGenerator
from agents.bibliography_agent import BibliographyAgent
from agents.writer_agent import WriterAgent
from config.exceptions import (
    BookStudioError,
    ContractViolationError,
    ImageGenerationError,
    PersistenceError,
    RunCancelledError,
)
from config.settings import Settings, get_settings
from models.bibliography import BibliographyConfig
from models.book import Book
from models.chapter import GeneratedChapter
from models.database import Database
from models.enums import BookStatus, CoverSide, RunStage
from models.outline import GenerationConfig, Outline
from models.run import RunProgress, RunResult
from tools.image_client import ImageGenerationClient
from tools.text_client import TextGenerationClient
from tools.text_utils import estimate_pages, estimate_reading_time
from workflow.cancellation import (
    clear_cancellation,
    is_cancel_requested,
    request_cancellation,
)
from workflow.conditions import (
    route_after_init,
    route_after_batch,
    route_after_covers,
    route_after_bibliography,
)
from workflow.events import (
    GENERATION_CANCELLED,
    GENERATION_STARTED,
    GenerationCancelledEvent,
    GenerationCompletedEvent,
    GenerationStartedEvent,
)
from workflow.state import GenerationState
from workflow.steps import StepRunner, batch_step_name, plan_batches

logger = logging.getLogger(__name__)

FRONT_COVER_STYLE = "vivid"
BACK_COVER_STYLE = "photographic"


# ---------------------------------------------------------------------------
# Shared resources, created once per run_generation() call
# ---------------------------------------------------------------------------

class _WorkflowResources:
    """Lazily-initialized, shared resources for all workflow nodes.

    Anything passed in is used as-is, which is how tests inject fakes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        db: Optional[Database] = None,
        text_client: Optional[TextGenerationClient] = None,
        image_client: Optional[ImageGenerationClient] = None,
    ):
        self._settings = settings
        self._db = db
        self._text = text_client
        self._images = image_client
        self._writer = None
        self._batch_generator = None
        self._bibliography = None
        self.on_complete: Optional[Callable[[GenerationCompletedEvent], Any]] = None
        self.steps: Optional[StepRunner] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = Database(self.settings.sqlite_db_path)
        return self._db

    @property
    def text(self) -> TextGenerationClient:
        if self._text is None:
            self._text = TextGenerationClient(settings=self.settings)
        return self._text

    @property
    def images(self) -> ImageGenerationClient:
        if self._images is None:
            self._images = ImageGenerationClient(settings=self.settings)
        return self._images

    @property
    def batch_generator(self) -> ChapterBatchGenerator:
        if self._batch_generator is None:
            self._writer = WriterAgent(self.text, self.settings)
            self._batch_generator = ChapterBatchGenerator(self._writer, self.settings)
        return self._batch_generator

    @property
    def bibliography(self) -> BibliographyAgent:
        if self._bibliography is None:
            self._bibliography = BibliographyAgent(self.text, self.settings)
        return self._bibliography

    def step_runner(self, book_id: int) -> StepRunner:
        if self.steps is None or self.steps.book_id != book_id:
            self.steps = StepRunner(
                self.db,
                book_id,
                max_retries=self.settings.step_max_retries,
                backoff=self.settings.step_retry_backoff,
            )
        return self.steps


_resources: contextvars.ContextVar[Optional[_WorkflowResources]] = contextvars.ContextVar(
    "workflow_resources", default=None,
)


def _get_resources() -> _WorkflowResources:
    r = _resources.get()
    if r is None:
        r = _WorkflowResources()
        _resources.set(r)
    return r


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _move_stage(r: _WorkflowResources, book_id: int, stage: RunStage, **fields) -> RunProgress:
    """Advance persisted RunProgress; illegal transitions raise WorkflowError."""
    progress = r.db.get_run_progress(book_id)
    progress.move_to(stage)
    for key, value in fields.items():
        setattr(progress, key, value)
    r.db.save_run_progress(progress)
    return progress


def _set_book_status(r: _WorkflowResources, book_id: int, status: BookStatus, error: Optional[str] = None):
    book = r.db.get_book(book_id)
    book.status = status
    book.error_message = error
    r.db.update_book(book)


def _control(r: _WorkflowResources, book_id: int, node: str) -> dict:
    """State updates every node ends with; this is where cancellation is observed."""
    return {"last_node": node, "cancelled": is_cancel_requested(book_id, r.db)}


def _failure(node: str, step: str, e: Exception) -> dict:
    logger.error("Node %s failed in step '%s': %s", node, step, e)
    return {"error": str(e), "failed_step": step, "last_node": node}


# ---------------------------------------------------------------------------
# Node functions
# ---------------------------------------------------------------------------

async def initialize(state: GenerationState) -> dict:
    """Mark the book as generating and lay out the chapter batches."""
    logger.info("Entering node: initialize")
    r = _get_resources()
    book_id = state["book_id"]
    total = state["total_chapters"]

    r.db.save_run_progress(RunProgress(book_id=book_id, total_chapters=total))
    _set_book_status(r, book_id, BookStatus.GENERATING)

    batches = plan_batches(total, r.settings.chapters_per_batch)
    logger.info(
        "Book %d: %d chapters in %d batches (model=%s)",
        book_id, total, len(batches), state["chapter_model"],
    )
    return {
        "batches": batches,
        "batch_index": 0,
        "chapters": [],
        "covers": {},
        "references_saved": 0,
        "references_failed": 0,
        "stage": RunStage.GENERATING_CHAPTERS.value,
        "error": "",
        **_control(r, book_id, "initialize"),
    }


async def generate_batch(state: GenerationState) -> dict:
    """Generate, sanitize and persist one batch of chapters as a durable step."""
    logger.info("Entering node: generate_batch")
    r = _get_resources()
    book_id = state["book_id"]
    numbers = state["batches"][state["batch_index"]]
    step_name = batch_step_name(numbers)
    outline = Outline.from_dict(state["outline"])
    config = GenerationConfig.from_dict(state["generation_config"])
    model = state["chapter_model"]
    previous = [GeneratedChapter.from_dict(c) for c in state.get("chapters", [])]

    async def _step():
        chapters = await r.batch_generator.generate_batch(outline, numbers, previous, model, config.mode)
        r.db.create_chapters(book_id, chapters)

        persisted = r.db.get_chapters(book_id)
        total_words = sum(ch.word_count for ch in persisted)
        book = r.db.get_book(book_id)
        book.metadata.word_count = total_words
        book.metadata.page_count = estimate_pages(total_words, r.settings.words_per_page)
        book.metadata.reading_time = estimate_reading_time(total_words)
        book.metadata.chapters = len(persisted)
        book.metadata.model_used = model
        book.metadata.last_modified = _now_iso()
        r.db.update_book(book)
        return [ch.to_dict() for ch in chapters]

    try:
        batch = await r.step_runner(book_id).run(step_name, _step)
    except RunCancelledError:
        return {"cancelled": True, "last_node": "generate_batch"}
    except BookStudioError as e:
        return _failure("generate_batch", step_name, e)

    chapters = sorted(
        {c["chapter_number"]: c for c in [*state.get("chapters", []), *batch]}.values(),
        key=lambda c: c["chapter_number"],
    )
    _move_stage(r, book_id, RunStage.GENERATING_CHAPTERS, chapters_completed=len(chapters))
    logger.info("Batch complete: %d/%d chapters", len(chapters), state["total_chapters"])
    return {
        "chapters": chapters,
        "batch_index": state["batch_index"] + 1,
        **_control(r, book_id, "generate_batch"),
    }


async def generate_covers(state: GenerationState) -> dict:
    """Generate front and back covers; a failed side is logged and left empty."""
    logger.info("Entering node: generate_covers")
    r = _get_resources()
    book_id = state["book_id"]
    outline = Outline.from_dict(state["outline"])
    _move_stage(r, book_id, RunStage.GENERATING_COVERS)

    async def _cover(style: str, side: CoverSide) -> Optional[str]:
        try:
            return await r.images.generate_cover(
                outline.title, outline.author, outline.genre, outline.description,
                style=style, side=side,
            )
        except ImageGenerationError as e:
            logger.error("Failed to generate %s cover for book %d: %s", side.value, book_id, e)
            return None

    async def _step():
        front = await _cover(FRONT_COVER_STYLE, CoverSide.FRONT)
        back = await _cover(BACK_COVER_STYLE, CoverSide.BACK)
        book = r.db.get_book(book_id)
        # A failed side keeps whatever URL the book already had
        if front:
            book.cover_url = front
        if back:
            book.metadata.back_cover_url = back
        book.metadata.last_modified = _now_iso()
        r.db.update_book(book)
        return {"front_url": front, "back_url": back}

    try:
        covers = await r.step_runner(book_id).run("generate-covers", _step)
    except RunCancelledError:
        return {"cancelled": True, "last_node": "generate_covers"}
    except BookStudioError as e:
        return _failure("generate_covers", "generate-covers", e)

    return {
        "covers": covers,
        "stage": RunStage.GENERATING_COVERS.value,
        **_control(r, book_id, "generate_covers"),
    }


async def generate_bibliography(state: GenerationState) -> dict:
    """Generate references and persist each one; failed saves are counted."""
    logger.info("Entering node: generate_bibliography")
    r = _get_resources()
    book_id = state["book_id"]
    outline = Outline.from_dict(state["outline"])
    config = GenerationConfig.from_dict(state["generation_config"])
    _move_stage(r, book_id, RunStage.GENERATING_BIBLIOGRAPHY)

    async def _step():
        # References are replaced wholesale so a re-executed step leaves one copy
        r.db.delete_bibliography_references(book_id)
        r.db.upsert_bibliography_config(
            BibliographyConfig(book_id=book_id, enabled=True, citation_style=config.citation_style)
        )
        texts = [c["content"] for c in state.get("chapters", [])]
        references = await r.bibliography.generate_references(
            outline, texts, config.citation_style, state["chapter_model"],
        )
        saved = failed = 0
        for ref in references:
            try:
                r.db.create_bibliography_reference(book_id, ref)
                saved += 1
            except PersistenceError as e:
                failed += 1
                logger.error("Failed to save reference '%s': %s", ref.title, e)
        return {"saved": saved, "failed": failed}

    try:
        counts = await r.step_runner(book_id).run("generate-bibliography", _step)
    except RunCancelledError:
        return {"cancelled": True, "last_node": "generate_bibliography"}
    except BookStudioError as e:
        return _failure("generate_bibliography", "generate-bibliography", e)

    logger.info("Bibliography: %d saved, %d failed", counts["saved"], counts["failed"])
    return {
        "references_saved": counts["saved"],
        "references_failed": counts["failed"],
        "stage": RunStage.GENERATING_BIBLIOGRAPHY.value,
        **_control(r, book_id, "generate_bibliography"),
    }


async def finalize(state: GenerationState) -> dict:
    """Mark the book completed and emit the completion event."""
    logger.info("Entering node: finalize")
    r = _get_resources()
    book_id = state["book_id"]
    _move_stage(r, book_id, RunStage.FINALIZING)

    async def _step():
        _set_book_status(r, book_id, BookStatus.COMPLETED)
        return {"status": BookStatus.COMPLETED.value}

    try:
        await r.step_runner(book_id).run("finalize-book", _step)
    except RunCancelledError:
        return {"cancelled": True, "last_node": "finalize"}
    except BookStudioError as e:
        return _failure("finalize", "finalize-book", e)

    _move_stage(r, book_id, RunStage.COMPLETE)
    clear_cancellation(book_id)
    chapters = state.get("chapters", [])
    event = GenerationCompletedEvent(
        book_id=book_id,
        total_chapters=len(chapters),
        total_words=sum(c["word_count"] for c in chapters),
    )
    logger.info("Book %d generation complete: %s", book_id, event.to_dict())

    if r.on_complete is not None:
        try:
            outcome = r.on_complete(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Completion hook failed for book %d", book_id)

    return {"stage": RunStage.COMPLETE.value, "last_node": "finalize"}


async def mark_cancelled(state: GenerationState) -> dict:
    """Stop the run; chapters persisted so far are kept."""
    logger.info("Entering node: mark_cancelled")
    r = _get_resources()
    book_id = state["book_id"]
    _move_stage(r, book_id, RunStage.CANCELLED)
    _set_book_status(r, book_id, BookStatus.CANCELLED)
    clear_cancellation(book_id)
    logger.warning(
        "Generation for book %d cancelled after %d chapters",
        book_id, len(state.get("chapters", [])),
    )
    return {"stage": RunStage.CANCELLED.value, "last_node": "mark_cancelled"}


async def handle_error(state: GenerationState) -> dict:
    """Record the failure on the run and the book."""
    logger.info("Entering node: handle_error")
    r = _get_resources()
    book_id = state["book_id"]
    error = state.get("error") or "Unknown error"
    _move_stage(r, book_id, RunStage.FAILED, error_message=error)
    _set_book_status(r, book_id, BookStatus.FAILED, error=error)
    clear_cancellation(book_id)
    logger.error("Workflow error (fatal) in %s: %s", state.get("failed_step", "?"), error)
    return {"stage": RunStage.FAILED.value, "last_node": "handle_error"}


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------

def build_graph() -> StateGraph:
    """Build and return the compiled LangGraph workflow.

    initialize -> generate_batch (loops per batch) -> generate_covers
    -> [generate_bibliography] -> finalize; any node may divert to
    mark_cancelled or handle_error.
    """
    graph = StateGraph(GenerationState)

    graph.add_node("initialize", initialize)
    graph.add_node("generate_batch", generate_batch)
    graph.add_node("generate_covers", generate_covers)
    graph.add_node("generate_bibliography", generate_bibliography)
    graph.add_node("finalize", finalize)
    graph.add_node("mark_cancelled", mark_cancelled)
    graph.add_node("handle_error", handle_error)

    graph.set_entry_point("initialize")

    abort_routes = {"mark_cancelled": "mark_cancelled", "handle_error": "handle_error"}
    chapter_routes = {
        "generate_batch": "generate_batch",
        "generate_covers": "generate_covers",
        **abort_routes,
    }

    graph.add_conditional_edges("initialize", route_after_init, chapter_routes)
    graph.add_conditional_edges("generate_batch", route_after_batch, chapter_routes)
    graph.add_conditional_edges(
        "generate_covers",
        route_after_covers,
        {
            "generate_bibliography": "generate_bibliography",
            "finalize": "finalize",
            **abort_routes,
        },
    )
    graph.add_conditional_edges(
        "generate_bibliography",
        route_after_bibliography,
        {"finalize": "finalize", **abort_routes},
    )

    # finalize only fails inside its own step
    graph.add_conditional_edges(
        "finalize",
        lambda s: "handle_error" if s.get("error") else "__end__",
        {"handle_error": "handle_error", "__end__": END},
    )
    graph.add_edge("mark_cancelled", END)
    graph.add_edge("handle_error", END)

    return graph.compile()


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def validate_trigger(
    r: _WorkflowResources,
    book_id: int,
    user_id: str,
    outline: Outline,
    config: GenerationConfig,
) -> tuple[Book, str]:
    """Check run inputs and return (book, resolved chapter model).

    Raises:
        ContractViolationError: On any invalid input. Nothing is persisted.
    """
    outline.validate()
    book = r.db.get_book(book_id)
    if book is None:
        raise ContractViolationError(f"Book {book_id} not found", {"book_id": book_id})
    if book.user_id != user_id:
        raise ContractViolationError(
            f"Book {book_id} is not owned by user {user_id}",
            {"book_id": book_id, "user_id": user_id},
        )
    model = config.resolve_chapter_model(r.settings.default_chapter_model)
    r.text.registry.resolve(model)
    return book, model


async def run_generation(
    book_id: int,
    user_id: str,
    outline: Outline,
    config: GenerationConfig,
    resources: Optional[_WorkflowResources] = None,
    on_complete: Optional[Callable[[GenerationCompletedEvent], Any]] = None,
    resume: bool = False,
    callback=None,
) -> RunResult:
    """Run the full generation pipeline for one book.

    Args:
        book_id: Target book; must exist and belong to ``user_id``.
        user_id: Owner of the book.
        outline: Validated outline whose chapters are numbered 1..N.
        config: Generation settings for this run.
        resources: Optional pre-built resources (tests inject fakes here).
        on_complete: Hook called with the completion event. May be async.
        resume: Keep the step journal and skip steps that already completed.
        callback: Optional WorkflowCallback for progress reporting.

    Returns:
        RunResult. Failures and cancellation are reported in it, not raised.

    Raises:
        ContractViolationError: If the inputs are invalid.
    """
    r = resources or _WorkflowResources()
    r.on_complete = on_complete
    r.steps = None
    token = _resources.set(r)
    try:
        _, model = validate_trigger(r, book_id, user_id, outline, config)

        clear_cancellation(book_id, r.db)
        if resume:
            r.db.delete_chapters(book_id, above=outline.total_chapters)
        else:
            r.db.clear_step_journal(book_id)
            r.db.delete_chapters(book_id)

        app = build_graph()
        initial_state: GenerationState = {
            "book_id": book_id,
            "user_id": user_id,
            "outline": outline.to_dict(),
            "generation_config": config.to_dict(),
            "chapter_model": model,
            "total_chapters": outline.total_chapters,
        }
        batch_count = -(-outline.total_chapters // r.settings.chapters_per_batch)
        run_config = {"recursion_limit": max(25, batch_count + 10)}

        logger.info(
            "Starting generation: book=%d, chapters=%d, mode=%s, resume=%s",
            book_id, outline.total_chapters, config.mode.value, resume,
        )
        if callback is not None:
            final_state = await _run_with_callback(app, initial_state, run_config, callback)
        else:
            final_state = await app.ainvoke(initial_state, config=run_config)
    finally:
        _resources.reset(token)

    chapters = final_state.get("chapters", [])
    covers = final_state.get("covers") or {}
    stage = RunStage(final_state.get("stage", RunStage.FAILED.value))
    result = RunResult(
        success=stage == RunStage.COMPLETE,
        book_id=book_id,
        chapters_generated=len(chapters),
        total_words=sum(c["word_count"] for c in chapters),
        has_cover=bool(covers.get("front_url")),
        has_back_cover=bool(covers.get("back_url")),
        stage=stage,
        references_saved=final_state.get("references_saved", 0),
        references_failed=final_state.get("references_failed", 0),
        error=final_state.get("error") or None,
    )
    logger.info("Generation finished: %s", result.to_dict())
    return result


async def _run_with_callback(app, initial_state: dict, config, callback) -> dict:
    """Run the workflow using astream() and emit progress callbacks."""
    accumulated: dict = dict(initial_state)
    prev_done = 0

    async for event in app.astream(initial_state, config=config):
        # Each event is {node_name: state_update_dict}
        for node_name, node_update in event.items():
            if isinstance(node_update, dict):
                accumulated.update(node_update)
            callback.on_node_exit(node_name, accumulated)

            chapters = accumulated.get("chapters", [])
            if len(chapters) > prev_done:
                callback.on_batch_complete(
                    len(chapters),
                    accumulated.get("total_chapters", 0),
                    sum(c["word_count"] for c in chapters),
                )
                prev_done = len(chapters)

            if node_name == "handle_error" and accumulated.get("error"):
                callback.on_error(accumulated.get("failed_step", node_name), accumulated["error"])

    callback.on_workflow_complete(accumulated)
    return accumulated


async def handle_event(
    name: str,
    data: dict,
    resources: Optional[_WorkflowResources] = None,
    on_complete: Optional[Callable[[GenerationCompletedEvent], Any]] = None,
) -> Optional[RunResult]:
    """Dispatch a trigger or cancellation event.

    Returns the RunResult for a trigger and None for a cancellation.
    """
    if name == GENERATION_STARTED:
        event = GenerationStartedEvent.from_dict(data)
        return await run_generation(
            event.book_id, event.user_id, event.outline, event.config,
            resources=resources, on_complete=on_complete,
        )
    if name == GENERATION_CANCELLED:
        event = GenerationCancelledEvent.from_dict(data)
        r = resources or _WorkflowResources()
        request_cancellation(event.book_id, r.db)
        return None
    raise ContractViolationError(f"Unknown event: {name}")
