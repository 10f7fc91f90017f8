"""Tests for workflow routing and end-to-end generation runs."""

import math

import pytest

from conftest import make_outline, valid_reference


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

class TestRouteAfterBatch:
    def test_more_batches_loop(self):
        from workflow.conditions import route_after_batch
        state = {"batches": [[1, 2], [3]], "batch_index": 1}
        assert route_after_batch(state) == "generate_batch"

    def test_last_batch_goes_to_covers(self):
        from workflow.conditions import route_after_batch
        state = {"batches": [[1, 2], [3]], "batch_index": 2}
        assert route_after_batch(state) == "generate_covers"

    def test_error_wins_over_cancel(self):
        from workflow.conditions import route_after_batch
        state = {"batches": [[1]], "batch_index": 0, "error": "boom", "cancelled": True}
        assert route_after_batch(state) == "handle_error"

    def test_cancelled_routes_to_mark_cancelled(self):
        from workflow.conditions import route_after_batch
        state = {"batches": [[1], [2]], "batch_index": 1, "cancelled": True}
        assert route_after_batch(state) == "mark_cancelled"

    def test_empty_error_string_is_not_an_error(self):
        from workflow.conditions import route_after_init
        state = {"batches": [[1]], "batch_index": 0, "error": ""}
        assert route_after_init(state) == "generate_batch"


class TestRouteAfterCovers:
    def test_bibliography_enabled(self):
        from workflow.conditions import route_after_covers
        assert route_after_covers({"generation_config": {"bibliography_enabled": True}}) == "generate_bibliography"

    def test_bibliography_disabled(self):
        from workflow.conditions import route_after_covers
        assert route_after_covers({"generation_config": {"bibliography_enabled": False}}) == "finalize"

    def test_after_bibliography(self):
        from workflow.conditions import route_after_bibliography
        assert route_after_bibliography({}) == "finalize"
        assert route_after_bibliography({"cancelled": True}) == "mark_cancelled"


# ---------------------------------------------------------------------------
# End-to-end runs
# ---------------------------------------------------------------------------

@pytest.fixture
def resources(settings, db, text_client, image_client):
    from workflow.graph import _WorkflowResources
    return _WorkflowResources(settings=settings, db=db, text_client=text_client, image_client=image_client)


async def _run(resources, book, outline=None, resume=False, on_complete=None, callback=None, **config):
    from models.outline import GenerationConfig
    from workflow.graph import run_generation
    return await run_generation(
        book.id, book.user_id, outline or make_outline(5), GenerationConfig(**config),
        resources=resources, on_complete=on_complete, resume=resume, callback=callback,
    )


class RecordingCallback:
    def __init__(self):
        self.nodes = []
        self.batches = []
        self.errors = []
        self.final = None

    def on_node_exit(self, node, state):
        self.nodes.append(node)

    def on_batch_complete(self, chapters_done, total, words):
        self.batches.append((chapters_done, total))

    def on_error(self, node, error):
        self.errors.append((node, error))

    def on_workflow_complete(self, final_state):
        self.final = final_state


class TestSuccessfulRun:
    @pytest.mark.asyncio
    async def test_five_chapters_in_three_batches(self, resources, db, sample_book, fake_image):
        from models.enums import BookStatus, RunStage

        events = []
        result = await _run(resources, sample_book, on_complete=events.append)

        assert result.success
        assert result.stage == RunStage.COMPLETE
        assert result.chapters_generated == 5
        assert result.has_cover and result.has_back_cover
        assert result.error is None

        assert db.list_completed_steps(sample_book.id) == [
            "generate-chapters-1-to-2",
            "generate-chapters-3-to-4",
            "generate-chapters-5-to-5",
            "generate-covers",
            "finalize-book",
        ]
        chapters = db.get_chapters(sample_book.id)
        assert [c.chapter_number for c in chapters] == [1, 2, 3, 4, 5]

        book = db.get_book(sample_book.id)
        assert book.status == BookStatus.COMPLETED
        assert book.cover_url.startswith("https://images.test/front")
        assert book.metadata.back_cover_url.startswith("https://images.test/back")
        assert book.metadata.chapters == 5
        assert book.metadata.model_used == "fake/writer"

        progress = db.get_run_progress(sample_book.id)
        assert progress.stage == RunStage.COMPLETE
        assert progress.chapters_completed == 5

        assert [e.total_chapters for e in events] == [5]
        assert events[0].total_words == result.total_words

    @pytest.mark.asyncio
    async def test_metadata_word_count_matches_chapters(self, resources, db, sample_book):
        result = await _run(resources, sample_book)
        total = sum(c.word_count for c in db.get_chapters(sample_book.id))
        book = db.get_book(sample_book.id)
        assert book.metadata.word_count == total == result.total_words
        assert book.metadata.page_count == math.ceil(total / 250)
        assert book.metadata.reading_time == math.ceil(total / 250)

    @pytest.mark.asyncio
    async def test_cover_styles(self, resources, sample_book, fake_image):
        await _run(resources, sample_book)
        styles = {c["side"]: c["style"] for c in fake_image.calls}
        assert styles == {"front": "vivid", "back": "photographic"}

    @pytest.mark.asyncio
    async def test_speed_preset_model_must_be_routable(self, resources, sample_book, fake_text):
        from models.enums import GenerationSpeed
        result = await _run(resources, sample_book, generation_speed=GenerationSpeed.BALANCED)
        assert result.success
        assert {c["model_id"] for c in fake_text.calls} == {"google/gemini-2.5-flash-preview"}

    @pytest.mark.asyncio
    async def test_completion_hook_failure_does_not_fail_run(self, resources, sample_book):
        def broken_hook(event):
            raise RuntimeError("webhook down")

        result = await _run(resources, sample_book, on_complete=broken_hook)
        assert result.success

    @pytest.mark.asyncio
    async def test_async_completion_hook(self, resources, sample_book):
        seen = []

        async def hook(event):
            seen.append(event.book_id)

        await _run(resources, sample_book, on_complete=hook)
        assert seen == [sample_book.id]

    @pytest.mark.asyncio
    async def test_callback_receives_batch_progress(self, resources, sample_book):
        cb = RecordingCallback()
        result = await _run(resources, sample_book, callback=cb)
        assert result.success
        assert cb.batches == [(2, 5), (4, 5), (5, 5)]
        assert cb.nodes[0] == "initialize"
        assert cb.nodes[-1] == "finalize"
        assert cb.final["stage"] == "complete"


class TestDegradedStages:
    @pytest.mark.asyncio
    async def test_cover_failure_is_not_fatal(self, resources, db, sample_book, fake_image):
        fake_image.fail_sides = {"front"}
        result = await _run(resources, sample_book)
        assert result.success
        assert not result.has_cover
        assert result.has_back_cover
        assert db.get_book(sample_book.id).cover_url is None

    @pytest.mark.asyncio
    async def test_both_covers_failing(self, resources, sample_book, fake_image):
        fake_image.fail_sides = {"front", "back"}
        result = await _run(resources, sample_book)
        assert result.success
        assert not result.has_cover and not result.has_back_cover

    @pytest.mark.asyncio
    async def test_bibliography_drops_bad_references(self, resources, db, sample_book, fake_text):
        from models.enums import CitationStyle
        fake_text.references = [
            valid_reference("Maps and Minds"),
            {"type": "book", "title": "No Authors", "authors": []},
            valid_reference("Salt Roads"),
        ]
        result = await _run(
            resources, sample_book, bibliography_enabled=True, citation_style=CitationStyle.HARVARD,
        )
        assert result.success
        assert result.references_saved == 2
        assert result.references_failed == 0
        assert sorted(r.title for r in db.get_bibliography_references(sample_book.id)) == ["Maps and Minds", "Salt Roads"]
        assert db.get_bibliography_config(sample_book.id).citation_style == CitationStyle.HARVARD
        assert "generate-bibliography" in db.list_completed_steps(sample_book.id)

    @pytest.mark.asyncio
    async def test_failed_front_cover_keeps_existing_url(self, resources, db, sample_book, fake_image):
        book = db.get_book(sample_book.id)
        book.cover_url = "https://images.test/uploaded.png"
        db.update_book(book)

        fake_image.fail_sides = {"front"}
        result = await _run(resources, sample_book)

        assert result.success and not result.has_cover
        book = db.get_book(sample_book.id)
        assert book.cover_url == "https://images.test/uploaded.png"
        assert book.metadata.back_cover_url.startswith("https://images.test/back")

    @pytest.mark.asyncio
    async def test_reference_save_failure_is_counted(self, resources, db, sample_book, fake_text):
        from unittest.mock import patch
        from config.exceptions import PersistenceError

        fake_text.references = [valid_reference(t) for t in ("Maps and Minds", "Salt Roads", "Tide Tables")]
        save = db.create_bibliography_reference

        def save_unless_salt_roads(book_id, ref):
            if ref.title == "Salt Roads":
                raise PersistenceError("constraint failed")
            return save(book_id, ref)

        with patch.object(db, "create_bibliography_reference", side_effect=save_unless_salt_roads):
            result = await _run(resources, sample_book, bibliography_enabled=True)

        assert result.success
        assert result.references_saved == 2
        assert result.references_failed == 1
        assert sorted(r.title for r in db.get_bibliography_references(sample_book.id)) == ["Maps and Minds", "Tide Tables"]

    @pytest.mark.asyncio
    async def test_bibliography_skipped_when_disabled(self, resources, db, sample_book):
        await _run(resources, sample_book)
        assert db.get_bibliography_config(sample_book.id) is None
        assert "generate-bibliography" not in db.list_completed_steps(sample_book.id)


class TestParallelMode:
    @pytest.mark.asyncio
    async def test_batch_chapters_share_context(self, resources, sample_book, fake_text):
        from models.enums import ExecutionMode
        result = await _run(resources, sample_book, outline=make_outline(4), mode=ExecutionMode.PARALLEL)
        assert result.success

        prompts = {int(p.split("Write Chapter ", 1)[1].split(" ", 1)[0]): p for p in fake_text.chapter_prompts()}

        def context_of(prompt):
            if "Previous chapters summary:" not in prompt:
                return ""
            return prompt.split("Previous chapters summary:", 1)[1].split("Write a complete", 1)[0]

        assert context_of(prompts[1]) == context_of(prompts[2]) == ""
        assert context_of(prompts[3]) == context_of(prompts[4])
        assert "Chapter Title 2" in context_of(prompts[3])


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_first_batch_keeps_its_chapters(self, resources, db, sample_book, fake_text, fake_image):
        from models.enums import BookStatus, RunStage
        from workflow.cancellation import request_cancellation

        fake_text.on_chapter = lambda n: request_cancellation(sample_book.id) if n == 2 else None
        result = await _run(resources, sample_book)

        assert not result.success
        assert result.stage == RunStage.CANCELLED
        assert result.error is None
        assert result.chapters_generated == 2
        assert [c.chapter_number for c in db.get_chapters(sample_book.id)] == [1, 2]
        assert db.get_book(sample_book.id).status == BookStatus.CANCELLED
        assert db.get_run_progress(sample_book.id).stage == RunStage.CANCELLED
        assert fake_image.calls == []

    @pytest.mark.asyncio
    async def test_finished_run_drops_in_process_flag(self, resources, db, sample_book, fake_text):
        from models.enums import RunStage
        from workflow import cancellation

        fake_text.on_chapter = lambda n: cancellation.request_cancellation(sample_book.id, db) if n == 1 else None
        result = await _run(resources, sample_book)

        assert result.stage == RunStage.CANCELLED
        assert cancellation._requested == set()
        assert db.is_cancel_requested(sample_book.id)

    @pytest.mark.asyncio
    async def test_stale_cancel_flag_cleared_on_trigger(self, resources, sample_book):
        from workflow.cancellation import request_cancellation
        request_cancellation(sample_book.id)
        result = await _run(resources, sample_book)
        assert result.success

    @pytest.mark.asyncio
    async def test_cancel_event_through_handle_event(self, resources, db, sample_book):
        from models.run import RunProgress
        from workflow.cancellation import is_cancel_requested
        from workflow.graph import handle_event
        db.save_run_progress(RunProgress(book_id=sample_book.id, total_chapters=5))
        assert await handle_event("book/generation.cancelled", {"bookId": sample_book.id}, resources=resources) is None
        assert is_cancel_requested(sample_book.id, db)


class TestFailureAndResume:
    @pytest.mark.asyncio
    async def test_failed_step_then_resume(self, resources, db, sample_book, fake_text):
        from models.enums import BookStatus, RunStage

        def fail_from_chapter_three(n):
            if n >= 3:
                raise RuntimeError("provider outage")

        fake_text.on_chapter = fail_from_chapter_three
        cb = RecordingCallback()
        failed = await _run(resources, sample_book, callback=cb)

        assert not failed.success
        assert failed.stage == RunStage.FAILED
        assert "generate-chapters-3-to-4" in failed.error
        assert failed.chapters_generated == 2
        assert cb.errors and cb.errors[0][0] == "generate-chapters-3-to-4"
        # 2 chapters + 3 attempts at chapter 3
        assert len(fake_text.chapter_prompts()) == 5

        book = db.get_book(sample_book.id)
        assert book.status == BookStatus.FAILED
        assert "provider outage" in book.error_message
        assert db.get_run_progress(sample_book.id).stage == RunStage.FAILED

        fake_text.on_chapter = None
        fake_text.calls.clear()
        resumed = await _run(resources, sample_book, resume=True)

        assert resumed.success
        assert resumed.chapters_generated == 5
        written = sorted(int(p.split("Write Chapter ", 1)[1].split(" ", 1)[0]) for p in fake_text.chapter_prompts())
        assert written == [3, 4, 5]
        assert db.get_book(sample_book.id).status == BookStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_fresh_trigger_clears_journal(self, resources, sample_book, fake_text):
        await _run(resources, sample_book)
        fake_text.calls.clear()
        result = await _run(resources, sample_book)
        assert result.success
        assert len(fake_text.chapter_prompts()) == 5

    @pytest.mark.asyncio
    async def test_fresh_trigger_with_shorter_outline_drops_extra_chapters(self, resources, db, sample_book):
        await _run(resources, sample_book, outline=make_outline(5))
        events = []
        result = await _run(resources, sample_book, outline=make_outline(3), on_complete=events.append)

        assert result.success
        chapters = db.get_chapters(sample_book.id)
        assert [c.chapter_number for c in chapters] == [1, 2, 3]
        book = db.get_book(sample_book.id)
        assert book.metadata.chapters == 3
        assert book.metadata.word_count == sum(c.word_count for c in chapters) == result.total_words
        assert events[0].total_words == result.total_words

    @pytest.mark.asyncio
    async def test_rerun_bibliography_keeps_one_copy(self, resources, db, sample_book, fake_text):
        fake_text.references = [valid_reference("A"), valid_reference("B")]
        await _run(resources, sample_book, outline=make_outline(2), bibliography_enabled=True)
        result = await _run(resources, sample_book, outline=make_outline(2), bibliography_enabled=True)

        assert result.references_saved == 2
        assert sorted(r.title for r in db.get_bibliography_references(sample_book.id)) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_journal_write_failure_retries_bibliography(self, resources, db, sample_book, fake_text):
        from unittest.mock import patch
        from config.exceptions import PersistenceError

        fake_text.references = [valid_reference("A"), valid_reference("B")]
        record = db.record_step_result
        failures = []

        def crash_once(book_id, name, result_json):
            if name == "generate-bibliography" and not failures:
                failures.append(name)
                raise PersistenceError("crash before journal write")
            return record(book_id, name, result_json)

        with patch.object(db, "record_step_result", side_effect=crash_once):
            result = await _run(resources, sample_book, outline=make_outline(2), bibliography_enabled=True)

        assert failures == ["generate-bibliography"]
        assert result.success
        assert result.references_saved == 2
        assert sorted(r.title for r in db.get_bibliography_references(sample_book.id)) == ["A", "B"]

        resumed = await _run(resources, sample_book, outline=make_outline(2), bibliography_enabled=True, resume=True)
        assert resumed.success
        assert sorted(r.title for r in db.get_bibliography_references(sample_book.id)) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_resume_after_success_makes_no_calls(self, resources, sample_book, fake_text, fake_image):
        await _run(resources, sample_book)
        fake_text.calls.clear()
        fake_image.calls.clear()
        result = await _run(resources, sample_book, resume=True)
        assert result.success
        assert result.chapters_generated == 5
        assert fake_text.calls == []
        assert fake_image.calls == []


class TestTriggerValidation:
    @pytest.mark.asyncio
    async def test_unknown_model_fails_fast(self, resources, db, sample_book, fake_text):
        from config.exceptions import UnknownModelError
        from models.enums import BookStatus
        with pytest.raises(UnknownModelError):
            await _run(resources, sample_book, chapter_model="no-such-model")
        assert fake_text.calls == []
        assert db.get_run_progress(sample_book.id) is None
        assert db.get_book(sample_book.id).status == BookStatus.DRAFT

    @pytest.mark.asyncio
    async def test_outline_with_gap_rejected(self, resources, db, sample_book):
        from config.exceptions import InvalidConfigError
        from models.outline import ChapterSpec, Outline
        outline = Outline(
            title="Gap", author="A", genre="fantasy", description="",
            chapters=(ChapterSpec(1, "One"), ChapterSpec(3, "Three")),
        )
        with pytest.raises(InvalidConfigError):
            await _run(resources, sample_book, outline=outline)
        assert db.get_run_progress(sample_book.id) is None

    @pytest.mark.asyncio
    async def test_wrong_owner_rejected(self, resources, sample_book):
        from config.exceptions import ContractViolationError
        from models.outline import GenerationConfig
        from workflow.graph import run_generation
        with pytest.raises(ContractViolationError, match="not owned"):
            await run_generation(sample_book.id, "intruder", make_outline(2), GenerationConfig(), resources=resources)

    @pytest.mark.asyncio
    async def test_missing_book_rejected(self, resources):
        from config.exceptions import ContractViolationError
        from models.outline import GenerationConfig
        from workflow.graph import run_generation
        with pytest.raises(ContractViolationError, match="not found"):
            await run_generation(999, "user-1", make_outline(2), GenerationConfig(), resources=resources)


class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_started_event_runs_generation(self, resources, sample_book):
        from workflow.graph import handle_event
        payload = {
            "bookId": sample_book.id,
            "userId": "user-1",
            "totalChapters": 3,
            "outline": make_outline(3).to_dict(),
            "config": {},
        }
        result = await handle_event("book/generation.started", payload, resources=resources)
        assert result.success
        assert result.chapters_generated == 3

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self, resources):
        from config.exceptions import ContractViolationError
        from workflow.graph import handle_event
        with pytest.raises(ContractViolationError):
            await handle_event("book/generation.paused", {}, resources=resources)
