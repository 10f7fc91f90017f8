"""Conditional routing functions for the LangGraph workflow."""

from workflow.state import GenerationState


def _abort_target(state: GenerationState) -> str | None:
    """Errors win over cancellation; both end the run."""
    if state.get("error"):
        return "handle_error"
    if state.get("cancelled"):
        return "mark_cancelled"
    return None


def _next_chapter_node(state: GenerationState) -> str:
    if state.get("batch_index", 0) < len(state.get("batches", [])):
        return "generate_batch"
    return "generate_covers"


def route_after_init(state: GenerationState) -> str:
    """Route after initialization: first batch, or straight to covers if none."""
    return _abort_target(state) or _next_chapter_node(state)


def route_after_batch(state: GenerationState) -> str:
    """Route after a batch: next batch while any remain, then covers."""
    return _abort_target(state) or _next_chapter_node(state)


def route_after_covers(state: GenerationState) -> str:
    """Route after covers: bibliography only when enabled in the config."""
    target = _abort_target(state)
    if target:
        return target
    if state.get("generation_config", {}).get("bibliography_enabled"):
        return "generate_bibliography"
    return "finalize"


def route_after_bibliography(state: GenerationState) -> str:
    return _abort_target(state) or "finalize"
