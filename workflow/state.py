"""LangGraph workflow state definition."""

from typing import TypedDict


class GenerationState(TypedDict, total=False):
    """State shared by all nodes of one generation run.

    Fields are grouped logically:
    - Identity: book_id, user_id
    - Inputs: outline, generation_config, chapter_model, total_chapters
    - Chapter batches: batches, batch_index, chapters
    - Later stages: covers, references_saved, references_failed
    - Control: stage, cancelled, error, failed_step, last_node
    """

    # Identity
    book_id: int
    user_id: str

    # Inputs (serialized Outline / GenerationConfig)
    outline: dict
    generation_config: dict
    chapter_model: str
    total_chapters: int

    # Chapter batches
    batches: list          # list[list[int]], chapter numbers per batch
    batch_index: int       # Next batch to generate
    chapters: list         # GeneratedChapter dicts, ascending by number

    # Covers and bibliography
    covers: dict           # {"front_url": str | None, "back_url": str | None}
    references_saved: int
    references_failed: int

    # Control flow
    stage: str
    cancelled: bool
    error: str
    failed_step: str
    last_node: str
