"""Agents package — outline, chapter and bibliography generation."""

from agents.base_agent import BaseAgent
from agents.outline_agent import OutlineAgent, OutlineBrief
from agents.writer_agent import WriterAgent
from agents.batch_generator import ChapterBatchGenerator
from agents.bibliography_agent import BibliographyAgent

__all__ = [
    "BaseAgent",
    "OutlineAgent",
    "OutlineBrief",
    "WriterAgent",
    "ChapterBatchGenerator",
    "BibliographyAgent",
]
