"""Bibliography Agent: asks the model for references and validates each one."""

import logging
from typing import Optional, Sequence

from agents.base_agent import BaseAgent
from config.settings import Settings
from models.bibliography import Author, BibliographyReference
from models.enums import CitationStyle, ReferenceType
from models.outline import Outline
from tools.text_client import TextGenerationClient

logger = logging.getLogger(__name__)

_EXCERPT_CHARS = 300
_VALID_TYPES = {t.value for t in ReferenceType}


def _pick(data: dict, *keys):
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _opt_str(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_author(raw) -> Optional[Author]:
    if isinstance(raw, str):
        name = raw.strip()
        if not name:
            return None
        if "," in name:
            last, first = (part.strip() for part in name.split(",", 1))
        else:
            first, _, last = name.rpartition(" ")
        return Author(last_name=last, first_name=first)
    if isinstance(raw, dict):
        return Author(
            last_name=str(_pick(raw, "last_name", "lastName") or "").strip(),
            first_name=str(_pick(raw, "first_name", "firstName") or "").strip(),
            organization=str(_pick(raw, "organization", "org") or "").strip(),
        )
    return None


def _parse_year(value) -> Optional[int]:
    try:
        return int(str(value).strip()[:4]) if value is not None else None
    except ValueError:
        return None


def parse_reference(raw) -> Optional[BibliographyReference]:
    """Build a reference from one model-produced entry.

    Returns None when the entry lacks a known type, a title, or at least
    one author with a last name or organization.
    """
    if not isinstance(raw, dict):
        return None
    ref_type = str(raw.get("type") or "").strip().lower()
    title = str(raw.get("title") or "").strip()
    raw_authors = raw.get("authors") or []
    if isinstance(raw_authors, (str, dict)):
        raw_authors = [raw_authors]
    authors = tuple(a for a in (_parse_author(x) for x in raw_authors) if a is not None)

    if ref_type not in _VALID_TYPES or not title or not any(a.is_named for a in authors):
        return None

    return BibliographyReference(
        type=ReferenceType(ref_type),
        title=title,
        authors=authors,
        year=_parse_year(raw.get("year")),
        publisher=_opt_str(raw.get("publisher")),
        url=_opt_str(raw.get("url")),
        doi=_opt_str(raw.get("doi")),
        access_date=_opt_str(_pick(raw, "access_date", "accessDate")),
        journal_title=_opt_str(_pick(raw, "journal_title", "journalTitle")),
        volume=_opt_str(raw.get("volume")),
        issue=_opt_str(raw.get("issue")),
        pages=_opt_str(raw.get("pages")),
    )


class BibliographyAgent(BaseAgent):
    """Generates bibliography references for a finished manuscript."""

    def __init__(
        self,
        text_client: Optional[TextGenerationClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(text_client, settings)
        self._template = self._load_prompt("bibliography")

    def build_prompts(
        self,
        outline: Outline,
        chapter_texts: Sequence[str],
        citation_style: CitationStyle,
        verification: str = "moderate",
    ) -> tuple[str, str]:
        excerpts = "\n\n".join(
            f"[Chapter {i}] {text[:_EXCERPT_CHARS]}"
            for i, text in enumerate(chapter_texts, start=1)
        ) or "(no chapter text)"
        count = min(20, max(5, 2 * len(chapter_texts)))
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Reference Request").format(
            title=outline.title,
            author=outline.author,
            genre=outline.genre,
            description=outline.description,
            themes=", ".join(outline.themes) or "General themes",
            excerpts=excerpts,
            citation_style=citation_style.value,
            verification=verification,
            count=count,
        )
        return system_prompt, user_prompt

    async def generate_references(
        self,
        outline: Outline,
        chapter_texts: Sequence[str],
        citation_style: CitationStyle = CitationStyle.APA,
        model: Optional[str] = None,
    ) -> list[BibliographyReference]:
        """Generate references; malformed entries are dropped with a warning.

        Raises:
            ProviderError: If the call fails or the response holds no list.
        """
        model = model or self.settings.default_chapter_model
        system_prompt, user_prompt = self.build_prompts(outline, chapter_texts, citation_style)

        logger.info("Generating %s bibliography for '%s' with %s", citation_style.value, outline.title, model)
        entries = await self.llm.generate_json_list(user_prompt, model, system_prompt, key="references")

        references = []
        for index, raw in enumerate(entries):
            ref = parse_reference(raw)
            if ref is None:
                logger.warning("Dropping malformed reference #%d: %.120s", index, raw)
                continue
            references.append(ref)

        logger.info("Bibliography: %d valid of %d returned", len(references), len(entries))
        return references
