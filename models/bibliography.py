"""Bibliography reference and configuration models."""

import random
import string
import time
from dataclasses import dataclass, field, asdict
from typing import Optional

from models.enums import CitationStyle, ReferenceType


def new_reference_id() -> str:
    """Return an id of the form ref_<timestamp>_<random>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"ref_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class Author:
    last_name: str = ""
    first_name: str = ""
    organization: str = ""

    @property
    def is_named(self) -> bool:
        return bool(self.last_name.strip() or self.organization.strip())


@dataclass(frozen=True)
class BibliographyReference:
    """A single structured reference produced by the bibliography generator."""
    type: ReferenceType
    title: str
    authors: tuple[Author, ...]
    id: str = field(default_factory=new_reference_id)
    year: Optional[int] = None
    publisher: Optional[str] = None
    url: Optional[str] = None
    doi: Optional[str] = None
    access_date: Optional[str] = None
    # Type-specific fields (journal and conference papers mostly)
    journal_title: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pages: Optional[str] = None

    def type_specific_data(self) -> dict:
        return {
            "journal_title": self.journal_title,
            "volume": self.volume,
            "issue": self.issue,
            "pages": self.pages,
        }

    def authors_as_dicts(self) -> list[dict]:
        return [asdict(a) for a in self.authors]


@dataclass
class BibliographyConfig:
    """Per-book bibliography display configuration."""
    book_id: int = 0
    enabled: bool = True
    citation_style: CitationStyle = CitationStyle.APA
    location: list[str] = field(default_factory=lambda: ["bibliography"])
    sort_by: str = "author"
    sort_direction: str = "asc"
    include_annotations: bool = False
    include_abstracts: bool = False
    hanging_indent: bool = True
    line_spacing: str = "single"
    group_by_type: bool = False
    numbering_style: str = "none"
    show_doi: bool = True
    show_url: bool = True
    show_access_date: bool = True
