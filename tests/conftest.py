"""Shared pytest fixtures for the bookstudio test suite."""

import json
import re

import pytest
from unittest.mock import AsyncMock, MagicMock


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_books.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


@pytest.fixture(autouse=True)
def _reset_cancellations():
    """Cancellation requests are process-wide; isolate them per test."""
    from workflow import cancellation
    cancellation._requested.clear()
    yield
    cancellation._requested.clear()


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "books.db",
        log_dir=tmp_path / "logs",
        default_chapter_model="fake/writer",
        default_outline_model="fake/writer",
        default_image_model="fake-image",
        chapters_per_batch=2,
        step_max_retries=2,
        step_retry_backoff=0,
    )


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------

_CHAPTER_RE = re.compile(r"Write Chapter (\d+) of")


class FakeTextGenerator:
    """Deterministic text provider.

    Chapter prompts get ``words`` words of prose plus an end marker.
    Bibliography prompts get ``references``. Anything else gets ``reply``.
    ``fail_times`` makes the first N calls raise.
    """

    def __init__(self, words: int = 120, references=None, reply: str = "{}", fail_times: int = 0):
        self.words = words
        self.references = references if references is not None else []
        self.reply = reply
        self.fail_times = fail_times
        self.calls: list[dict] = []
        self.on_chapter = None

    async def generate(self, prompt: str, model_id: str, system_prompt: str = "") -> str:
        self.calls.append({"prompt": prompt, "model_id": model_id, "system_prompt": system_prompt})
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("provider unavailable")

        match = _CHAPTER_RE.search(prompt)
        if match:
            number = int(match.group(1))
            if self.on_chapter is not None:
                self.on_chapter(number)
            body = " ".join(["word"] * (self.words - 2))
            return f"Chapter {number} opens. {body}\n\n[END CHAPTER]"
        if "references" in prompt and "JSON" in prompt:
            return json.dumps({"references": self.references})
        return self.reply

    def chapter_prompts(self) -> list[str]:
        return [c["prompt"] for c in self.calls if _CHAPTER_RE.search(c["prompt"])]


class FakeImageGenerator:
    def __init__(self, fail_sides=()):
        self.fail_sides = set(fail_sides)
        self.calls: list[dict] = []

    async def generate_image(self, prompt: str, model_id: str, style: str) -> str:
        side = "back" if "back cover" in prompt.lower() else "front"
        self.calls.append({"prompt": prompt, "model_id": model_id, "style": style, "side": side})
        if side in self.fail_sides:
            raise RuntimeError(f"{side} image provider down")
        return f"https://images.test/{side}-{len(self.calls)}.png"


@pytest.fixture
def fake_text():
    return FakeTextGenerator()


@pytest.fixture
def fake_image():
    return FakeImageGenerator()


@pytest.fixture
def text_client(settings, fake_text):
    """TextGenerationClient routing every vendor/model id to the fake provider."""
    from tools.text_client import ProviderRegistry, TextGenerationClient
    registry = ProviderRegistry()
    registry.register_rule("vendor/model", lambda m: "/" in m, fake_text)
    return TextGenerationClient(registry=registry, settings=settings)


@pytest.fixture
def image_client(settings, fake_image):
    from tools.image_client import ImageGenerationClient
    from tools.text_client import ProviderRegistry
    registry = ProviderRegistry()
    registry.register("fake-image", fake_image)
    return ImageGenerationClient(registry=registry, settings=settings)


@pytest.fixture
def mock_llm():
    """Return a MagicMock replacing TextGenerationClient."""
    llm = MagicMock()
    llm.generate = AsyncMock(return_value="Some chapter text.\n\n[END CHAPTER]")
    llm.generate_json = AsyncMock(return_value={})
    llm.generate_json_list = AsyncMock(return_value=[])
    llm.get_usage_summary.return_value = {"total_calls": 1}
    return llm


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

def make_outline(chapters: int = 5, non_fiction: bool = False):
    from models.outline import ChapterSpec, CharacterSpec, Outline
    return Outline(
        title="The Salt Cartographer",
        author="Jane Doe",
        genre="business" if non_fiction else "fantasy",
        description="A mapmaker charts a sea that appears on no map.",
        chapters=tuple(
            ChapterSpec(number=n, title=f"Chapter Title {n}", summary=f"Summary of chapter {n}", target_word_count=2000)
            for n in range(1, chapters + 1)
        ),
        themes=("memory", "navigation"),
        characters=() if non_fiction else (CharacterSpec(name="Ines", role="protagonist", description="A mapmaker"),),
    )


@pytest.fixture
def sample_outline():
    return make_outline(5)


@pytest.fixture
def sample_book(db, sample_outline):
    """Insert and return a draft Book owned by user-1."""
    from models.book import Book
    book = Book(
        user_id="user-1",
        title=sample_outline.title,
        author=sample_outline.author,
        genre=sample_outline.genre,
        description=sample_outline.description,
    )
    book.id = db.create_book(book)
    return book


def valid_reference(title: str = "Maps and Minds") -> dict:
    return {
        "type": "book",
        "title": title,
        "authors": [{"firstName": "Ada", "lastName": "Lovelace"}],
        "year": 2019,
        "publisher": "Harbor Press",
    }
