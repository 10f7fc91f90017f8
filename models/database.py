"""SQLite persistence gateway for books, chapters, bibliography and run state."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from config.exceptions import PersistenceError
from models.bibliography import Author, BibliographyConfig, BibliographyReference
from models.book import Book, BookMetadata
from models.chapter import Chapter, GeneratedChapter
from models.enums import BookStatus, CitationStyle, ReferenceType, RunStage
from models.run import RunProgress

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    author TEXT DEFAULT '',
    genre TEXT DEFAULT '',
    description TEXT DEFAULT '',
    status TEXT DEFAULT 'draft',
    cover_url TEXT,
    metadata TEXT,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id),
    chapter_number INTEGER NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    content TEXT,
    word_count INTEGER DEFAULT 0,
    is_edited BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(book_id, chapter_number)
);

CREATE TABLE IF NOT EXISTS bibliography_configs (
    book_id INTEGER PRIMARY KEY REFERENCES books(id),
    enabled BOOLEAN DEFAULT TRUE,
    citation_style TEXT DEFAULT 'APA',
    location TEXT,
    sort_by TEXT DEFAULT 'author',
    sort_direction TEXT DEFAULT 'asc',
    include_annotations BOOLEAN DEFAULT FALSE,
    include_abstracts BOOLEAN DEFAULT FALSE,
    hanging_indent BOOLEAN DEFAULT TRUE,
    line_spacing TEXT DEFAULT 'single',
    group_by_type BOOLEAN DEFAULT FALSE,
    numbering_style TEXT DEFAULT 'none',
    show_doi BOOLEAN DEFAULT TRUE,
    show_url BOOLEAN DEFAULT TRUE,
    show_access_date BOOLEAN DEFAULT TRUE,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS bibliography_references (
    id TEXT PRIMARY KEY,
    book_id INTEGER NOT NULL REFERENCES books(id),
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    authors TEXT NOT NULL,
    year INTEGER,
    publisher TEXT,
    url TEXT,
    doi TEXT,
    access_date TEXT,
    type_specific_data TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS generation_runs (
    book_id INTEGER PRIMARY KEY REFERENCES books(id),
    total_chapters INTEGER NOT NULL,
    chapters_completed INTEGER DEFAULT 0,
    stage TEXT NOT NULL,
    error_message TEXT,
    cancel_requested BOOLEAN DEFAULT FALSE,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS run_steps (
    book_id INTEGER NOT NULL REFERENCES books(id),
    step_name TEXT NOT NULL,
    result_json TEXT,
    completed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (book_id, step_name)
);
"""

# Indexes added via migration (idempotent)
_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_books_user ON books(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_chapters_book ON chapters(book_id, chapter_number)",
    "CREATE INDEX IF NOT EXISTS idx_references_book ON bibliography_references(book_id)",
]


class Database:
    """SQLite database manager for the generation pipeline."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; sqlite errors become PersistenceError."""
        conn = self._get_conn()
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise PersistenceError(f"Database operation failed: {e}", {"db": str(self.db_path)}) from e
        finally:
            conn.close()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations."""
        conn = self._get_conn()
        try:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)
            conn.commit()
        finally:
            conn.close()

    # ---- Book CRUD ----

    def create_book(self, book: Book) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO books (user_id, title, author, genre, description, "
                "status, cover_url, metadata, error_message) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (book.user_id, book.title, book.author, book.genre, book.description,
                 book.status.value, book.cover_url, json.dumps(book.metadata.to_dict()),
                 book.error_message),
            )
            return cursor.lastrowid

    def get_book(self, book_id: int) -> Optional[Book]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if not row:
                return None
            return self._row_to_book(row)

    def list_books(self, user_id: Optional[str] = None) -> list[Book]:
        with self._connect() as conn:
            if user_id:
                rows = conn.execute(
                    "SELECT * FROM books WHERE user_id = ? ORDER BY id", (user_id,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM books ORDER BY id").fetchall()
            return [self._row_to_book(r) for r in rows]

    def update_book(self, book: Book):
        with self._connect() as conn:
            conn.execute(
                "UPDATE books SET title=?, author=?, genre=?, description=?, status=?, "
                "cover_url=?, metadata=?, error_message=?, "
                "updated_at=CURRENT_TIMESTAMP WHERE id=?",
                (book.title, book.author, book.genre, book.description, book.status.value,
                 book.cover_url, json.dumps(book.metadata.to_dict()), book.error_message,
                 book.id),
            )

    def _row_to_book(self, row) -> Book:
        return Book(
            id=row["id"], user_id=row["user_id"], title=row["title"],
            author=row["author"], genre=row["genre"], description=row["description"],
            status=BookStatus(row["status"]), cover_url=row["cover_url"],
            metadata=BookMetadata.from_dict(json.loads(row["metadata"]) if row["metadata"] else None),
            error_message=row["error_message"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    # ---- Chapter CRUD ----

    def create_chapters(self, book_id: int, chapters: list[GeneratedChapter]) -> int:
        """Insert chapters, replacing any existing row with the same number."""
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO chapters (book_id, chapter_number, title, content, word_count) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(book_id, chapter_number) DO UPDATE SET "
                "title=excluded.title, content=excluded.content, "
                "word_count=excluded.word_count, is_edited=FALSE, "
                "updated_at=CURRENT_TIMESTAMP",
                [(book_id, ch.chapter_number, ch.title, ch.content, ch.word_count)
                 for ch in chapters],
            )
        return len(chapters)

    def get_chapters(self, book_id: int) -> list[Chapter]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM chapters WHERE book_id = ? ORDER BY chapter_number",
                (book_id,),
            ).fetchall()
            return [self._row_to_chapter(r) for r in rows]

    def get_total_word_count(self, book_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(word_count), 0) AS total FROM chapters WHERE book_id = ?",
                (book_id,),
            ).fetchone()
            return row["total"]

    def delete_chapters(self, book_id: int, above: int = 0) -> int:
        """Delete chapters numbered above ``above`` (all of them by default)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM chapters WHERE book_id = ? AND chapter_number > ?",
                (book_id, above),
            )
            deleted = cursor.rowcount
        if deleted:
            logger.info("Deleted %d chapters above %d for book %d", deleted, above, book_id)
        return deleted

    def _row_to_chapter(self, row) -> Chapter:
        return Chapter(
            id=row["id"], book_id=row["book_id"],
            chapter_number=row["chapter_number"], title=row["title"],
            content=row["content"] or "", word_count=row["word_count"],
            is_edited=bool(row["is_edited"]),
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    # ---- Bibliography ----

    def upsert_bibliography_config(self, config: BibliographyConfig):
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO bibliography_configs (book_id, enabled, citation_style, location, "
                "sort_by, sort_direction, include_annotations, include_abstracts, "
                "hanging_indent, line_spacing, group_by_type, numbering_style, "
                "show_doi, show_url, show_access_date) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(book_id) DO UPDATE SET enabled=excluded.enabled, "
                "citation_style=excluded.citation_style, updated_at=CURRENT_TIMESTAMP",
                (config.book_id, config.enabled, config.citation_style.value,
                 json.dumps(config.location), config.sort_by, config.sort_direction,
                 config.include_annotations, config.include_abstracts,
                 config.hanging_indent, config.line_spacing, config.group_by_type,
                 config.numbering_style, config.show_doi, config.show_url,
                 config.show_access_date),
            )

    def get_bibliography_config(self, book_id: int) -> Optional[BibliographyConfig]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bibliography_configs WHERE book_id = ?", (book_id,),
            ).fetchone()
            if not row:
                return None
            return BibliographyConfig(
                book_id=row["book_id"], enabled=bool(row["enabled"]),
                citation_style=CitationStyle(row["citation_style"]),
                location=json.loads(row["location"]) if row["location"] else ["bibliography"],
                sort_by=row["sort_by"], sort_direction=row["sort_direction"],
                include_annotations=bool(row["include_annotations"]),
                include_abstracts=bool(row["include_abstracts"]),
                hanging_indent=bool(row["hanging_indent"]),
                line_spacing=row["line_spacing"],
                group_by_type=bool(row["group_by_type"]),
                numbering_style=row["numbering_style"],
                show_doi=bool(row["show_doi"]), show_url=bool(row["show_url"]),
                show_access_date=bool(row["show_access_date"]),
            )

    def create_bibliography_reference(self, book_id: int, ref: BibliographyReference) -> str:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO bibliography_references (id, book_id, type, title, authors, "
                "year, publisher, url, doi, access_date, type_specific_data) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (ref.id, book_id, ref.type.value, ref.title,
                 json.dumps(ref.authors_as_dicts()), ref.year, ref.publisher,
                 ref.url, ref.doi, ref.access_date,
                 json.dumps(ref.type_specific_data())),
            )
        return ref.id

    def delete_bibliography_references(self, book_id: int) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM bibliography_references WHERE book_id = ?", (book_id,),
            )
            return cursor.rowcount

    def get_bibliography_references(self, book_id: int) -> list[BibliographyReference]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM bibliography_references WHERE book_id = ? ORDER BY created_at, id",
                (book_id,),
            ).fetchall()
        refs = []
        for r in rows:
            extra = json.loads(r["type_specific_data"]) if r["type_specific_data"] else {}
            refs.append(BibliographyReference(
                id=r["id"], type=ReferenceType(r["type"]), title=r["title"],
                authors=tuple(Author(**a) for a in json.loads(r["authors"])),
                year=r["year"], publisher=r["publisher"], url=r["url"],
                doi=r["doi"], access_date=r["access_date"],
                journal_title=extra.get("journal_title"), volume=extra.get("volume"),
                issue=extra.get("issue"), pages=extra.get("pages"),
            ))
        return refs

    # ---- Run progress ----

    def get_run_progress(self, book_id: int) -> Optional[RunProgress]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM generation_runs WHERE book_id = ?", (book_id,),
            ).fetchone()
            if not row:
                return None
            return RunProgress(
                book_id=row["book_id"], total_chapters=row["total_chapters"],
                chapters_completed=row["chapters_completed"],
                stage=RunStage(row["stage"]), error_message=row["error_message"],
                updated_at=row["updated_at"],
            )

    def save_run_progress(self, progress: RunProgress):
        """Upsert progress; the cancel flag is left untouched."""
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO generation_runs (book_id, total_chapters, chapters_completed, "
                "stage, error_message) VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(book_id) DO UPDATE SET total_chapters=excluded.total_chapters, "
                "chapters_completed=excluded.chapters_completed, stage=excluded.stage, "
                "error_message=excluded.error_message, updated_at=CURRENT_TIMESTAMP",
                (progress.book_id, progress.total_chapters, progress.chapters_completed,
                 progress.stage.value, progress.error_message),
            )

    # ---- Cancel flag ----

    def set_cancel_requested(self, book_id: int, requested: bool = True) -> bool:
        """Set the cancel flag. Returns False when the book has no run row."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE generation_runs SET cancel_requested = ?, "
                "updated_at=CURRENT_TIMESTAMP WHERE book_id = ?",
                (requested, book_id),
            )
            return cursor.rowcount > 0

    def is_cancel_requested(self, book_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT cancel_requested FROM generation_runs WHERE book_id = ?", (book_id,),
            ).fetchone()
            return bool(row and row["cancel_requested"])

    # ---- Step journal ----

    def get_step_result(self, book_id: int, step_name: str) -> Optional[str]:
        """Return the journaled result JSON of a completed step, or None."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT result_json FROM run_steps WHERE book_id = ? AND step_name = ?",
                (book_id, step_name),
            ).fetchone()
            return row["result_json"] if row else None

    def record_step_result(self, book_id: int, step_name: str, result_json: str):
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO run_steps (book_id, step_name, result_json) "
                "VALUES (?, ?, ?)",
                (book_id, step_name, result_json),
            )

    def list_completed_steps(self, book_id: int) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT step_name FROM run_steps WHERE book_id = ? ORDER BY completed_at, rowid",
                (book_id,),
            ).fetchall()
            return [r["step_name"] for r in rows]

    def clear_step_journal(self, book_id: int):
        with self._connect() as conn:
            conn.execute("DELETE FROM run_steps WHERE book_id = ?", (book_id,))
        logger.debug("Step journal cleared for book %d", book_id)
