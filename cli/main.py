"""CLI entry point — BookStudio background book generation.

Usage:
  bookstudio outline ...     Generate an outline JSON file from a brief
  bookstudio create ...      Create a book record from an outline file
  bookstudio generate ...    Run chapter, cover and bibliography generation
  bookstudio cancel -b 1     Ask a running generation to stop
  bookstudio status -b 1     Show book and run progress
  bookstudio books           List books
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

# Ensure UTF-8 output on Windows
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from rich.table import Table

from cli.theme import (
    get_console,
    app_header,
    command_panel,
    success_panel,
    error_panel,
    status_text,
    book_summary_panel,
    outline_tree,
    character_cards,
    progress_panel,
)
from config.exceptions import BookStudioError
from config.logging_config import setup_logging
from config.settings import get_settings
from models.book import Book, BookMetadata
from models.database import Database
from models.enums import CitationStyle, ExecutionMode, GenerationSpeed, RunStage
from models.outline import GenerationConfig, Outline
from workflow.callbacks import RichProgressCallback

console = get_console()

DEFAULT_USER = "local"


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    settings = get_settings()
    setup_logging(
        level=level,
        log_dir=settings.log_dir,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )


def _open_db() -> Database:
    return Database(get_settings().sqlite_db_path)


def _load_outline(path: str) -> Outline:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        outline = Outline.from_dict(data)
        outline.validate()
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[error]Cannot read outline {path}: {e}[/]")
        sys.exit(1)
    except BookStudioError as e:
        console.print(f"[error]Invalid outline {path}: {e.message}[/]")
        sys.exit(1)
    return outline


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """BookStudio — AI book generation with durable background runs.

    \b
    Typical flow:
      bookstudio outline -a "Jane Doe" -g fantasy -d "A mapmaker..." -o book.json
      bookstudio create -f book.json
      bookstudio generate -b 1 -f book.json
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# outline command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--author", "-a", required=True, help="Author name")
@click.option("--genre", "-g", required=True, help="Genre (e.g. fantasy, memoir, business)")
@click.option("--description", "-d", required=True, help="What the book is about")
@click.option("--chapters", "-c", default=10, show_default=True, help="Number of chapters")
@click.option("--length", "-l", default="medium", show_default=True,
              type=click.Choice(["micro", "novella", "short-novel", "short", "medium", "long", "epic"]))
@click.option("--title", "-t", default=None, help="Fixed title (otherwise generated)")
@click.option("--tone", default="engaging", show_default=True)
@click.option("--audience", default="general readers", show_default=True)
@click.option("--non-fiction", is_flag=True, help="Plan a non-fiction book")
@click.option("--instructions", "-i", default="", help="Extra instructions for the outline")
@click.option("--model", "-m", default=None, help="Outline model (defaults to settings)")
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False), help="Where to write the outline JSON")
def outline(author, genre, description, chapters, length, title, tone, audience,
            non_fiction, instructions, model, output):
    """Generate a book outline and save it as JSON.

    Example:
      bookstudio outline -a "Jane Doe" -g fantasy -d "A mapmaker finds a sea that is not on any chart" -o book.json
    """
    from agents.outline_agent import OutlineAgent, OutlineBrief

    brief = OutlineBrief(
        author=author,
        genre=genre,
        description=description,
        chapters=chapters,
        length=length,
        tone=tone,
        audience=audience,
        title=title,
        non_fiction=non_fiction,
        instructions=instructions,
    )

    console.print(app_header())
    console.print()
    console.print(command_panel("New outline", {
        "Author": author,
        "Genre": genre + (" (non-fiction)" if non_fiction else ""),
        "Chapters": f"{chapters} (~{brief.words_per_chapter:,} words each)",
        "Model": model or get_settings().default_outline_model,
    }))
    console.print()

    try:
        with console.status("Generating outline..."):
            result = asyncio.run(OutlineAgent().generate_outline(brief, model))
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted[/]")
        sys.exit(130)
    except BookStudioError as e:
        console.print(f"[error]Outline generation failed: {e}[/]")
        sys.exit(1)

    Path(output).write_text(json.dumps(result.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")

    console.print(outline_tree(result))
    console.print()
    if result.characters:
        console.print(character_cards(list(result.characters)))
        console.print()
    console.print(f"Saved to [accent]{output}[/]")
    console.print(f"Next: [info]bookstudio create -f {output}[/]")


# ---------------------------------------------------------------------------
# create command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--outline-file", "-f", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--user", "-u", default=DEFAULT_USER, show_default=True, help="Owning user id")
def create(outline_file, user):
    """Create a draft book record from an outline file."""
    book_outline = _load_outline(outline_file)
    db = _open_db()
    book_id = db.create_book(Book(
        user_id=user,
        title=book_outline.title,
        author=book_outline.author,
        genre=book_outline.genre,
        description=book_outline.description,
        metadata=BookMetadata(chapters=0),
    ))
    console.print(success_panel("Book created", (
        f"  [stat.label]ID:[/] [stat.value]{book_id}[/]\n"
        f"  [stat.label]Title:[/] {book_outline.title}\n"
        f"  [stat.label]Chapters planned:[/] [stat.value]{book_outline.total_chapters}[/]"
    )))
    console.print(f"Next: [info]bookstudio generate -b {book_id} -f {outline_file}[/]")


# ---------------------------------------------------------------------------
# generate command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int, help="Book ID")
@click.option("--outline-file", "-f", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--user", "-u", default=DEFAULT_USER, show_default=True, help="Owning user id")
@click.option("--model", "-m", default=None, help="Chapter model id")
@click.option("--speed", type=click.Choice([s.value for s in GenerationSpeed]), default=None,
              help="Pick a model by speed preset when --model is not given")
@click.option("--parallel", is_flag=True, help="Write the chapters of a batch concurrently")
@click.option("--bibliography/--no-bibliography", default=False, show_default=True)
@click.option("--citation-style", type=click.Choice([s.value for s in CitationStyle]),
              default=CitationStyle.APA.value, show_default=True)
@click.option("--resume", is_flag=True, help="Skip steps that completed in an earlier run")
def generate(book_id, outline_file, user, model, speed, parallel, bibliography, citation_style, resume):
    """Generate chapters, covers and (optionally) a bibliography for a book.

    Examples:
      bookstudio generate -b 1 -f book.json
      bookstudio generate -b 1 -f book.json --parallel --bibliography
      bookstudio generate -b 1 -f book.json --resume
    """
    from workflow.graph import run_generation

    book_outline = _load_outline(outline_file)
    config = GenerationConfig(
        chapter_model=model,
        mode=ExecutionMode.PARALLEL if parallel else ExecutionMode.SEQUENTIAL,
        bibliography_enabled=bibliography,
        citation_style=CitationStyle(citation_style),
        generation_speed=GenerationSpeed(speed) if speed else None,
    )

    console.print(app_header())
    console.print()
    console.print(command_panel("Generate book", {
        "Book": f"{book_outline.title} (ID {book_id})",
        "Chapters": str(book_outline.total_chapters),
        "Model": config.resolve_chapter_model(get_settings().default_chapter_model),
        "Mode": config.mode.value,
        "Bibliography": config.citation_style.value if bibliography else "off",
        "Resume": "yes" if resume else "no",
    }))
    console.print()

    cb = RichProgressCallback(console=console, total_chapters=book_outline.total_chapters)
    try:
        cb.start()
        try:
            result = asyncio.run(run_generation(
                book_id, user, book_outline, config, resume=resume, callback=cb,
            ))
        finally:
            cb.stop()
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted; rerun with --resume to continue[/]")
        sys.exit(130)
    except BookStudioError as e:
        console.print(f"\n[error]Cannot start generation: {e}[/]")
        sys.exit(1)

    console.print()
    body = (
        f"  Chapters: [stat.value]{result.chapters_generated}[/]\n"
        f"  Words: [stat.value]{result.total_words:,}[/]\n"
        f"  Front cover: [stat.value]{'yes' if result.has_cover else 'no'}[/]  "
        f"Back cover: [stat.value]{'yes' if result.has_back_cover else 'no'}[/]"
    )
    if bibliography:
        body += (
            f"\n  References: [stat.value]{result.references_saved}[/] saved, "
            f"[stat.value]{result.references_failed}[/] failed"
        )

    if result.success:
        console.print(success_panel("Generation complete", body))
    elif result.stage == RunStage.CANCELLED:
        console.print(error_panel("Generation cancelled", body))
    else:
        console.print(error_panel("Generation failed", body + f"\n  [error]{result.error}[/]"))
        console.print(f"\nRetry: [info]bookstudio generate -b {book_id} -f {outline_file} --resume[/]")
        sys.exit(1)


# ---------------------------------------------------------------------------
# cancel command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int, help="Book ID")
def cancel(book_id):
    """Ask a running generation to stop after its current step."""
    from workflow.cancellation import request_cancellation

    db = _open_db()
    if db.get_book(book_id) is None:
        console.print(f"[error]No book with ID {book_id}[/]")
        sys.exit(1)
    if request_cancellation(book_id, db):
        console.print(f"[warning]Cancellation requested for book {book_id}[/]")
    else:
        console.print(f"[muted]Book {book_id} has no generation run to cancel[/]")


# ---------------------------------------------------------------------------
# status command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int, help="Book ID")
def status(book_id):
    """Show a book's metadata and the progress of its generation run."""
    db = _open_db()
    book = db.get_book(book_id)
    if book is None:
        console.print(f"[error]No book with ID {book_id}[/]")
        sys.exit(1)

    chapters = db.get_chapters(book_id)
    console.print(app_header())
    console.print()
    console.print(book_summary_panel(book, len(chapters)))
    console.print()

    progress = db.get_run_progress(book_id)
    if progress:
        console.print(progress_panel(progress))
        console.print()

    if chapters:
        table = Table(title="Chapters", border_style="dim")
        table.add_column("#", style="chapter.num")
        table.add_column("Title")
        table.add_column("Words", justify="right")
        for ch in chapters:
            table.add_row(str(ch.chapter_number), ch.title or "-", f"{ch.word_count:,}")
        console.print(table)

    references = db.get_bibliography_references(book_id)
    if references:
        console.print(f"\n[stat.label]References:[/] [stat.value]{len(references)}[/]")


# ---------------------------------------------------------------------------
# books command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--user", "-u", default=None, help="Only books of this user")
def books(user):
    """List books."""
    db = _open_db()
    rows = db.list_books(user)
    if not rows:
        console.print("[warning]No books yet. Use [info]bookstudio create[/] first.[/]")
        return

    table = Table(title="Books", show_lines=True, border_style="dim")
    table.add_column("ID", style="chapter.num")
    table.add_column("Title", style="bold")
    table.add_column("Genre", style="genre")
    table.add_column("Status")
    table.add_column("Chapters", justify="right")
    table.add_column("Words", justify="right")

    for b in rows:
        table.add_row(
            str(b.id),
            b.title,
            b.genre,
            status_text(b.status),
            str(b.metadata.chapters),
            f"{b.metadata.word_count:,}",
        )
    console.print(table)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
