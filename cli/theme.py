"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

from models.enums import BookStatus, RunStage

BOOK_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "genre": "bold",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
    "character.name": "bold cyan",
})

STATUS_COLORS = {
    BookStatus.DRAFT: "dim",
    BookStatus.GENERATING: "yellow",
    BookStatus.COMPLETED: "green",
    BookStatus.FAILED: "red",
    BookStatus.CANCELLED: "magenta",
}

STAGE_COLORS = {
    RunStage.COMPLETE: "green",
    RunStage.FAILED: "red",
    RunStage.CANCELLED: "magenta",
}


def get_console() -> Console:
    """Return a Console instance with the book theme applied."""
    return Console(theme=BOOK_THEME)


def app_header(title: str = "bookstudio") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "Generate book").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def error_panel(title: str, body: str) -> Panel:
    return Panel(body, title=f"[error]{title}[/]", box=box.ROUNDED, border_style="red", padding=(0, 2))


def status_text(status: BookStatus) -> str:
    return f"[{STATUS_COLORS.get(status, 'white')}]{status.value}[/]"


def book_summary_panel(book, chapter_count: int) -> Panel:
    """Return a Panel with book summary stats.

    Args:
        book: Book with .title, .genre, .description, .status, .metadata.
        chapter_count: Number of persisted chapters.
    """
    description = book.description or ""
    if len(description) > 200:
        description = description[:200] + "..."

    meta = book.metadata
    body = (
        f"  [stat.label]Author:[/] {book.author}  "
        f"[muted]|[/]  [stat.label]Genre:[/] [genre]{book.genre}[/]  "
        f"[muted]|[/]  [stat.label]Status:[/] {status_text(book.status)}\n"
        f"  [stat.label]Chapters:[/] [stat.value]{chapter_count}[/]  "
        f"[muted]|[/]  [stat.label]Words:[/] [stat.value]{meta.word_count:,}[/]  "
        f"[muted]|[/]  [stat.label]Pages:[/] [stat.value]{meta.page_count}[/]  "
        f"[muted]|[/]  [stat.label]Reading time:[/] [stat.value]{meta.reading_time} min[/]\n"
        f"  [stat.label]Description:[/] {description}"
    )
    if book.error_message:
        body += f"\n  [error]Error: {book.error_message}[/]"
    return Panel(
        body,
        title=f"[bold]{book.title}[/] [muted](ID: {book.id})[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def outline_tree(outline) -> Tree:
    """Build a Rich Tree of an outline's chapters.

    Args:
        outline: Outline with .title and .chapters (ChapterSpec items).
    """
    tree = Tree(f"[bold]{outline.title}[/]")
    for ch in outline.chapters[:12]:
        summary = ch.summary or ""
        short = (summary[:50] + "...") if len(summary) > 50 else summary
        tree.add(f"[chapter.num]{ch.number}.[/] {ch.title} [muted]{short}[/]")
    if len(outline.chapters) > 12:
        tree.add(f"[muted]... ({len(outline.chapters)} chapters)[/]")
    return tree


def character_cards(characters: list) -> Table:
    """Build a Rich Table layout of character information."""
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("Character", style="character.name")
    table.add_column("Role", style="muted")
    table.add_column("Description")

    for c in characters[:8]:
        desc = c.description or ""
        if len(desc) > 60:
            desc = desc[:60] + "..."
        table.add_row(c.name, c.role, desc)

    if len(characters) > 8:
        table.add_row(f"[muted]+{len(characters) - 8} more[/]", "", "")

    return table


def progress_panel(progress) -> Panel:
    """Return a Panel describing a RunProgress."""
    color = STAGE_COLORS.get(progress.stage, "yellow")
    body = (
        f"  [stat.label]Stage:[/] [{color}]{progress.stage.value}[/]\n"
        f"  [stat.label]Chapters:[/] [stat.value]{progress.chapters_completed}/{progress.total_chapters}[/]  "
        f"[muted]|[/]  [stat.label]Progress:[/] [stat.value]{progress.percentage}%[/]"
    )
    if progress.error_message:
        body += f"\n  [error]Error: {progress.error_message}[/]"
    if progress.updated_at:
        body += f"\n  [muted]Updated {progress.updated_at}[/]"
    return Panel(body, title="[bold]Generation run[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))
