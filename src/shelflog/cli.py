"""Command-line interface for shelflog.

Built with Typer for commands and Rich for beautiful output.
"""

import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db.schemas import BookCreate, FinishChoice, ReadingStatus
from .errors import ConflictError, ShelflogError
from .gamification.achievements import ACHIEVEMENT_NAMES
from .library import get_tracker
from .reading.status import StatusChangeOutcome
from .utils import from_iso

# Create the main app
app = typer.Typer(
    name="shelflog",
    help="Track your reading sessions, streaks and achievements.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging before any command runs."""
    config = get_config()
    for problem in config.validate():
        print_warning(problem)

    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def parse_when(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO date or datetime; naive values are taken as local time."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        print_error(f"Invalid date: {value} (use YYYY-MM-DD or YYYY-MM-DDTHH:MM)")
        raise typer.Exit(1)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def resolve_book(query: str):
    """Find a book by ID or title/author, prompting when several match."""
    tracker = get_tracker()

    book = tracker.db.get_book(query)
    if book:
        return book

    books = tracker.db.search_books(query, limit=5)
    if not books:
        print_error(f"No book found matching: {query}")
        raise typer.Exit(1)

    if len(books) == 1:
        return books[0]

    console.print("\n[bold]Multiple books found:[/bold]")
    for i, b in enumerate(books, 1):
        console.print(f"  {i}. {b.title} by {b.author}")
    choice = typer.prompt("Select book number", type=int, default=1)
    if choice < 1 or choice > len(books):
        print_error("Invalid selection")
        raise typer.Exit(1)
    return books[choice - 1]


def format_book_table(books: list, title: str = "Books") -> Table:
    """Create a rich table for displaying books."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Status", style="yellow")
    table.add_column("Progress", justify="right")
    table.add_column("ID", style="dim")

    for book in books:
        if book.total_pages:
            progress = f"{book.current_page}/{book.total_pages} ({book.progress_percent:.0f}%)"
        else:
            progress = str(book.current_page) if book.current_page else "-"
        table.add_row(book.title, book.author, book.status, progress, book.id[:8])

    return table


def report_session(entry) -> None:
    """Print what a finished session was worth."""
    console.print(f"  Pages: {entry.start_page} -> {entry.end_page} ({entry.pages_read})")
    console.print(f"  Duration: {entry.duration_minutes} minutes")
    console.print(f"  XP earned: [bold]{entry.xp_earned}[/bold]")


# ============================================================================
# Book Commands
# ============================================================================


@app.command()
def add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Author name"),
    pages: Optional[int] = typer.Option(None, "--pages", "-p", help="Total pages"),
    status: ReadingStatus = typer.Option(
        ReadingStatus.WANT_TO_READ, "--status", "-s", help="Initial status"
    ),
) -> None:
    """Add a book to your shelf."""
    tracker = get_tracker()
    try:
        book = tracker.add_book(
            BookCreate(title=title, author=author, total_pages=pages, status=status)
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added: {book.title} by {book.author}")
    print_info(f"ID: {book.id}")


@app.command("books")
def list_books(
    status: Optional[ReadingStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
) -> None:
    """List books, optionally filtered by status."""
    tracker = get_tracker()
    books = tracker.books(status)

    if not books:
        console.print("[dim]No books found.[/dim]")
        return

    title = f"Books - {status.value.replace('_', ' ').title()}" if status else "All Books"
    console.print(format_book_table(books, title=title))


@app.command()
def status(
    query: str = typer.Argument(..., help="Book title or ID"),
    new_status: ReadingStatus = typer.Argument(..., help="New reading status"),
    untracked: bool = typer.Option(
        False, "--untracked", help="Finish without logging a session (no XP)"
    ),
    log_finish: bool = typer.Option(
        False, "--log", help="Finish and log the whole book as one session"
    ),
    minutes: int = typer.Option(0, "--minutes", "-m", help="Reading time for --log"),
) -> None:
    """Change a book's reading status.

    Finishing a book that has no tracked sessions asks whether to log the
    whole book as one session or to finish it untracked.
    """
    tracker = get_tracker()
    book = resolve_book(query)

    try:
        if new_status == ReadingStatus.FINISHED and log_finish:
            result = tracker.status.finish_with_session(book.id, duration_minutes=minutes)
        else:
            choice = FinishChoice.UNTRACKED if untracked else None
            result = tracker.status.change_status(book.id, new_status, finish_choice=choice)

            if result.outcome == StatusChangeOutcome.NEEDS_FINISH_CHOICE:
                console.print(f"[yellow]'{book.title}' has no tracked reading sessions.[/yellow]")
                if typer.confirm("Log the whole book as one reading session?", default=True):
                    result = tracker.status.finish_with_session(book.id, duration_minutes=minutes)
                else:
                    result = tracker.status.change_status(
                        book.id, new_status, finish_choice=FinishChoice.UNTRACKED
                    )
    except ShelflogError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if result.outcome == StatusChangeOutcome.UNCHANGED:
        print_info(f"'{book.title}' is already {new_status.value}.")
        return

    print_success(f"'{book.title}' is now {new_status.value}")
    if result.logged_session is not None and result.logged_session.counts_toward_stats:
        report_session(result.logged_session)


@app.command()
def progress(
    query: str = typer.Argument(..., help="Book title or ID"),
    page: int = typer.Argument(..., help="Page you're on now"),
) -> None:
    """Update a book's page without a timer."""
    tracker = get_tracker()
    book = resolve_book(query)

    try:
        entry = tracker.status.record_progress(book.id, page)
    except ShelflogError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if entry is None:
        print_info(f"'{book.title}' is already on page {page}.")
        return

    print_success(f"'{book.title}' now on page {entry.end_page}")
    console.print(f"  XP earned: [bold]{entry.xp_earned}[/bold]")


# ============================================================================
# Live Session Commands
# ============================================================================


@app.command()
def start(
    query: str = typer.Argument(..., help="Book title or ID"),
    replace: bool = typer.Option(
        False, "--replace", "-r", help="Finish the session already running and start this one"
    ),
) -> None:
    """Start a timed reading session."""
    tracker = get_tracker()
    book = resolve_book(query)
    tracker.sessions.cleanup_stale()

    try:
        if replace:
            finished, active = tracker.sessions.end_and_replace(book.id)
            if finished is not None:
                console.print("[green]Previous session logged.[/green]")
                report_session(finished)
        else:
            active = tracker.sessions.start(book.id)
    except ConflictError as e:
        print_error(str(e))
        console.print("[dim]Use 'shelflog finish', 'shelflog cancel' or 'start --replace'.[/dim]")
        raise typer.Exit(1)
    except ShelflogError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(f"[green]Started reading:[/green] {book.title}")
    console.print(f"  Starting from page {active.start_page}")
    print_info("Use 'shelflog finish' when done.")


@app.command("session")
def show_session() -> None:
    """Show the live reading session."""
    tracker = get_tracker()
    tracker.sessions.cleanup_stale()
    snap = tracker.sessions.snapshot()

    if not snap:
        console.print("[dim]No active reading session.[/dim]")
        console.print("[dim]Use 'shelflog start \"Book Title\"' to begin.[/dim]")
        return

    table = Table(title="Active Reading Session", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Book", snap.book_title or str(snap.book_id))
    table.add_row("Started", snap.started_at.strftime("%Y-%m-%d %H:%M"))
    table.add_row("Elapsed", f"{int(snap.elapsed_seconds // 60)} minutes")
    table.add_row("Pages", f"{snap.start_page} -> {snap.current_page} ({snap.pages_read})")
    table.add_row("State", "paused" if snap.is_paused else "running")
    table.add_row("Device", snap.source_device)

    console.print(table)


@app.command()
def page(
    number: int = typer.Argument(..., help="Page you're on now"),
) -> None:
    """Update the page of the live session."""
    active = get_tracker().sessions.update_page(number)
    if active is None:
        print_warning("No active session to update.")
        return
    console.print(f"[green]Progress updated to page {active.current_page}[/green]")


@app.command()
def pause() -> None:
    """Pause the live session."""
    active = get_tracker().sessions.pause()
    if active is None:
        print_warning("No active session to pause.")
        return
    print_success("Reading session paused.")


@app.command()
def resume() -> None:
    """Resume a paused session."""
    active = get_tracker().sessions.resume()
    if active is None:
        print_warning("No active session to resume.")
        return
    print_success("Reading session resumed.")


@app.command()
def finish(
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Final page"),
) -> None:
    """Finish the live session and log it."""
    try:
        entry = get_tracker().sessions.finish(end_page=page)
    except ShelflogError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if entry is None:
        print_warning("No active session to finish.")
        return

    console.print("[green]Reading session logged![/green]")
    report_session(entry)


@app.command()
def cancel() -> None:
    """Cancel the live session without logging it."""
    if get_tracker().sessions.cancel():
        print_success("Reading session cancelled.")
    else:
        print_warning("No active session to cancel.")


# ============================================================================
# Ledger Commands
# ============================================================================


@app.command()
def log(
    query: str = typer.Argument(..., help="Book title or ID"),
    start_page: int = typer.Option(..., "--from", help="Starting page"),
    end_page: int = typer.Option(..., "--to", help="Ending page"),
    duration: int = typer.Option(0, "--duration", "-d", help="Minutes spent"),
    session_date: Optional[str] = typer.Option(
        None, "--date", help="When (YYYY-MM-DD[THH:MM], default: now)"
    ),
) -> None:
    """Log a reading session manually (without start/stop timer)."""
    tracker = get_tracker()
    book = resolve_book(query)
    when = parse_when(session_date)

    try:
        entry = tracker.sessions.log_direct(book.id, start_page, end_page, duration, when)
    except ShelflogError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Logged reading session for: {book.title}")
    report_session(entry)


@app.command()
def sessions(
    query: str = typer.Argument(..., help="Book title or ID"),
) -> None:
    """List a book's reading sessions, newest first."""
    tracker = get_tracker()
    book = resolve_book(query)
    entries = tracker.ledger.sessions_for_book(book.id)

    if not entries:
        console.print(f"[dim]No reading sessions for {book.title}.[/dim]")
        return

    table = Table(title=f"Sessions - {book.title}", show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("XP", justify="right", style="yellow")
    table.add_column("Kind", style="dim")
    table.add_column("ID", style="dim")

    for entry in entries:
        if entry.is_imported:
            kind = "imported"
        elif entry.is_auto_generated:
            kind = "quick"
        else:
            kind = "timed"
        if not entry.counts_toward_stats:
            kind += " (untracked)"
        table.add_row(
            entry.started_at.strftime("%Y-%m-%d %H:%M"),
            f"{entry.start_page}-{entry.end_page}",
            str(entry.duration_minutes),
            str(entry.xp_earned),
            kind,
            entry.id[:8],
        )

    console.print(table)


@app.command("delete-session")
def delete_session(
    session_id: str = typer.Argument(..., help="Session ID (or its first characters)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a reading session and rebuild stats."""
    tracker = get_tracker()

    entry = tracker.ledger.get(session_id)
    if entry is None and len(session_id) < 36:
        matches = [
            e for e in tracker.ledger.countable_sessions() if e.id.startswith(session_id)
        ]
        entry = matches[0] if len(matches) == 1 else None
    if entry is None:
        print_error(f"Reading session not found: {session_id}")
        raise typer.Exit(1)

    if not yes and not typer.confirm(
        f"Delete session {entry.id[:8]} ({entry.pages_read} pages, {entry.xp_earned} XP)?"
    ):
        print_info("Cancelled.")
        return

    try:
        result = tracker.delete_session(entry.id)
    except ShelflogError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success("Reading session deleted.")
    if result.rolled_back_page is not None:
        console.print(f"  Book moved back to page {result.rolled_back_page}")
    if result.status_reverted:
        console.print("  Book is back to currently reading")


# ============================================================================
# Stats Commands
# ============================================================================


@app.command()
def stats() -> None:
    """Show XP, level, streaks and achievements."""
    tracker = get_tracker()
    summary = tracker.get_stats()

    streak = f"{summary.current_streak_days} days (longest {summary.longest_streak_days})"
    if summary.streaks_paused:
        streak += " [dim]paused[/dim]"

    lines = [
        f"[bold]Level {summary.level}[/bold]  {summary.xp_into_level}/1000 XP",
        f"Total XP: {summary.total_xp}",
        f"Streak: {streak}",
        f"Books finished: {summary.books_finished}",
        f"Pages read: {summary.pages_read}",
        f"Minutes read: {summary.minutes_read}",
        f"Sessions: {summary.sessions_count}",
    ]
    console.print(Panel("\n".join(lines), title="Reading Stats", border_style="cyan"))

    if summary.unlocked_achievements:
        table = Table(title="Achievements", show_header=False)
        table.add_column("Name", style="yellow")
        table.add_column("ID", style="dim")
        for achievement in summary.unlocked_achievements:
            table.add_row(ACHIEVEMENT_NAMES[achievement], achievement.value)
        console.print(table)


@app.command()
def streaks(
    paused: bool = typer.Option(..., "--pause/--unpause", help="Freeze or unfreeze streaks"),
) -> None:
    """Pause or unpause streak tracking."""
    profile = get_tracker().engine.set_streaks_paused(paused)
    state = "paused" if profile.streaks_paused else "active"
    print_success(f"Streak tracking {state}.")
    if profile.last_session_date:
        last = from_iso(profile.last_session_date)
        print_info(f"Last reading day: {last.date().isoformat()}")


@app.command()
def recalc() -> None:
    """Rebuild XP, streaks and achievements from the session history."""
    profile = get_tracker().recalculate_stats()
    print_success(
        f"Stats rebuilt: {profile.total_xp} XP, level {profile.level}, "
        f"streak {profile.current_streak_days} days"
    )


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"shelflog version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
