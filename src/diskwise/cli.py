"""CLI interface for diskwise."""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import typer
from rich.logging import RichHandler

from diskwise import __version__
from diskwise.config import Settings, load_settings, save_settings
from diskwise.display import (
    console,
    format_size,
    show_cache_entries,
    show_listing,
    show_scanning_progress,
    show_search_results,
    show_status,
    show_tree,
)
from diskwise.models import ScanProgress, SortKey, paths_equal
from diskwise.scanner import ThrottledProgress, expand_path
from diskwise.session import ScanOutcome, ScanSession, open_session

# Create Typer app
app = typer.Typer(
    name="diskwise",
    help="Disk usage analyzer - find what takes up space, with cached scans",
    add_completion=False,
)
cache_app = typer.Typer(help="Inspect or clear cached scans.")
app.add_typer(cache_app, name="cache")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"diskwise version {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route diskwise log records to the console when verbose."""
    logger = logging.getLogger("diskwise")
    if not verbose:
        logger.setLevel(logging.WARNING)
        return
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=console, show_path=False))
    logger.setLevel(logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging."),
) -> None:
    """diskwise - concurrent disk usage scanner with cached results."""
    configure_logging(verbose)


def _open_session() -> ScanSession:
    return open_session(load_settings())


def _existing_directory(path: str) -> str:
    expanded = expand_path(path)
    if not os.path.isdir(expanded):
        console.print(f"[red]Not a directory: {path}[/red]")
        raise typer.Exit(1)
    return expanded


def _run_scan(session: ScanSession, path: str) -> ScanOutcome:
    """Scan on a worker thread so Ctrl+C can cancel it cleanly."""
    cancel_event = threading.Event()

    with show_scanning_progress() as progress:
        task = progress.add_task("Scanning...", total=None)

        def update_progress(p: ScanProgress) -> None:
            name = os.path.basename(p.current_path) or p.current_path
            progress.update(task, completed=p.scanned_items, description=f"Scanning: {name}")

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(
                session.scan, path, ThrottledProgress(update_progress), cancel_event
            )
            try:
                return future.result()
            except KeyboardInterrupt:
                cancel_event.set()
                return future.result()


@app.command()
def scan(
    path: str = typer.Argument(".", help="Directory to scan"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Ignore cached results"),
    top: int = typer.Option(20, "--top", "-n", help="Number of folders to show"),
) -> None:
    """Scan a directory tree and show where the space goes."""
    path = _existing_directory(path)
    session = _open_session()

    if not refresh and session.scan_cache.is_fresh(path):
        root = session.scan_cache.get(path)
        if root is not None:
            show_tree(root, top=top)
            console.print("[dim]Loaded from cache. Use --refresh to rescan.[/dim]")
            return

    outcome = _run_scan(session, path)
    show_tree(outcome.root, top=top)
    console.print()
    show_status(outcome.status, cancelled=outcome.cancelled)


@app.command(name="ls")
def list_dir(
    path: str = typer.Argument(".", help="Directory to list"),
) -> None:
    """List a directory at once, with sizes from cached scans."""
    path = _existing_directory(path)
    session = _open_session()

    result = session.browse(path)
    save_settings(session.settings)
    if result.listing is None:
        show_status(result.status, error=True)
        raise typer.Exit(1)

    show_listing(path, result.listing.items, result.listing.total_size)
    show_status(result.status)


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to look for in names"),
    path: str = typer.Argument(".", help="Directory to search in"),
    limit: int = typer.Option(500, "--limit", "-l", help="Maximum results to show"),
) -> None:
    """Search file and folder names in a scanned directory."""
    path = _existing_directory(path)
    session = _open_session()

    if not session.has_cached_scan(path):
        console.print("[dim]No cached scan found, searching immediate children only.[/dim]")

    outcome = session.search(path, query, limit=limit)
    show_search_results(outcome.results, outcome.total)
    show_status(outcome.status)


@app.command()
def status(
    path: str = typer.Argument(".", help="Directory to check"),
) -> None:
    """Show whether a directory has a fresh cached scan."""
    path = expand_path(path)
    session = _open_session()

    for entry in session.scan_cache.entries():
        if paths_equal(entry.path, path):
            console.print(f"Cached scan: [green]fresh[/green] ({entry.cached_at:%Y-%m-%d %H:%M})")
            console.print(f"  Size:    {format_size(entry.total_size)}")
            console.print(f"  Files:   {entry.file_count}")
            console.print(f"  Folders: {entry.folder_count}")
            return

    if session.has_cached_scan(path):
        console.print("Cached scan: [green]available[/green] (inside a cached folder)")
    else:
        console.print("Cached scan: [yellow]none[/yellow]")
        console.print(f"[dim]Run [bold]diskwise scan {path}[/bold] to create one[/dim]")


@cache_app.command(name="list")
def cache_list() -> None:
    """List cached scans."""
    session = _open_session()
    show_cache_entries(session.scan_cache.entries())


@cache_app.command(name="clear")
def cache_clear(
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation prompt"),
) -> None:
    """Delete every cached scan."""
    if not yes and not typer.confirm("Delete all cached scans?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(0)
    session = _open_session()
    show_status(session.clear_cache())


@cache_app.command(name="invalidate")
def cache_invalidate(
    path: str = typer.Argument(..., help="Scan root to forget"),
) -> None:
    """Forget the cached scan of one directory."""
    path = expand_path(path)
    session = _open_session()
    if not session.scan_cache.is_fresh(path):
        console.print(f"[yellow]No cached scan for {path}[/yellow]")
        return
    session.invalidate(path)
    show_status(f"Removed cached scan of {path}")


@app.command()
def config(
    cache_days: Optional[int] = typer.Option(
        None, "--cache-days", min=0, help="Days before a cached scan expires"
    ),
    sort_by: Optional[SortKey] = typer.Option(None, "--sort-by", help="Listing order"),
    show_hidden: Optional[bool] = typer.Option(
        None, "--show-hidden/--hide-hidden", help="List hidden entries"
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Scanner threads"),
) -> None:
    """Show or change settings."""
    settings = load_settings()
    changes = {
        "cache_expiration_days": cache_days,
        "sort_by": sort_by,
        "show_hidden": show_hidden,
        "max_workers": workers,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if changes:
        settings = Settings.model_validate({**settings.model_dump(), **changes})
        if not save_settings(settings):
            console.print("[red]Could not save settings[/red]")
            raise typer.Exit(1)
        console.print("[green]Settings saved[/green]")

    console.print("[bold]Settings[/bold]")
    console.print(f"  Cache directory:  {settings.cache_dir}")
    console.print(f"  Cache expiration: {settings.cache_expiration_days} days")
    console.print(f"  Sort by:          {settings.sort_by.value}")
    console.print(f"  Show hidden:      {settings.show_hidden}")
    console.print(f"  Workers:          {settings.max_workers or 'CPU count'}")
    if settings.recent_folders:
        console.print("[bold]Recent folders[/bold]")
        for recent in settings.recent_folders:
            console.print(f"  • {recent.path}")


if __name__ == "__main__":
    app()
