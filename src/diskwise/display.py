"""Rich terminal display for diskwise."""

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from diskwise.models import CacheEntry, Node, SearchResult

console = Console()

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_size(size_bytes: int) -> str:
    """Format bytes to a human-readable string (binary units, "--" if unknown)."""
    if size_bytes < 0:
        return "--"
    if size_bytes == 0:
        return "0 B"

    size = float(size_bytes)
    order = 0
    while size >= 1024 and order < len(SIZE_UNITS) - 1:
        order += 1
        size /= 1024

    if order == 0:
        return f"{size:.0f} {SIZE_UNITS[order]}"
    # Up to two decimals, trailing zeros dropped
    return f"{size:.2f}".rstrip("0").rstrip(".") + f" {SIZE_UNITS[order]}"


def format_last_modified(value: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Compact relative date: Today, Yesterday, 3d ago, 2w ago, MM-DD, YY-MM-DD."""
    if value is None:
        return "--"
    now = now or datetime.now()
    days = (now - value).total_seconds() / 86400
    if days < 1:
        return "Today"
    if days < 2:
        return "Yesterday"
    if days < 7:
        return f"{int(days)}d ago"
    if days < 30:
        return f"{int(days / 7)}w ago"
    if days < 365:
        return value.strftime("%m-%d")
    return value.strftime("%y-%m-%d")


def usage_bar(percentage: float, width: int = 20) -> str:
    """Text bar for a percentage."""
    filled = round(max(0.0, min(percentage, 100.0)) / 100 * width)
    return "[cyan]" + "█" * filled + "[/cyan]" + "[dim]" + "░" * (width - filled) + "[/dim]"


def _node_table(title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Share", justify="left")
    table.add_column("Files", justify="right")
    table.add_column("Folders", justify="right")
    table.add_column("Modified", justify="right")
    return table


def _node_row(node: Node, total: int) -> list[str]:
    percentage = node.size / total * 100 if total > 0 and node.size > 0 else 0.0
    name = f"{node.icon} {node.name}"
    if node.is_hidden:
        name = f"[dim]{name}[/dim]"
    return [
        name,
        format_size(node.size),
        f"{usage_bar(percentage)} {percentage:5.1f}%",
        str(node.file_count) if node.is_directory else "",
        str(node.folder_count) if node.is_directory else "",
        format_last_modified(node.last_modified),
    ]


def show_tree(root: Node, top: int = 20) -> None:
    """Display a scanned directory's largest immediate subdirectories."""
    console.print(
        f"[bold]{root.path}[/bold]  {format_size(root.size)}  "
        f"({root.file_count} files, {root.folder_count} folders)"
    )
    children = sorted(root.children, key=lambda n: n.size, reverse=True)
    if not children:
        return

    table = _node_table(f"Largest folders in {root.name}")
    for child in children[:top]:
        table.add_row(*_node_row(child, root.size))
    console.print(table)
    if len(children) > top:
        console.print(f"[dim]... and {len(children) - top} more[/dim]")


def show_listing(title: str, items: list[Node], total: int) -> None:
    """Display a shallow directory listing."""
    table = _node_table(title)
    for item in items:
        table.add_row(*_node_row(item, total))
    console.print(table)


def show_search_results(results: list[SearchResult], total: int) -> None:
    """Display search matches."""
    if not results:
        console.print("[yellow]No matches.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Path")
    for result in results:
        table.add_row(result.match_type.value, format_size(result.node.size), result.node.path)
    console.print(table)
    if total > len(results):
        console.print(f"[dim]Showing {len(results)} of {total} matches[/dim]")


def show_cache_entries(entries: list[CacheEntry]) -> None:
    """Display cached scans."""
    if not entries:
        console.print("[yellow]No cached scans.[/yellow]")
        return

    table = Table(title="Cached Scans", show_header=True, header_style="bold")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Folders", justify="right")
    table.add_column("Cached", justify="right")
    for entry in sorted(entries, key=lambda e: e.total_size, reverse=True):
        table.add_row(
            entry.path,
            format_size(entry.total_size),
            str(entry.file_count),
            str(entry.folder_count),
            entry.cached_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def show_status(message: str, cancelled: bool = False, error: bool = False) -> None:
    """Print a one-line status message."""
    if error:
        console.print(f"[red]{message}[/red]")
    elif cancelled:
        console.print(f"[yellow]{message}[/yellow]")
    else:
        console.print(f"[green]{message}[/green]")


def show_scanning_progress() -> Progress:
    """Create a spinner for a running scan."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TextColumn("[cyan]{task.completed}[/cyan] items"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
