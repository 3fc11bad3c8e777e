"""Rich formatting for command results, saves and server state."""

from datetime import datetime, timezone

from rich.markup import escape
from rich.table import Table

from .orchestrator import ServerState
from .protocol import CommandResult
from .saves import SaveRecord

_STATE_COLORS = {
    ServerState.RUNNING: "green",
    ServerState.READY: "cyan",
    ServerState.STARTING: "yellow",
    ServerState.STOPPING: "yellow",
    ServerState.STOPPED: "red",
}


def format_size(n: int) -> str:
    """Human-readable byte count (1024-based)."""
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    x = float(n)
    while x >= 1024 and i < len(units) - 1:
        x /= 1024
        i += 1
    if i == 0:
        return f"{n} B"
    return f"{x:.1f} {units[i]}"


def format_age(when: datetime, now: datetime | None = None) -> str:
    """Coarse relative time, e.g. "5m ago"."""
    now = now or datetime.now(timezone.utc)
    seconds = int((now - when).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def format_result(result: CommandResult) -> str:
    """Rich markup for a CommandResult.

    Successful command output is shown verbatim; errors get a red header
    with the detail text dimmed underneath.
    """
    if result.ok:
        return escape(result.details or result.message)
    text = f"[red]Error:[/red] {escape(result.message)}"
    if result.details:
        text += f"\n[dim]{escape(result.details)}[/dim]"
    return text


def format_state(state: ServerState, save_name: str | None = None) -> str:
    color = _STATE_COLORS.get(state, "white")
    text = f"[{color}]{state.value}[/{color}]"
    if save_name:
        text += f" [dim](save: {escape(save_name)})[/dim]"
    return text


def saves_table(records: list[SaveRecord], current: str | None = None) -> Table:
    """Table of saves in the order given (newest first from SaveStore)."""
    table = Table(title="Saves", title_justify="left")
    table.add_column("Name", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for record in records:
        name = escape(record.name)
        if record.name == current:
            name += " [green]*[/green]"
        table.add_row(
            name,
            format_size(record.size_bytes),
            f"{record.modified_at:%Y-%m-%d %H:%M} [dim]({format_age(record.modified_at)})[/dim]",
        )
    return table
