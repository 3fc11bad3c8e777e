"""Game command vocabulary and console dot-commands.

The RCON client is command-agnostic; this module only names the console
commands operators use most. Dot-commands (``.time``, ``.load default``)
are handled client-side and either forward one of these commands through
the executor or drive the save-swap orchestrator.
"""

from pathlib import Path

from rich.table import Table

from .display import format_result, format_state, saves_table
from .errors import RconError
from .executor import CommandExecutor
from .orchestrator import SaveSwapOrchestrator

# --- Named game commands ---

TIME = "/time"
SLOW = "/c game.speed = 0.1"
SPEED_UP = "/c game.speed = 1.0"
SAVE = "/server-save"
PAUSE = "/c game.tick_paused = true"
UNPAUSE = "/c game.tick_paused = false"
PLAYERS = "/players online"

MAX_SPEED = 100.0

GAME_COMMANDS = {
    "time": TIME,
    "slow": SLOW,
    "speed-up": SPEED_UP,
    "save": SAVE,
    "pause": PAUSE,
    "unpause": UNPAUSE,
    "players": PLAYERS,
}


def speed_command(multiplier: float) -> str:
    """Command setting the game speed multiplier (1.0 is normal).

    Raises:
        ValueError: If the multiplier is not in (0, MAX_SPEED].
    """
    if not 0 < multiplier <= MAX_SPEED:
        raise ValueError(f"Speed must be between 0 and {MAX_SPEED:g}, got {multiplier:g}")
    return f"/c game.speed = {multiplier:g}"


# --- Dot-commands ---

DOT_HELP = {
    "help": "Show this list",
    "time": "Show the in-game time",
    "slow": "Set game speed to 0.1x",
    "speed": "Set game speed: .speed <multiplier>",
    "speed-up": "Restore normal game speed (1.0x)",
    "save": "Trigger a server save",
    "pause": "Pause the game",
    "unpause": "Resume the game",
    "players": "List online players",
    "saves": "List save files, newest first",
    "load": "Restart the server on a save: .load <name>",
    "upload": "Copy a save file in as 'uploaded': .upload <path> [--load]",
    "state": "Show the server process state",
    "quit": "Exit the console",
}

# Sentinel return value for the REPL loop
QUIT = object()


def help_table() -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    for name, text in DOT_HELP.items():
        table.add_row(f"[bold].{name}[/bold]", text)
    table.add_row("[bold]<text>[/bold]", "Anything else is sent to the server as-is")
    return table


def handle_dot_command(
    line: str,
    *,
    executor: CommandExecutor,
    orchestrator: SaveSwapOrchestrator | None = None,
) -> str | Table | object | None:
    """Handle a dot-command (line starting with '.').

    Args:
        line: The full input line (e.g., ".load default").
        executor: Command executor for game commands.
        orchestrator: Save-swap orchestrator; save commands report an
            error when it is absent.

    Returns:
        - Rich markup string or Table to display.
        - QUIT to signal the REPL should exit.
    """
    parts = line.strip().split(None, 1)
    cmd = parts[0][1:].lower() if parts else ""
    args = parts[1].strip() if len(parts) > 1 else ""

    match cmd:
        case "quit" | "exit":
            return QUIT
        case "help":
            return help_table()
        case "speed":
            if not args:
                return "[red]Usage:[/red] .speed <multiplier>"
            try:
                command = speed_command(float(args))
            except ValueError as exc:
                return f"[red]Error:[/red] {exc}"
            return format_result(executor.execute(command))
        case name if name in GAME_COMMANDS:
            return format_result(executor.execute(GAME_COMMANDS[name]))

    if orchestrator is None:
        if cmd in ("saves", "load", "upload", "state"):
            return "[red]Error:[/red] Save management is not configured"
        return f"[red]Unknown command:[/red] .{cmd} [dim](try .help)[/dim]"

    match cmd:
        case "saves":
            records = orchestrator.list_saves()
            if not records:
                return f"[dim]No saves in {orchestrator.saves.directory}[/dim]"
            return saves_table(records, current=orchestrator.current_save)
        case "state":
            return format_state(orchestrator.state, orchestrator.current_save)
        case "load":
            if not args:
                return "[red]Usage:[/red] .load <name>"
            try:
                result = orchestrator.load_save(args)
            except RconError as exc:
                return f"[red]Error:[/red] {exc}"
            return f"[green]{result.message}[/green]"
        case "upload":
            words = args.split()
            auto_load = "--load" in words
            paths = [w for w in words if w != "--load"]
            if len(paths) != 1:
                return "[red]Usage:[/red] .upload <path> [--load]"
            try:
                data = Path(paths[0]).expanduser().read_bytes()
            except OSError as exc:
                return f"[red]Error:[/red] Cannot read {paths[0]}: {exc.strerror}"
            try:
                result = orchestrator.upload_save(data, auto_load=auto_load)
            except RconError as exc:
                return f"[red]Error:[/red] {exc}"
            return f"[green]{result.message}[/green]"
        case _:
            return f"[red]Unknown command:[/red] .{cmd} [dim](try .help)[/dim]"
