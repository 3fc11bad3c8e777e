"""Click CLI entry point for factorio-rcon.

Loads settings, runs a single command when one is given on the command
line, and otherwise hands off to the interactive console.
"""

import logging
import sys

import click
from rich.console import Console

from . import __version__
from .config import Settings
from .display import format_result
from .errors import ConfigError
from .executor import CommandExecutor
from .orchestrator import SaveSwapOrchestrator

console = Console()


@click.command()
@click.option("--host", default=None, help="RCON host (default: $FACTORIO_RCON_HOST or localhost).")
@click.option("--port", type=int, default=None, help="RCON port (default: $FACTORIO_RCON_PORT or 27015).")
@click.option("--password", default=None, help="RCON password (default: $FACTORIO_RCON_PASSWORD).")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log protocol traffic to stderr.")
@click.argument("command", nargs=-1)
@click.version_option(version=__version__, prog_name="factorio-rcon")
def cli(
    host: str | None,
    port: int | None,
    password: str | None,
    verbose: bool,
    command: tuple[str, ...],
) -> None:
    """RCON console for a Factorio dedicated server.

    With COMMAND, sends it once and prints the response; otherwise opens an
    interactive console. Type .help inside the console for save management
    and shortcuts.
    """
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        settings = Settings.from_env(host=host, port=port, password=password)
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc.message}")
        console.print(f"[dim]{exc.details}[/dim]", highlight=False)
        sys.exit(2)

    executor = CommandExecutor.from_settings(settings.rcon)

    if command:
        try:
            result = executor.execute(" ".join(command))
        finally:
            executor.close()
        console.print(format_result(result), highlight=False)
        sys.exit(0 if result.ok else 1)

    orchestrator = SaveSwapOrchestrator.from_settings(settings, executor)
    _print_banner(settings)

    from .repl import run_repl

    run_repl(executor, orchestrator)


def _print_banner(settings: Settings) -> None:
    """Print the welcome banner with connection info."""
    console.print()
    console.print("[bold]factorio-rcon[/bold]: Factorio RCON console", highlight=False)
    console.print(f"[dim]v{__version__} · {settings.rcon.host}:{settings.rcon.port}[/dim]")
    console.print("[dim]Type .help for commands, .quit to exit[/dim]")
    console.print()


if __name__ == "__main__":
    cli()
