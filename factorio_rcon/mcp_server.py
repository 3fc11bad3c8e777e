"""FastMCP server exposing Factorio server controls as tools.

Each tool is a thin translation layer: it picks a console command (or a
save operation), runs it through the shared CommandExecutor or
SaveSwapOrchestrator, and returns the CommandResult as JSON text. Errors
are returned as ``{"status": "error", ...}`` results, never raised.

Blocking socket and process work is offloaded with ``asyncio.to_thread()``
so it doesn't block the event loop.

Run with::

    factorio-rcon-mcp              # via pyproject.toml entry point
    python -m factorio_rcon.mcp_server
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Annotated

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from . import commands
from .config import Settings
from .errors import RconError
from .executor import CommandExecutor
from .orchestrator import SaveSwapOrchestrator
from .protocol import CommandResult

logger = logging.getLogger(__name__)

mcp = FastMCP("FactorioRCON")

# ---------------------------------------------------------------------------
# Shared runtime, built lazily on first tool call
# ---------------------------------------------------------------------------

_runtime: tuple[CommandExecutor, SaveSwapOrchestrator] | None = None
_runtime_lock = threading.Lock()


def _get_runtime() -> tuple[CommandExecutor, SaveSwapOrchestrator]:
    """Build the executor and orchestrator from the environment once."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            settings = Settings.from_env()
            executor = CommandExecutor.from_settings(settings.rcon)
            _runtime = (executor, SaveSwapOrchestrator.from_settings(settings, executor))
        return _runtime


def _render(result: CommandResult) -> str:
    return json.dumps(result.to_dict())


def _error(exc: RconError) -> str:
    return _render(CommandResult(status="error", message=exc.message, details=exc.details))


async def _execute(command: str) -> str:
    try:
        executor, _ = await asyncio.to_thread(_get_runtime)
    except RconError as exc:
        return _error(exc)
    result = await asyncio.to_thread(executor.execute, command)
    return _render(result)


# ---------------------------------------------------------------------------
# Tools: Game
# ---------------------------------------------------------------------------


@mcp.tool()
async def game_status() -> str:
    """Check that the game server responds; returns the in-game time."""
    return await _execute(commands.TIME)


@mcp.tool()
async def game_slow() -> str:
    """Slow the game down to 0.1x speed."""
    return await _execute(commands.SLOW)


@mcp.tool()
async def game_speed_up() -> str:
    """Restore normal game speed (1.0x)."""
    return await _execute(commands.SPEED_UP)


@mcp.tool()
async def game_set_speed(
    multiplier: Annotated[float, Field(
        gt=0, le=commands.MAX_SPEED,
        description="Game speed multiplier; 1.0 is normal speed.",
    )],
) -> str:
    """Set the game speed multiplier."""
    return await _execute(commands.speed_command(multiplier))


@mcp.tool()
async def game_save() -> str:
    """Trigger a save of the running game."""
    return await _execute(commands.SAVE)


@mcp.tool()
async def game_pause() -> str:
    """Pause the game."""
    return await _execute(commands.PAUSE)


@mcp.tool()
async def game_unpause() -> str:
    """Resume the game after a pause."""
    return await _execute(commands.UNPAUSE)


@mcp.tool()
async def list_players() -> str:
    """List players currently online."""
    return await _execute(commands.PLAYERS)


@mcp.tool()
async def run_command(
    command: Annotated[str, Field(
        min_length=1,
        description="Console command sent verbatim, e.g. '/evolution'.",
    )],
) -> str:
    """Send an arbitrary console command to the server."""
    return await _execute(command)


# ---------------------------------------------------------------------------
# Tools: Saves and process
# ---------------------------------------------------------------------------


@mcp.tool()
async def list_saves() -> str:
    """List save files, newest first."""
    try:
        _, orchestrator = await asyncio.to_thread(_get_runtime)
        records = await asyncio.to_thread(orchestrator.list_saves)
    except RconError as exc:
        return _error(exc)
    return json.dumps({
        "status": "success",
        "message": f"{len(records)} save(s)",
        "saves": [r.to_dict() for r in records],
    })


@mcp.tool()
async def load_save(
    name: Annotated[str, Field(
        min_length=1,
        description="Save name, with or without the .zip suffix.",
    )],
) -> str:
    """Restart the server on another save.

    Stops the server, starts it on the chosen save and waits (up to about a
    minute) for RCON to come back.
    """
    try:
        _, orchestrator = await asyncio.to_thread(_get_runtime)
        result = await asyncio.to_thread(orchestrator.load_save, name)
    except RconError as exc:
        return _error(exc)
    return _render(result)


@mcp.tool()
async def upload_save(
    path: Annotated[str, Field(
        min_length=1,
        description="Path of a save .zip readable by this server.",
    )],
    auto_load: Annotated[bool, Field(
        description="Restart the server on the uploaded save afterwards.",
    )] = False,
) -> str:
    """Copy a save file into the saves directory as 'uploaded'.

    Replaces any earlier upload. With auto_load the server is restarted on
    it, as load_save does.
    """
    try:
        data = await asyncio.to_thread(Path(path).expanduser().read_bytes)
    except OSError as exc:
        return _render(CommandResult(
            status="error", message="Cannot read save file", details=f"{path}: {exc.strerror}"
        ))
    try:
        _, orchestrator = await asyncio.to_thread(_get_runtime)
        result = await asyncio.to_thread(orchestrator.upload_save, data, auto_load=auto_load)
    except RconError as exc:
        return _error(exc)
    return _render(result)


@mcp.tool()
async def server_state() -> str:
    """Report the server process state and the current save."""
    try:
        _, orchestrator = await asyncio.to_thread(_get_runtime)
    except RconError as exc:
        return _error(exc)
    return json.dumps({
        "status": "success",
        "message": f"Server is {orchestrator.state.value}",
        "details": orchestrator.current_save,
    })


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Entry point for the ``factorio-rcon-mcp`` command.

    Logging goes to stderr; stdout carries the JSON-RPC transport.
    """
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
