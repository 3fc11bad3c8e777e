"""Tests for the named game commands and console dot-commands."""

from unittest.mock import MagicMock

import pytest
from rich.table import Table

from factorio_rcon.commands import (
    GAME_COMMANDS,
    QUIT,
    handle_dot_command,
    speed_command,
)
from factorio_rcon.errors import OrchestratorBusyError, SaveNotFoundError
from factorio_rcon.orchestrator import ServerState
from factorio_rcon.protocol import CommandResult


def _executor(details="ok"):
    executor = MagicMock()
    executor.execute.return_value = CommandResult(
        status="success", message="RCON command executed successfully", details=details
    )
    return executor


def _orchestrator():
    orchestrator = MagicMock()
    orchestrator.state = ServerState.RUNNING
    orchestrator.current_save = "default"
    orchestrator.list_saves.return_value = []
    return orchestrator


class TestSpeedCommand:
    @pytest.mark.parametrize("multiplier, expected", [
        (0.1, "/c game.speed = 0.1"),
        (1.0, "/c game.speed = 1"),
        (2.5, "/c game.speed = 2.5"),
        (100, "/c game.speed = 100"),
    ])
    def test_format(self, multiplier, expected):
        assert speed_command(multiplier) == expected

    @pytest.mark.parametrize("multiplier", [0, -1, 100.5])
    def test_out_of_range(self, multiplier):
        with pytest.raises(ValueError):
            speed_command(multiplier)


class TestGameCommands:
    def test_vocabulary(self):
        assert GAME_COMMANDS["time"] == "/time"
        assert GAME_COMMANDS["slow"] == "/c game.speed = 0.1"
        assert GAME_COMMANDS["speed-up"] == "/c game.speed = 1.0"
        assert GAME_COMMANDS["save"] == "/server-save"

    @pytest.mark.parametrize("name", sorted(GAME_COMMANDS))
    def test_dot_command_forwards(self, name):
        executor = _executor()
        handle_dot_command(f".{name}", executor=executor)
        executor.execute.assert_called_once_with(GAME_COMMANDS[name])

    def test_output_shown(self):
        result = handle_dot_command(".time", executor=_executor("0 hours 42 minutes"))
        assert result == "0 hours 42 minutes"

    def test_error_shown(self):
        executor = MagicMock()
        executor.execute.return_value = CommandResult(
            status="error", message="RCON connection failed", details="refused"
        )
        result = handle_dot_command(".save", executor=executor)
        assert result.startswith("[red]Error:[/red] RCON connection failed")
        assert "refused" in result

    def test_case_insensitive(self):
        executor = _executor()
        handle_dot_command(".TIME", executor=executor)
        executor.execute.assert_called_once_with("/time")


class TestDotCommands:
    def test_quit(self):
        assert handle_dot_command(".quit", executor=_executor()) is QUIT
        assert handle_dot_command(".exit", executor=_executor()) is QUIT

    def test_help(self):
        assert isinstance(handle_dot_command(".help", executor=_executor()), Table)

    def test_speed(self):
        executor = _executor()
        handle_dot_command(".speed 2", executor=executor)
        executor.execute.assert_called_once_with("/c game.speed = 2")

    @pytest.mark.parametrize("line", [".speed", ".speed fast", ".speed 0", ".speed 1000"])
    def test_speed_invalid(self, line):
        executor = _executor()
        result = handle_dot_command(line, executor=executor)
        assert result.startswith("[red]")
        executor.execute.assert_not_called()

    def test_unknown(self):
        result = handle_dot_command(".frobnicate", executor=_executor())
        assert "Unknown command" in result
        assert ".frobnicate" in result

    @pytest.mark.parametrize("line", [".saves", ".load default", ".upload a.zip", ".state"])
    def test_save_commands_need_orchestrator(self, line):
        result = handle_dot_command(line, executor=_executor())
        assert "not configured" in result


class TestSaveDotCommands:
    def test_load(self):
        orchestrator = _orchestrator()
        orchestrator.load_save.return_value = CommandResult(
            status="success", message="Save 'megabase' loaded", details="megabase"
        )
        result = handle_dot_command(".load megabase", executor=_executor(), orchestrator=orchestrator)
        orchestrator.load_save.assert_called_once_with("megabase")
        assert result == "[green]Save 'megabase' loaded[/green]"

    def test_load_requires_name(self):
        orchestrator = _orchestrator()
        result = handle_dot_command(".load", executor=_executor(), orchestrator=orchestrator)
        assert "Usage" in result
        orchestrator.load_save.assert_not_called()

    @pytest.mark.parametrize("exc, text", [
        (SaveNotFoundError("nope"), "Save 'nope' not found"),
        (OrchestratorBusyError("busy"), "Save swap already in progress"),
    ])
    def test_load_errors(self, exc, text):
        orchestrator = _orchestrator()
        orchestrator.load_save.side_effect = exc
        result = handle_dot_command(".load nope", executor=_executor(), orchestrator=orchestrator)
        assert result.startswith("[red]Error:[/red]")
        assert text in result

    def test_upload(self, tmp_path):
        save = tmp_path / "new.zip"
        save.write_bytes(b"PK\x03\x04new")
        orchestrator = _orchestrator()
        orchestrator.upload_save.return_value = CommandResult(
            status="success", message="Save uploaded as 'uploaded'", details="7 bytes"
        )
        result = handle_dot_command(f".upload {save}", executor=_executor(), orchestrator=orchestrator)
        orchestrator.upload_save.assert_called_once_with(b"PK\x03\x04new", auto_load=False)
        assert result == "[green]Save uploaded as 'uploaded'[/green]"

    def test_upload_and_load(self, tmp_path):
        save = tmp_path / "new.zip"
        save.write_bytes(b"x")
        orchestrator = _orchestrator()
        orchestrator.upload_save.return_value = CommandResult(
            status="success", message="Save 'uploaded' loaded", details="uploaded"
        )
        handle_dot_command(f".upload --load {save}", executor=_executor(), orchestrator=orchestrator)
        orchestrator.upload_save.assert_called_once_with(b"x", auto_load=True)

    @pytest.mark.parametrize("line", [".upload", ".upload --load", ".upload a.zip b.zip"])
    def test_upload_usage(self, line):
        orchestrator = _orchestrator()
        result = handle_dot_command(line, executor=_executor(), orchestrator=orchestrator)
        assert "Usage" in result
        orchestrator.upload_save.assert_not_called()

    def test_upload_unreadable_file(self, tmp_path):
        orchestrator = _orchestrator()
        missing = tmp_path / "missing.zip"
        result = handle_dot_command(f".upload {missing}", executor=_executor(), orchestrator=orchestrator)
        assert result.startswith("[red]Error:[/red] Cannot read")
        orchestrator.upload_save.assert_not_called()

    def test_saves_empty(self):
        result = handle_dot_command(".saves", executor=_executor(), orchestrator=_orchestrator())
        assert "No saves" in result

    def test_saves_table(self, saves_dir):
        from factorio_rcon.saves import SaveStore

        orchestrator = _orchestrator()
        orchestrator.list_saves.return_value = SaveStore(saves_dir).list_saves()
        result = handle_dot_command(".saves", executor=_executor(), orchestrator=orchestrator)
        assert isinstance(result, Table)
        assert result.row_count == 1

    def test_state(self):
        result = handle_dot_command(".state", executor=_executor(), orchestrator=_orchestrator())
        assert "RUNNING" in result
        assert "default" in result
