"""Tests for the MCP tool functions against the in-process server."""

import asyncio
import json

import pytest

from factorio_rcon import mcp_server
from factorio_rcon.orchestrator import SaveSwapOrchestrator
from factorio_rcon.saves import SaveStore


@pytest.fixture
def runtime(monkeypatch, executor, fake_process, saves_dir, sleeps):
    orchestrator = SaveSwapOrchestrator(
        executor, fake_process, SaveStore(saves_dir), sleep=sleeps.append
    )
    orchestrator.current_save = "default"
    monkeypatch.setattr(mcp_server, "_runtime", (executor, orchestrator))
    return executor, orchestrator


def call(tool, *args):
    return json.loads(asyncio.run(tool(*args)))


class TestGameTools:
    def test_game_status(self, runtime, rcon_server):
        rcon_server.responses["/time"] = "0 hours 42 minutes 7 seconds"
        data = call(mcp_server.game_status)
        assert data == {
            "status": "success",
            "message": "RCON command executed successfully",
            "details": "0 hours 42 minutes 7 seconds",
        }

    @pytest.mark.parametrize("tool, command", [
        (mcp_server.game_slow, "/c game.speed = 0.1"),
        (mcp_server.game_speed_up, "/c game.speed = 1.0"),
        (mcp_server.game_save, "/server-save"),
        (mcp_server.game_pause, "/c game.tick_paused = true"),
        (mcp_server.game_unpause, "/c game.tick_paused = false"),
        (mcp_server.list_players, "/players online"),
    ])
    def test_named_commands(self, runtime, rcon_server, tool, command):
        assert call(tool)["status"] == "success"
        assert rcon_server.commands == [command]

    def test_set_speed(self, runtime, rcon_server):
        call(mcp_server.game_set_speed, 2.5)
        assert rcon_server.commands == ["/c game.speed = 2.5"]

    def test_run_command(self, runtime, rcon_server):
        data = call(mcp_server.run_command, "/evolution")
        assert data["details"] == "/evolution"

    def test_connection_error_is_result(self, monkeypatch, closed_port):
        from factorio_rcon.connection import RconConnection
        from factorio_rcon.executor import CommandExecutor

        executor = CommandExecutor(
            lambda: RconConnection("127.0.0.1", closed_port, "x", connect_timeout=1.0),
            max_retries=1,
        )
        monkeypatch.setattr(mcp_server, "_runtime", (executor, None))
        data = call(mcp_server.game_status)
        assert data["status"] == "error"
        assert data["message"] == "RCON connection failed"


class TestSaveTools:
    def test_list_saves(self, runtime):
        data = call(mcp_server.list_saves)
        assert data["status"] == "success"
        assert [s["name"] for s in data["saves"]] == ["default"]

    def test_load_save(self, runtime, fake_process):
        data = call(mcp_server.load_save, "default")
        assert data["status"] == "success"
        assert data["details"] == "default"
        assert fake_process.calls == [("stop",), ("start", "default")]

    def test_load_missing_save(self, runtime, fake_process):
        data = call(mcp_server.load_save, "missing")
        assert data["status"] == "error"
        assert data["message"] == "Save 'missing' not found"
        assert fake_process.calls == []

    def test_upload_save(self, runtime, fake_process, saves_dir, tmp_path):
        save = tmp_path / "new.zip"
        save.write_bytes(b"PK\x03\x04new")
        data = call(mcp_server.upload_save, str(save))
        assert data == {
            "status": "success",
            "message": "Save uploaded as 'uploaded'",
            "details": "7 bytes",
        }
        assert (saves_dir / "uploaded.zip").read_bytes() == b"PK\x03\x04new"
        assert fake_process.calls == []

    def test_upload_and_load(self, runtime, fake_process, tmp_path):
        save = tmp_path / "new.zip"
        save.write_bytes(b"PK\x03\x04new")
        data = call(mcp_server.upload_save, str(save), True)
        assert data["message"] == "Save 'uploaded' loaded"
        assert fake_process.calls == [("stop",), ("start", "uploaded")]

    def test_upload_unreadable_file(self, runtime, tmp_path):
        data = call(mcp_server.upload_save, str(tmp_path / "missing.zip"))
        assert data["status"] == "error"
        assert data["message"] == "Cannot read save file"

    def test_server_state(self, runtime):
        data = call(mcp_server.server_state)
        assert data["message"] == "Server is RUNNING"
        assert data["details"] == "default"


class TestRuntime:
    def test_config_error_reported(self, monkeypatch):
        monkeypatch.setattr(mcp_server, "_runtime", None)
        monkeypatch.delenv("FACTORIO_RCON_PASSWORD", raising=False)
        data = call(mcp_server.game_status)
        assert data["status"] == "error"
        assert data["message"] == "Invalid configuration"
        assert mcp_server._runtime is None

    def test_built_from_environment(self, monkeypatch, rcon_server, tmp_path):
        monkeypatch.setattr(mcp_server, "_runtime", None)
        monkeypatch.setenv("FACTORIO_RCON_HOST", "127.0.0.1")
        monkeypatch.setenv("FACTORIO_RCON_PORT", str(rcon_server.port))
        monkeypatch.setenv("FACTORIO_RCON_PASSWORD", "secret")
        monkeypatch.setenv("FACTORIO_SAVES_DIR", str(tmp_path))
        executor, orchestrator = mcp_server._get_runtime()
        try:
            assert mcp_server._get_runtime()[0] is executor
            assert call(mcp_server.game_status)["status"] == "success"
            assert orchestrator.saves.directory == tmp_path
        finally:
            executor.close()
