"""Find, launch, stop and check on the Factorio server process.

The orchestrator only needs four capabilities (``ServerProcess``): start
with a save, stop, "is the server process alive" and "is the RCON port
accepting connections". ``FactorioProcess`` implements them with
``subprocess``, signals and psutil.

A server this instance did not launch (e.g. the one started by the
container start script) is found through ``pid_file`` when configured,
otherwise by matching ``--rcon-port <port>`` on process command lines.
"""

import logging
import os
import shutil
import signal
import socket
import subprocess
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import psutil

from .errors import ProcessError

logger = logging.getLogger(__name__)

# Plain TCP connect used by is_listening().
_LISTEN_TIMEOUT = 1.0

# How often stop() checks whether the process has exited.
_STOP_POLL_INTERVAL = 0.2

# Polls after SIGKILL before giving up on the process exiting (5 seconds).
_KILL_POLLS = 25


class ServerProcess(Protocol):
    """Process-supervision capability consumed by the orchestrator."""

    def start(self, save_name: str) -> None: ...

    def stop(self) -> None: ...

    def is_running(self) -> bool: ...

    def is_listening(self) -> bool: ...


def find_server_executable(preferred: str | None = None) -> str | None:
    """Search for the Factorio server executable.

    Checks (in order):
    1. The configured path
    2. PATH via shutil.which()
    3. Common installation directories

    Returns:
        Absolute path to the executable, or None if not found.
    """
    if preferred:
        if os.path.isfile(preferred) and os.access(preferred, os.X_OK):
            return preferred
        found = shutil.which(preferred)
        if found:
            return found
        return None

    found = shutil.which("factorio")
    if found:
        return found

    common = [
        "/opt/factorio/bin/x64/factorio",
        "/factorio/bin/x64/factorio",
        os.path.expanduser("~/factorio/bin/x64/factorio"),
    ]
    for candidate in common:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    return None


class FactorioProcess:
    """Launches Factorio detached and stops it with SIGTERM/SIGKILL.

    Args:
        settings: A ``Settings`` instance (RCON port/password and server
            paths are both needed to build the command line).
        popen: Injected for tests.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        settings,
        *,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rcon = settings.rcon
        self.server = settings.server
        self._popen = popen
        self._sleep = sleep
        self._proc: subprocess.Popen | None = None

    @property
    def pid(self) -> int | None:
        if self._proc is not None:
            return self._proc.pid
        return _read_pid(self.server.pid_file)

    def build_args(self, executable: str, save_name: str) -> list[str]:
        server = self.server
        args = [
            executable,
            "--port", str(server.game_port),
            "--server-settings", server.settings_path,
            "--rcon-port", str(self.rcon.port),
            "--rcon-password", self.rcon.password,
        ]
        if server.server_id_path:
            args.extend(["--server-id", server.server_id_path])
        args.extend([
            "--mod-directory", server.mods_path,
            "--start-server", save_name,
        ])
        return args

    def start(self, save_name: str) -> None:
        """Launch the server on ``save_name``, detached from this process.

        Raises:
            ProcessError: If the executable is missing or cannot be run.
        """
        exe = find_server_executable(self.server.executable)
        if exe is None:
            raise ProcessError(
                "Factorio executable not found",
                "Set FACTORIO_BIN or put 'factorio' on PATH",
            )

        args = self.build_args(exe, save_name)
        logger.debug("Launching Factorio: %s", " ".join(_redact(args)))

        try:
            self._proc = self._popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise ProcessError("Failed to launch Factorio", str(exc)) from exc

        logger.info("Factorio started with save %s (pid %d)", save_name, self._proc.pid)
        if self.server.pid_file:
            try:
                Path(self.server.pid_file).write_text(f"{self._proc.pid}\n")
            except OSError as exc:
                logger.warning("Could not write pid file %s: %s", self.server.pid_file, exc)

    def stop(self) -> None:
        """Terminate the server if one is running; absence is not an error.

        Stops, in order of preference: the child this instance launched,
        the pid in ``pid_file``, or any process serving this RCON port.
        """
        if self._proc is not None:
            self._stop_child(self._proc)
            self._proc = None
        else:
            pids = self._external_pids()
            if not pids:
                logger.info("No Factorio process to stop")
            for pid in pids:
                self._stop_pid(pid)

        if self.server.pid_file:
            try:
                os.unlink(self.server.pid_file)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Could not remove pid file: %s", exc)

    def is_running(self) -> bool:
        """True while a Factorio process for this RCON port is alive."""
        if self._proc is not None:
            return self._proc.poll() is None
        return bool(self._external_pids())

    def is_listening(self) -> bool:
        """True if something accepts TCP connections on the RCON port."""
        try:
            with socket.create_connection(
                (self.rcon.host, self.rcon.port), timeout=_LISTEN_TIMEOUT
            ):
                return True
        except OSError:
            return False

    # --- Internal ---

    def _external_pids(self) -> list[int]:
        pid = _read_pid(self.server.pid_file)
        if pid is not None and _pid_alive(pid):
            return [pid]
        return find_server_pids(self.rcon.port)

    def _stop_child(self, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            logger.info("Factorio (pid %d) already exited with %s", proc.pid, proc.returncode)
            return
        logger.info("Stopping Factorio (pid %d)", proc.pid)
        proc.terminate()
        try:
            proc.wait(timeout=self.server.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Factorio did not exit within %.0fs, killing", self.server.stop_timeout)
            proc.kill()
            proc.wait()

    def _stop_pid(self, pid: int) -> None:
        logger.info("Stopping Factorio (pid %d)", pid)
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            return

        deadline = time.monotonic() + self.server.stop_timeout
        while _pid_alive(pid):
            if time.monotonic() >= deadline:
                self._kill_pid(pid)
                return
            self._sleep(_STOP_POLL_INTERVAL)

    def _kill_pid(self, pid: int) -> None:
        logger.warning("Factorio did not exit within %.0fs, killing", self.server.stop_timeout)
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        for _ in range(_KILL_POLLS):
            if not _pid_alive(pid):
                return
            self._sleep(_STOP_POLL_INTERVAL)
        logger.error("Factorio (pid %d) still alive after SIGKILL", pid)


def find_server_pids(rcon_port: int) -> list[int]:
    """PIDs of Factorio servers started with ``--rcon-port <rcon_port>``."""
    pids = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        cmdline = proc.info.get("cmdline") or []
        if proc.info["pid"] == os.getpid() or "--start-server" not in cmdline:
            continue
        if _arg_value(cmdline, "--rcon-port") == str(rcon_port):
            pids.append(proc.info["pid"])
    return pids


# --- Helpers ---


def _pid_alive(pid: int) -> bool:
    """Check if a process with the given PID is still running.

    Uses signal 0 (no actual signal sent) to check process existence.
    """
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but we can't signal it
        return True


def _read_pid(pid_file: str | None) -> int | None:
    if not pid_file:
        return None
    try:
        return int(Path(pid_file).read_text().strip() or "0") or None
    except (OSError, ValueError):
        return None


def _redact(args: list[str]) -> list[str]:
    """Hide the RCON password in logged command lines."""
    out = list(args)
    for i, arg in enumerate(out[:-1]):
        if arg == "--rcon-password":
            out[i + 1] = "***"
    return out


def _arg_value(args: list[str], flag: str) -> str | None:
    try:
        return args[args.index(flag) + 1]
    except (ValueError, IndexError):
        return None
