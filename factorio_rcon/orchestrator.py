"""Save swap: stop the server, restart it on another save, reconnect.

RCON cannot switch worlds on a live server, so loading a save is a full
process cycle:

    RUNNING -> STOPPING -> STOPPED -> STARTING -> READY -> RUNNING

Only one swap runs at a time; a second request while one is in progress
is rejected. Commands issued through the executor during a swap wait
until it finishes.
"""

import logging
import os
import threading
import time
from collections.abc import Callable
from enum import Enum

from .errors import OrchestratorBusyError, ProcessError, RconError
from .executor import CommandExecutor
from .process import FactorioProcess, ServerProcess
from .protocol import CommandResult
from .saves import UPLOAD_SAVE_NAME, SaveRecord, SaveStore

logger = logging.getLogger(__name__)

# Seconds to let the old process release its lock file.
SETTLE_INTERVAL = 5.0
# Readiness polling: 30 * 2s = 60 seconds total
READY_INTERVAL = 2.0
READY_ATTEMPTS = 30


class ServerState(str, Enum):
    STOPPED = "STOPPED"
    STOPPING = "STOPPING"
    STARTING = "STARTING"
    READY = "READY"
    RUNNING = "RUNNING"


class SaveSwapOrchestrator:
    """Sequences process restarts around the shared CommandExecutor.

    Args:
        executor: The live command executor; its connection is closed
            before the stop and replaced after the restart.
        process: Process supervision capability.
        saves: Save directory used to validate names.
        lock_path: Lock file the server leaves behind if it dies uncleanly.
        on_transition: Called with ``(old, new)`` on every state change.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        process: ServerProcess,
        saves: SaveStore,
        *,
        settle_interval: float = SETTLE_INTERVAL,
        ready_interval: float = READY_INTERVAL,
        ready_attempts: int = READY_ATTEMPTS,
        lock_path: str | None = None,
        initial_state: ServerState = ServerState.RUNNING,
        on_transition: Callable[[ServerState, ServerState], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.executor = executor
        self.process = process
        self.saves = saves
        self.settle_interval = settle_interval
        self.ready_interval = ready_interval
        self.ready_attempts = ready_attempts
        self.lock_path = lock_path
        self.on_transition = on_transition
        self._sleep = sleep
        self._state = initial_state
        self._swap_lock = threading.Lock()
        self.current_save: str | None = None

    @classmethod
    def from_settings(
        cls,
        settings,
        executor: CommandExecutor,
        process: ServerProcess | None = None,
        **kwargs,
    ) -> "SaveSwapOrchestrator":
        server = settings.server
        orchestrator = cls(
            executor,
            process or FactorioProcess(settings),
            SaveStore(server.saves_dir),
            settle_interval=server.settle_interval,
            ready_interval=server.ready_interval,
            ready_attempts=server.ready_attempts,
            lock_path=server.lock_path,
            **kwargs,
        )
        orchestrator.current_save = server.save_name
        return orchestrator

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._swap_lock.locked()

    def list_saves(self) -> list[SaveRecord]:
        return self.saves.list_saves()

    # --- Entry points ---

    def load_save(self, name: str) -> CommandResult:
        """Restart the server on save ``name``.

        Raises:
            SaveNotFoundError: If the save does not exist; nothing is stopped.
            OrchestratorBusyError: If another swap is in progress.
            ProcessError: If the old server is still listening after the
                stop, the new one exits or never becomes ready. A
                best-effort reconnect is attempted first.
        """
        if not self._swap_lock.acquire(blocking=False):
            raise OrchestratorBusyError(f"Cannot load '{name}' while another save is loading")
        try:
            record = self.saves.get(name)
            logger.info("Loading save %s", record.name)

            with self.executor.hold():
                try:
                    self._stop()
                    self._start(record.name)
                    self._wait_ready()
                    self._reconnect()
                except ProcessError:
                    self._recover()
                    raise

            self.current_save = record.name
            return CommandResult(
                status="success",
                message=f"Save '{record.name}' loaded",
                details=record.name,
            )
        finally:
            self._swap_lock.release()

    def upload_save(self, data: bytes, *, auto_load: bool = False) -> CommandResult:
        """Store ``data`` under the canonical upload name, optionally loading it."""
        record = self.saves.store_upload(data, UPLOAD_SAVE_NAME)
        if auto_load:
            return self.load_save(record.name)
        return CommandResult(
            status="success",
            message=f"Save uploaded as '{record.name}'",
            details=f"{record.size_bytes} bytes",
        )

    # --- Steps ---

    def _transition(self, new: ServerState) -> None:
        old, self._state = self._state, new
        logger.info("Server state %s -> %s", old.value, new.value)
        if self.on_transition is not None:
            self.on_transition(old, new)

    def _stop(self) -> None:
        self._transition(ServerState.STOPPING)
        self.executor.close()
        try:
            self.process.stop()
        except OSError as exc:
            logger.warning("Stopping server failed, continuing: %s", exc)

        self._sleep(self.settle_interval)
        if self.process.is_listening():
            raise ProcessError(
                "Server is still running",
                "RCON port still accepts connections after stop; not starting a second server",
            )
        self._remove_stale_lock()
        self._transition(ServerState.STOPPED)

    def _start(self, save_name: str) -> None:
        self._transition(ServerState.STARTING)
        self.process.start(save_name)

    def _wait_ready(self) -> None:
        for attempt in range(1, self.ready_attempts + 1):
            if not self.process.is_running():
                raise ProcessError(
                    "Server exited during startup",
                    f"Process gone after {attempt - 1} readiness check(s)",
                )
            if self.process.is_listening() and self.executor.probe():
                logger.info("RCON ready after %d attempt(s)", attempt)
                self._transition(ServerState.READY)
                return
            logger.debug("RCON not ready (attempt %d/%d)", attempt, self.ready_attempts)
            if attempt < self.ready_attempts:
                self._sleep(self.ready_interval)

        raise ProcessError(
            "Server did not become ready",
            f"No RCON response after {self.ready_attempts} attempts "
            f"({self.ready_attempts * self.ready_interval:.0f}s)",
        )

    def _reconnect(self) -> None:
        try:
            self.executor.reconnect()
        except RconError as exc:
            raise ProcessError("Server ready but reconnect failed", str(exc)) from exc
        self._transition(ServerState.RUNNING)

    def _recover(self) -> None:
        """Best-effort reconnect to whatever is listening after a failed swap."""
        try:
            self.executor.reconnect()
        except RconError as exc:
            logger.error("Save swap failed and no server is reachable: %s", exc)
            if self._state is not ServerState.STOPPED:
                self._transition(ServerState.STOPPED)
            return
        logger.warning("Save swap failed; reconnected to the running server")
        self._transition(ServerState.RUNNING)

    def _remove_stale_lock(self) -> None:
        if not self.lock_path:
            return
        try:
            os.unlink(self.lock_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Could not remove lock file %s: %s", self.lock_path, exc)
            return
        logger.info("Removed stale lock file %s", self.lock_path)
