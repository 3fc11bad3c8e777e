"""Public command API: keep one live connection and normalise results.

``CommandExecutor.execute()`` never raises. Every outcome, including
connection failures, comes back as a CommandResult so callers (console,
MCP tools) only have to render it.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .connection import RconConnection
from .errors import RconError
from .protocol import CommandResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds, multiplied by the attempt number


def retry_delay(attempt: int, base: float = DEFAULT_RETRY_DELAY) -> float:
    """Delay before the attempt following ``attempt`` (linear backoff)."""
    return attempt * base


class CommandExecutor:
    """Serializes commands over one lazily created RconConnection.

    Args:
        connection_factory: Returns a fresh, unopened RconConnection. A new
            one is built for every (re)connect; connections are replaced,
            never reused after failure.
        max_retries: Connection attempts before giving up (at least one
            attempt is always made).
        retry_delay: Base delay; attempt N waits ``N * retry_delay``.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        connection_factory: Callable[[], RconConnection],
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._factory = connection_factory
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._connection: RconConnection | None = None
        # Held for the whole of execute(); the orchestrator holds it across
        # a save swap so commands wait for the restart.
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "CommandExecutor":
        """Build an executor from an ``RconSettings`` instance."""
        return cls(
            lambda: RconConnection.from_settings(settings),
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            **kwargs,
        )

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.is_authenticated

    @contextmanager
    def hold(self) -> Iterator["CommandExecutor"]:
        """Block other commands for the duration of the ``with`` body."""
        with self._lock:
            yield self

    # --- Commands ---

    def execute(self, command: str) -> CommandResult:
        """Run ``command`` and return a normalised result.

        Connection setup is retried; the send itself is not, so a
        state-changing command is never executed twice.
        """
        logger.info("Executing RCON command: %s", command)
        with self._lock:
            try:
                connection = self.ensure_connected()
                body = connection.send(command)
            except RconError as exc:
                logger.error("RCON execution failed: %s", exc)
                self._drop_if_closed()
                return CommandResult(status="error", message=exc.message, details=exc.details)
            except Exception as exc:
                logger.exception("Unexpected error executing %r", command)
                self._drop_if_closed()
                return CommandResult(status="error", message="RCON execution error", details=str(exc))

        logger.info("RCON command successful: %s", body)
        return CommandResult(
            status="success",
            message="RCON command executed successfully",
            details=body or "Command completed",
        )

    # --- Connection management ---

    def ensure_connected(self) -> RconConnection:
        """Return an authenticated connection, reconnecting if needed.

        Raises:
            RconError: The last connection error once all attempts fail.
        """
        with self._lock:
            if self._connection is not None and self._connection.is_authenticated:
                return self._connection

            self._drop()
            attempts = max(1, self.max_retries)
            attempt = 1
            while True:
                connection = self._factory()
                try:
                    connection.open()
                except RconError as exc:
                    connection.close()
                    if attempt >= attempts:
                        logger.error("Giving up after %d connection attempts", attempt)
                        raise
                    delay = retry_delay(attempt, self.retry_delay)
                    logger.warning(
                        "Connection attempt %d failed (%s), retrying in %.1fs",
                        attempt, exc, delay,
                    )
                    self._sleep(delay)
                    attempt += 1
                    continue

                self._connection = connection
                return connection

    def reconnect(self) -> RconConnection:
        """Replace the live connection with a fresh one."""
        with self._lock:
            self._drop()
            return self.ensure_connected()

    def probe(self) -> bool:
        """Readiness probe: throwaway connect, authenticate, disconnect.

        Leaves the live connection untouched.
        """
        connection = self._factory()
        try:
            connection.open()
        except RconError as exc:
            logger.debug("Readiness probe failed: %s", exc)
            return False
        finally:
            connection.close()
        return True

    def close(self) -> None:
        """Tear down the live connection. Never raises."""
        with self._lock:
            self._drop()

    def _drop(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()

    def _drop_if_closed(self) -> None:
        if self._connection is not None and not self._connection.is_authenticated:
            self._connection = None
