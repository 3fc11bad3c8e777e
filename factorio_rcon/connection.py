"""One authenticated TCP connection to a Factorio RCON port.

The protocol has no safe way to correlate overlapping requests, so a
connection carries at most one outstanding packet at a time. ``send()`` and
``authenticate()`` serialize on an internal lock; concurrent callers queue.

Usage::

    conn = RconConnection("localhost", 27015, "secret")
    conn.open()                 # connect() + authenticate()
    print(conn.send("/time"))
    conn.close()
"""

import logging
import socket
import threading

from .assembler import ResponseAssembler
from .errors import (
    RconAuthenticationError,
    RconConnectionError,
    RconError,
    RconTimeoutError,
)
from .protocol import AUTH_FAILED_ID, MAX_REQUEST_ID, Packet, PacketType, encode

logger = logging.getLogger(__name__)

# Timeouts (seconds)
CONNECTION_TIMEOUT = 10.0
RESPONSE_TIMEOUT = 5.0


def verify_auth_response(packet: Packet) -> None:
    """Raise RconAuthenticationError if ``packet`` rejects the login.

    Only the echoed id matters; the body is usually empty on failure and is
    never inspected.
    """
    if packet.id == AUTH_FAILED_ID:
        raise RconAuthenticationError(
            "Authentication rejected - check RCON password and server configuration"
        )


class RconConnection:
    """Owns one socket, its authentication flag and its request-id counter."""

    def __init__(
        self,
        host: str,
        port: int,
        password: str,
        *,
        connect_timeout: float = CONNECTION_TIMEOUT,
        response_timeout: float = RESPONSE_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.password = password
        self.connect_timeout = connect_timeout
        self.response_timeout = response_timeout
        self._sock: socket.socket | None = None
        self._authenticated = False
        self._request_id = 1
        # One packet in flight per connection.
        self._io_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "RconConnection":
        """Build a connection from an ``RconSettings`` instance."""
        return cls(
            settings.host,
            settings.port,
            settings.password,
            connect_timeout=settings.connect_timeout,
            response_timeout=settings.response_timeout,
        )

    # --- State ---

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    @property
    def is_authenticated(self) -> bool:
        return self._sock is not None and self._authenticated

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    # --- Lifecycle ---

    def connect(self) -> None:
        """Open the TCP socket.

        A no-op while already connected and authenticated. A half-open
        (connected but unauthenticated) socket is replaced.

        Raises:
            RconTimeoutError: ("connection") if the connect does not finish
                within ``connect_timeout``.
            RconConnectionError: If the OS-level connect fails.
        """
        if self.is_authenticated:
            return
        self.close()

        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
        except (socket.timeout, TimeoutError) as exc:
            raise RconTimeoutError("connection") from exc
        except OSError as exc:
            raise RconConnectionError(f"Cannot connect to {self.address}: {exc}") from exc

        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.response_timeout)
        self._sock = sock
        logger.info("Connected to RCON server at %s", self.address)

    def authenticate(self) -> None:
        """Send the password and wait for the AUTH_RESPONSE.

        Raises:
            RconAuthenticationError: If the server echoes id -1.
            RconTimeoutError: ("response") if no reply arrives in time.
            RconConnectionError: If not connected or the socket fails.
        """
        packet = self._exchange(PacketType.AUTH, self.password)
        try:
            verify_auth_response(packet)
        except RconAuthenticationError:
            self.close()
            raise
        self._authenticated = True
        logger.debug("Authenticated with %s (id %d)", self.address, packet.id)

    def open(self) -> None:
        """Connect and authenticate in one step."""
        self.connect()
        if not self._authenticated:
            self.authenticate()

    def send(self, command: str) -> str:
        """Execute ``command`` and return the response body.

        Raises:
            RconConnectionError: If called before authentication, or the
                socket fails mid-request.
            RconTimeoutError: ("response") if no reply arrives in time. The
                connection is closed since the stream is no longer in sync.
        """
        if not self.is_authenticated:
            raise RconConnectionError("Not authenticated")
        packet = self._exchange(PacketType.EXEC_COMMAND, command)
        return packet.body

    def close(self) -> None:
        """Release the socket. Safe to call repeatedly; never raises."""
        sock, self._sock = self._sock, None
        self._authenticated = False
        if sock is None:
            return
        try:
            sock.close()
        except OSError as exc:
            logger.warning("Error closing socket: %s", exc)
        else:
            logger.debug("Closed RCON connection to %s", self.address)

    def __enter__(self) -> "RconConnection":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --- Internal I/O ---

    def _next_request_id(self) -> int:
        """Return the next request id, wrapping to 1 after MAX_REQUEST_ID.

        Ids are never negative; -1 is reserved for failed authentication.
        """
        request_id = self._request_id
        self._request_id += 1
        if self._request_id > MAX_REQUEST_ID:
            self._request_id = 1
        return request_id

    def _exchange(self, packet_type: PacketType, body: str) -> Packet:
        """Send one packet and wait for exactly one response packet.

        Any failure closes the connection.
        """
        with self._io_lock:
            if self._sock is None:
                raise RconConnectionError("Not connected")

            request_id = self._next_request_id()
            frame = encode(request_id, packet_type, body)
            assembler = ResponseAssembler(self._sock, self.response_timeout)
            logger.debug("-> id=%d type=%d size=%d", request_id, packet_type, len(frame))

            try:
                self._sock.sendall(frame)
                packet = assembler.wait()
            except (socket.timeout, TimeoutError) as exc:
                self.close()
                raise RconTimeoutError("response") from exc
            except RconError:
                self.close()
                raise
            except OSError as exc:
                self.close()
                raise RconConnectionError(f"Send failed: {exc}") from exc

            logger.debug("<- id=%d type=%d body=%d chars", packet.id, packet.type, len(packet.body))
            return packet
