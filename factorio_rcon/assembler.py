"""Reassemble one RCON response packet from a streaming socket.

TCP delivers bytes in arbitrary chunks: a single packet may arrive split
across many ``recv()`` calls, or coalesced with trailing data. The
ResponseAssembler buffers chunks until the size field says the frame is
complete, decodes it, and ignores anything after it.

One assembler serves exactly one outstanding request.
"""

import logging
import selectors
import socket
import time

from .errors import RconConnectionError, RconParseError, RconTimeoutError
from .protocol import SIZE_FIELD, SIZE_OVERHEAD, Packet, declared_size, decode

logger = logging.getLogger(__name__)

# Maximum bytes to read in one recv() call.
MAX_RECV = 4096


class ResponseAssembler:
    """Single-shot packet assembler bound to one socket and one deadline.

    Usage::

        assembler = ResponseAssembler(sock, timeout=5.0)
        sock.sendall(frame)
        packet = assembler.wait()

    ``feed()`` can also be driven directly with byte chunks, which is what
    ``wait()`` does with whatever the socket delivers.
    """

    def __init__(self, sock: socket.socket | None, timeout: float) -> None:
        self._sock = sock
        self._timeout = timeout
        self._buffer = bytearray()
        self._expected = 0
        self._packet: Packet | None = None
        self.listening = False

    @property
    def complete(self) -> bool:
        """True once a full packet has been decoded."""
        return self._packet is not None

    @property
    def packet(self) -> Packet | None:
        return self._packet

    def feed(self, data: bytes) -> Packet | None:
        """Add a chunk of bytes; return the packet once it is complete.

        Data arriving after completion is discarded.

        Raises:
            RconParseError: If the size field is impossible or the frame
                cannot be decoded.
        """
        if self._packet is not None:
            return self._packet

        self._buffer += data

        if not self._expected and len(self._buffer) >= SIZE_FIELD:
            size = declared_size(self._buffer)
            if size < SIZE_OVERHEAD:
                raise RconParseError(f"Invalid declared size {size}")
            self._expected = size + SIZE_FIELD

        if self._expected and len(self._buffer) >= self._expected:
            self._packet = decode(bytes(self._buffer[: self._expected]), self._expected)
            extra = len(self._buffer) - self._expected
            if extra:
                logger.debug("Discarding %d bytes after response packet", extra)
            self._buffer.clear()

        return self._packet

    def wait(self) -> Packet:
        """Block until a full packet arrives or the deadline passes.

        The socket is registered with a selector only for the duration of
        this call; every exit path releases the registration.

        Raises:
            RconTimeoutError: ("response") if the deadline passes first.
            RconConnectionError: On socket error or if the peer closes.
            RconParseError: If the received frame is malformed.
        """
        if self._packet is not None:
            return self._packet
        if self._sock is None:
            raise RconConnectionError("Not connected")

        deadline = time.monotonic() + self._timeout
        selector = selectors.DefaultSelector()
        selector.register(self._sock, selectors.EVENT_READ)
        self.listening = True
        try:
            while self._packet is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise RconTimeoutError("response")
                if not selector.select(remaining):
                    continue

                try:
                    chunk = self._sock.recv(MAX_RECV)
                except (BlockingIOError, InterruptedError):
                    continue
                except OSError as exc:
                    raise RconConnectionError(f"Socket error: {exc}") from exc

                if not chunk:
                    raise RconConnectionError("Server closed connection")
                self.feed(chunk)

            return self._packet
        finally:
            selector.close()
            self.listening = False
