"""RCON wire format: packet constants, encoding and decoding.

Every packet on the wire is little-endian:

    int32 size | int32 id | int32 type | body bytes | 0x00 0x00

where ``size`` counts the bytes that follow the size field, so
``size == len(body_utf8) + 10``. This module is pure: no socket I/O.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

from .errors import RconParseError


# --- Packet types ---


class PacketType(IntEnum):
    """RCON packet type tags.

    ``AUTH_RESPONSE`` and ``EXEC_COMMAND`` share the value 2 on the wire;
    which one a packet is depends on whether it was sent or received.
    """

    RESPONSE_VALUE = 0
    EXEC_COMMAND = 2
    AUTH_RESPONSE = 2
    AUTH = 3


# --- Framing ---

# size + id + type
HEADER_SIZE = 12
# id + type + two NUL terminators
SIZE_OVERHEAD = 10
SIZE_FIELD = 4

# Echoed request id meaning "authentication rejected".
AUTH_FAILED_ID = -1

# Request ids live in 1..MAX_REQUEST_ID and wrap back to 1.
MAX_REQUEST_ID = 2_147_483_647

_INT32 = struct.Struct("<i")
_HEADER = struct.Struct("<iii")


@dataclass(frozen=True, slots=True)
class Packet:
    """One framed RCON packet.

    Attributes:
        id: Request id (echoed by the server; -1 signals failed auth).
        type: Packet type tag. Kept as a plain int on decode since servers
            may send values outside ``PacketType``.
        body: UTF-8 text payload without the NUL terminators.
    """

    id: int
    type: int
    body: str


def encode(packet_id: int, packet_type: int, body: str) -> bytes:
    """Encode a packet into its wire form.

    Args:
        packet_id: Signed 32-bit request id.
        packet_type: Packet type tag (see ``PacketType``).
        body: Text payload. No length cap is applied here.

    Returns:
        The complete frame, size prefix included.
    """
    body_bytes = body.encode("utf-8")
    size = len(body_bytes) + SIZE_OVERHEAD
    return _HEADER.pack(size, packet_id, int(packet_type)) + body_bytes + b"\x00\x00"


def declared_size(buffer: bytes) -> int:
    """Read the size field at the start of ``buffer``."""
    if len(buffer) < SIZE_FIELD:
        raise RconParseError(f"Need {SIZE_FIELD} bytes for size field, have {len(buffer)}")
    return _INT32.unpack_from(buffer, 0)[0]


def decode(buffer: bytes, expected_total_size: int | None = None) -> Packet:
    """Decode one packet from the start of ``buffer``.

    Args:
        buffer: Raw bytes beginning with the size field.
        expected_total_size: Total frame length (size field included). When
            omitted it is derived from the size field.

    Returns:
        The decoded Packet. The two trailing terminator bytes are dropped
        without being validated.

    Raises:
        RconParseError: If the buffer is shorter than the 12-byte header or
            the declared size disagrees with the bytes available.
    """
    if len(buffer) < HEADER_SIZE:
        raise RconParseError(f"Response too short ({len(buffer)} bytes)")

    size, packet_id, packet_type = _HEADER.unpack_from(buffer, 0)
    if expected_total_size is None:
        expected_total_size = size + SIZE_FIELD

    if size < SIZE_OVERHEAD or size + SIZE_FIELD != expected_total_size:
        raise RconParseError(
            f"Declared size {size} inconsistent with frame length {expected_total_size}"
        )
    if len(buffer) < expected_total_size:
        raise RconParseError(
            f"Incomplete packet: have {len(buffer)} of {expected_total_size} bytes"
        )

    raw_body = buffer[HEADER_SIZE : expected_total_size - 2]
    body = raw_body.decode("utf-8", errors="replace").rstrip("\x00")
    return Packet(id=packet_id, type=packet_type, body=body)


# --- Normalised result ---


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalised outcome of a command or orchestration request.

    Attributes:
        status: "success" or "error".
        message: Human-readable summary.
        details: Response text on success, or error detail text.
    """

    status: Literal["success", "error"]
    message: str
    details: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict:
        result = {"status": self.status, "message": self.message}
        if self.details is not None:
            result["details"] = self.details
        return result
