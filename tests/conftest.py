"""Shared test fixtures: an in-process RCON server and process fakes."""

import socket
import struct
import threading

import pytest

from factorio_rcon.connection import RconConnection
from factorio_rcon.executor import CommandExecutor
from factorio_rcon.protocol import AUTH_FAILED_ID, PacketType, decode, encode

PASSWORD = "secret"


class FakeRconServer:
    """Minimal RCON server on 127.0.0.1 running on daemon threads.

    Attributes:
        responses: Maps command text to reply body; unknown commands echo.
        fragment: Send replies one byte at a time.
        silent: Never answer EXEC_COMMAND packets.
        commands: Every command body received, in order.
        connections: Number of accepted connections.
    """

    def __init__(self, password: str = PASSWORD) -> None:
        self.password = password
        self.responses: dict[str, str] = {}
        self.fragment = False
        self.silent = False
        self.commands: list[str] = []
        self.request_ids: list[int] = []
        self.connections = 0
        self._stop = threading.Event()
        self._listener = socket.create_server(("127.0.0.1", 0))
        self._listener.settimeout(0.05)
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def close(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2.0)
        self._listener.close()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self.connections += 1
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn: socket.socket) -> None:
        conn.settimeout(0.05)
        with conn:
            while not self._stop.is_set():
                frame = self._read_frame(conn)
                if frame is None:
                    return
                packet = decode(frame)
                self.request_ids.append(packet.id)

                if packet.type == PacketType.AUTH:
                    reply_id = packet.id if packet.body == self.password else AUTH_FAILED_ID
                    self._reply(conn, encode(reply_id, PacketType.AUTH_RESPONSE, ""))
                    continue

                self.commands.append(packet.body)
                if self.silent:
                    continue
                body = self.responses.get(packet.body, packet.body)
                self._reply(conn, encode(packet.id, PacketType.RESPONSE_VALUE, body))

    def _read_frame(self, conn: socket.socket) -> bytes | None:
        head = self._recv_exact(conn, 4)
        if head is None:
            return None
        (size,) = struct.unpack("<i", head)
        rest = self._recv_exact(conn, size)
        if rest is None:
            return None
        return head + rest

    def _recv_exact(self, conn: socket.socket, n: int) -> bytes | None:
        data = b""
        while len(data) < n:
            if self._stop.is_set():
                return None
            try:
                chunk = conn.recv(n - len(data))
            except socket.timeout:
                continue
            except OSError:
                return None
            if not chunk:
                return None
            data += chunk
        return data

    def _reply(self, conn: socket.socket, frame: bytes) -> None:
        try:
            if self.fragment:
                for i in range(len(frame)):
                    conn.sendall(frame[i : i + 1])
            else:
                conn.sendall(frame)
        except OSError:
            pass


class FakeProcess:
    """Records process actions instead of running Factorio.

    ``stop()`` takes the server down and ``start()`` brings it back,
    listening when ``listens_after_start`` is set.
    """

    def __init__(self, listens_after_start: bool = True) -> None:
        self.calls: list[tuple] = []
        self.running = True
        self.listening = True
        self.listens_after_start = listens_after_start
        self.on_start = None

    def start(self, save_name: str) -> None:
        self.calls.append(("start", save_name))
        self.running = True
        self.listening = self.listens_after_start
        if self.on_start is not None:
            self.on_start(save_name)

    def stop(self) -> None:
        self.calls.append(("stop",))
        self.running = False
        self.listening = False

    def is_running(self) -> bool:
        return self.running

    def is_listening(self) -> bool:
        return self.listening


@pytest.fixture
def rcon_server():
    server = FakeRconServer()
    yield server
    server.close()


@pytest.fixture
def make_connection(rcon_server):
    """Factory for connections to the fake server."""

    def factory(password: str = PASSWORD, response_timeout: float = 2.0) -> RconConnection:
        return RconConnection(
            "127.0.0.1",
            rcon_server.port,
            password,
            connect_timeout=2.0,
            response_timeout=response_timeout,
        )

    return factory


@pytest.fixture
def sleeps():
    """Collects requested sleep durations without sleeping."""
    return []


@pytest.fixture
def executor(make_connection, sleeps):
    ex = CommandExecutor(make_connection, max_retries=3, sleep=sleeps.append)
    yield ex
    ex.close()


@pytest.fixture
def fake_process():
    return FakeProcess()


@pytest.fixture
def saves_dir(tmp_path):
    directory = tmp_path / "saves"
    directory.mkdir()
    (directory / "default.zip").write_bytes(b"PK\x03\x04default")
    return directory


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    sock = socket.create_server(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
