from __future__ import annotations

import asyncio
import contextlib
import socket
import struct
from collections.abc import Callable

from ebridge import Endpoint, Role

# --------------------- Socket helpers ---------------------


class SocketPair:
    """One loopback TCP connection: the accepted end becomes an endpoint, the dialing end stays with the test."""

    async def __aenter__(self) -> SocketPair:
        accepted: asyncio.Future = asyncio.get_running_loop().create_future()
        self._server = await asyncio.start_server(lambda r, w: accepted.set_result((r, w)), "127.0.0.1", 0)
        port = self._server.sockets[0].getsockname()[1]
        self.peer_reader, self.peer_writer = await connect(port)
        self._reader, self._writer = await asyncio.wait_for(accepted, timeout=1)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # either side may have bytes it can never flush
        self.peer_writer.transport.abort()
        self._writer.transport.abort()
        self._server.close()
        await self._server.wait_closed()

    def endpoint(self, role: Role) -> Endpoint:
        return Endpoint.from_streams(role, self._reader, self._writer)


# --------------------- Test doubles -----------------------


class FakeWriter:
    """Stands in for ``asyncio.StreamWriter``; closing it ends the paired reader like a real transport."""

    def __init__(self, reader: asyncio.StreamReader, peer: tuple[str, int]) -> None:
        self.data = bytearray()
        self.closed = False
        self.aborted = False
        self.buffered = 0
        self._reader = reader
        self._peer = peer

    @property
    def transport(self) -> "FakeWriter":
        return self

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        if self.closed:
            raise ConnectionResetError("Connection lost")

    def get_write_buffer_size(self) -> int:
        return 0 if self.aborted else self.buffered

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True
        if not self._reader.at_eof():
            self._reader.feed_eof()

    def abort(self) -> None:
        self.aborted = True
        self.close()

    async def wait_closed(self) -> None:
        return None

    def get_extra_info(self, name: str, default=None):
        return self._peer if name == "peername" else default


def fake_endpoint(role: Role, port: int = 40000) -> Endpoint:
    reader = asyncio.StreamReader()
    writer = FakeWriter(reader, ("127.0.0.1", port))
    return Endpoint.from_streams(role, reader, writer)  # type: ignore[arg-type]


# --------------------- Polling helpers --------------------


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


async def wait_closed_by_peer(reader: asyncio.StreamReader, timeout: float = 1.0) -> bool:
    """True once the remote side has closed (EOF or reset) with no further data."""
    try:
        data = await asyncio.wait_for(reader.read(), timeout=timeout)
    except ConnectionError:
        return True
    return data == b""


async def wait_reset_or_eof(reader: asyncio.StreamReader, timeout: float = 2.0) -> bool:
    """Like :func:`wait_closed_by_peer`, but skips whatever data arrives first."""

    async def _consume() -> None:
        while await reader.read(65536):
            pass

    try:
        await asyncio.wait_for(_consume(), timeout=timeout)
    except ConnectionError:
        return True
    except asyncio.TimeoutError:
        return False
    return True


async def connect(port: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    return await asyncio.open_connection("127.0.0.1", port)


def reset(writer: asyncio.StreamWriter) -> None:
    """Drop the connection with an RST, even if the peer has stopped reading."""
    sock = writer.get_extra_info("socket")
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
    writer.transport.abort()


async def disconnect(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(Exception):
        await writer.wait_closed()


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def events(records, name: str) -> list:
    return [record for record in records if getattr(record, "event", None) == name]
