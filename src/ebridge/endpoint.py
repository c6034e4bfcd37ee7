from __future__ import annotations

import asyncio
import contextlib
import enum
import select
from dataclasses import dataclass, field
from typing import Any

__all__ = ["Endpoint", "Role"]

if hasattr(select, "poll"):
    # POLLRDHUP (Linux) reports a FIN even while unread data is queued
    _HANGUP_EVENTS = getattr(select, "POLLRDHUP", 0) | select.POLLHUP | select.POLLERR
    _RESET_EVENTS = select.POLLERR
else:
    _HANGUP_EVENTS = _RESET_EVENTS = 0


class Role(enum.Enum):
    MAIN = "main"
    CLIENT = "client"


@dataclass(slots=True, eq=False)
class Endpoint:
    """One accepted connection, tagged with the role it was accepted for."""

    role: Role
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    peer: Any = None
    _closed: bool = field(default=False, init=False, repr=False)

    @classmethod
    def from_streams(cls, role: Role, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> Endpoint:
        return cls(role, reader, writer, writer.get_extra_info("peername"))

    @property
    def address(self) -> str:
        if isinstance(self.peer, tuple) and len(self.peer) >= 2:
            return f"{self.peer[0]}:{self.peer[1]}"
        return str(self.peer) if self.peer is not None else "<unknown>"

    @property
    def closed(self) -> bool:
        return self._closed

    def hangup(self) -> str | None:
        """Check the socket for a peer hangup without reading from it.

        Returns ``"reset"``, ``"closed"`` or ``None``. Unlike a read this
        still works once the transport has paused reading because nobody
        consumes the stream.
        """
        sock = self.writer.get_extra_info("socket")
        if not _HANGUP_EVENTS or sock is None or sock.fileno() < 0:
            return None
        poller = select.poll()
        poller.register(sock.fileno(), _HANGUP_EVENTS)
        events = 0
        for _, mask in poller.poll(0):
            events |= mask
        if events & _RESET_EVENTS:
            return "reset"
        if events & _HANGUP_EVENTS:
            return "closed"
        return None

    def close(self, *, abort: bool = False, linger: float | None = None) -> None:
        """Close the connection. Safe to call more than once.

        A plain close still flushes bytes already queued on the transport.
        With ``linger`` the connection is reset if some are still queued
        after that many seconds; ``abort=True`` resets it immediately.
        """
        if self._closed:
            return
        self._closed = True
        if abort:
            self.writer.transport.abort()
            return
        if not self.writer.is_closing():
            self.writer.close()
        if linger is not None:
            asyncio.get_running_loop().call_later(linger, self._reset_if_unflushed)

    def _reset_if_unflushed(self) -> None:
        transport = self.writer.transport
        if transport.get_write_buffer_size() > 0:
            transport.abort()

    async def wait_closed(self) -> None:
        with contextlib.suppress(ConnectionError, OSError):
            await self.writer.wait_closed()
