from __future__ import annotations

import asyncio
import logging

from .config import DEFAULT_BACKLOG
from .endpoint import Endpoint, Role
from .exceptions import SetupError
from .gate import AdmissionGate
from .log import LIFECYCLE_LOGGER, emit

__all__ = ["Listener"]


class Listener:
    """Listening socket for one role.

    Every accepted connection is offered to the gate straight away; a
    rejected candidate is closed here and nothing else happens.
    """

    def __init__(
        self,
        role: Role,
        gate: AdmissionGate,
        host: str | None,
        port: int,
        *,
        backlog: int = DEFAULT_BACKLOG,
        logger: logging.Logger | None = None,
    ) -> None:
        self.role = role
        self._gate = gate
        self._host = host
        self._port = port
        self._backlog = backlog
        self._log = logger or logging.getLogger(__name__)
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        """The bound port; differs from the requested one when that was ``0``."""
        if self._server is None or not self._server.sockets:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    @property
    def serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        try:
            self._server = await asyncio.start_server(
                self._on_connection,
                host=self._host,
                port=self._port,
                backlog=self._backlog,
                reuse_address=True,
            )
        except OSError as exc:
            error = SetupError.bind_failed(self.role, self._port, exc)
            # fatal setup lines go to the lifecycle logger, which feeds syslog
            emit(
                logging.getLogger(LIFECYCLE_LOGGER),
                "setup_failed",
                "%s",
                error,
                level=logging.ERROR,
                role=self.role.value,
                port=self._port,
            )
            raise error from exc
        emit(
            self._log,
            "listening",
            "[%s] Listening on port %d",
            self.role.value,
            self.port,
            role=self.role.value,
            port=self.port,
        )

    def close(self) -> None:
        """Stop accepting. Connections already handed to the gate stay open."""
        if self._server is not None:
            self._server.close()

    async def wait_closed(self) -> None:
        if self._server is not None:
            await self._server.wait_closed()

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        candidate = Endpoint.from_streams(self.role, reader, writer)
        if self.role is Role.MAIN:
            admission = self._gate.try_admit_main(candidate)
        else:
            admission = self._gate.try_admit_client(candidate)
        if admission.admitted:
            return
        candidate.close()
        await candidate.wait_closed()
