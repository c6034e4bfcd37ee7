"""Pairing state machine.

:class:`AdmissionGate` is the only place that decides whether a connection is
accepted and when a pairing ends. Every public method is synchronous and
never awaits, so on the event loop each call is one indivisible transition:
two candidates can never both observe a free slot.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_CHUNK_SIZE, DEFAULT_POLL_INTERVAL
from .endpoint import Endpoint, Role
from .log import emit
from .relay import RelaySession, TerminalReason

__all__ = ["ADMITTED", "Admission", "AdmissionGate", "PairingState", "RejectReason"]


class PairingState(enum.Enum):
    IDLE = "idle"
    MAIN_CONNECTED = "main connected"
    BRIDGING = "bridging"


class RejectReason(enum.Enum):
    NO_MAIN = "no main"
    ALREADY_CONNECTED = "already connected"
    SHUTTING_DOWN = "shutting down"


@dataclass(frozen=True, slots=True)
class Admission:
    reason: RejectReason | None = None

    @property
    def admitted(self) -> bool:
        return self.reason is None


ADMITTED = Admission()


class AdmissionGate:
    def __init__(
        self,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        logger: logging.Logger | None = None,
    ) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._chunk_size = chunk_size
        self._poll_interval = poll_interval
        self._state = PairingState.IDLE
        self._main: Endpoint | None = None
        self._client: Endpoint | None = None
        self._guard: asyncio.Task[None] | None = None
        self._session: RelaySession | None = None
        self._session_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closing = False
        self.pairings = 0

    @property
    def state(self) -> PairingState:
        return self._state

    @property
    def main(self) -> Endpoint | None:
        return self._main

    @property
    def client(self) -> Endpoint | None:
        return self._client

    @property
    def session(self) -> RelaySession | None:
        return self._session

    # --- Admission ---------------------------------------------------------

    def try_admit_main(self, candidate: Endpoint) -> Admission:
        """Admit ``candidate`` as main if nothing is connected.

        On rejection the caller still owns ``candidate`` and must close it.
        """
        if self._closing:
            return self._reject(candidate, RejectReason.SHUTTING_DOWN)
        if self._state is not PairingState.IDLE:
            return self._reject(candidate, RejectReason.ALREADY_CONNECTED)
        self._main = candidate
        self._state = PairingState.MAIN_CONNECTED
        self._guard = self._schedule(self._guard_idle_main(candidate), name="ebridge-main-guard")
        emit(
            self._log,
            "admitted",
            "[main] Connected from %s",
            candidate.address,
            role=Role.MAIN.value,
            peer=candidate.address,
        )
        return ADMITTED

    def try_admit_client(self, candidate: Endpoint) -> Admission:
        """Admit ``candidate`` as client and start relaying, if main is waiting alone."""
        if self._closing:
            return self._reject(candidate, RejectReason.SHUTTING_DOWN)
        if self._state is PairingState.IDLE:
            return self._reject(candidate, RejectReason.NO_MAIN)
        if self._state is PairingState.BRIDGING:
            return self._reject(candidate, RejectReason.ALREADY_CONNECTED)

        main = self._main
        assert main is not None
        guard, self._guard = self._guard, None
        if guard is not None:
            guard.cancel()
        self._client = candidate
        self._state = PairingState.BRIDGING
        session = RelaySession(
            main,
            candidate,
            on_teardown=self.teardown,
            chunk_size=self._chunk_size,
            poll_interval=self._poll_interval,
        )
        self._session = session
        self._session_task = self._schedule(self._bridge(session, guard), name="ebridge-relay")
        self.pairings += 1
        emit(
            self._log,
            "admitted",
            "[client] Connected from %s",
            candidate.address,
            role=Role.CLIENT.value,
            peer=candidate.address,
        )
        emit(
            self._log,
            "pairing_started",
            "[bridge] Established main<->client (%s <-> %s)",
            main.address,
            candidate.address,
            main_peer=main.address,
            client_peer=candidate.address,
        )
        return ADMITTED

    def _reject(self, candidate: Endpoint, reason: RejectReason) -> Admission:
        if reason is RejectReason.NO_MAIN:
            msg = "[%s] Tried to connect without main from %s. Closing."
        else:
            msg = "[%s] Rejected %s: " + reason.value
        emit(
            self._log,
            "rejected",
            msg,
            candidate.role.value,
            candidate.address,
            role=candidate.role.value,
            peer=candidate.address,
            reason=reason.value,
        )
        return Admission(reason)

    # --- Teardown ----------------------------------------------------------

    def report_main_activity_without_client(self, detail: str = "early data") -> None:
        """Drop a main endpoint that spoke (or hung up) before any client was paired."""
        if self._state is not PairingState.MAIN_CONNECTED:
            return
        main = self._main
        assert main is not None
        self._main = None
        self._state = PairingState.IDLE
        self._cancel_guard()
        main.close()
        emit(
            self._log,
            "protocol_violation",
            "[main] %s closed on %s",
            main.address,
            detail,
            role=Role.MAIN.value,
            peer=main.address,
            detail=detail,
        )

    def teardown(self, reason: TerminalReason, session: RelaySession | None = None) -> None:
        """Close both endpoints and return to ``IDLE``.

        Bytes still queued for a peer that does not read are dropped after
        one poll interval so the socket is released.

        A ``session`` that no longer owns the pairing only has its own
        endpoints closed; the current pairing is left alone.
        """
        if session is not None and session is not self._session:
            session.main.close(linger=self._poll_interval)
            session.client.close(linger=self._poll_interval)
            return

        abort = reason is TerminalReason.SHUTDOWN
        previous = self._state
        main, client = self._main, self._client
        current = self._session
        self._main = self._client = None
        self._session = None
        self._state = PairingState.IDLE
        self._cancel_guard()
        task, self._session_task = self._session_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        for endpoint in (main, client):
            if endpoint is not None:
                endpoint.close(abort=abort, linger=self._poll_interval)

        if previous is PairingState.BRIDGING:
            fields: dict[str, Any] = {"reason": reason.value}
            if current is not None:
                fields["bytes_main_to_client"] = current.bytes_main_to_client
                fields["bytes_client_to_main"] = current.bytes_client_to_main
            emit(self._log, "pairing_closed", "[bridge] Closed main<->client (%s)", reason.value, **fields)
        elif previous is PairingState.MAIN_CONNECTED and main is not None:
            emit(
                self._log,
                "pairing_closed",
                "[main] %s closed (%s)",
                main.address,
                reason.value,
                role=Role.MAIN.value,
                reason=reason.value,
            )
        if previous is not PairingState.IDLE and not self._closing:
            self._log.info("Waiting for new main connection...")

    async def aclose(self) -> None:
        """Refuse further candidates, close whatever is connected and wait for background tasks."""
        self._closing = True
        self.teardown(TerminalReason.SHUTDOWN)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # --- Background tasks --------------------------------------------------

    async def _guard_idle_main(self, main: Endpoint) -> None:
        try:
            data = await main.reader.read(1)
        except OSError as exc:
            detail = f"error ({exc})"
        else:
            detail = "early data" if data else "disconnect"
        if self._main is main:
            self.report_main_activity_without_client(detail)

    async def _bridge(self, session: RelaySession, guard: asyncio.Task[None] | None) -> None:
        if guard is not None:
            # main's reader is only free for the relay once the guard has let go of it
            await asyncio.wait({guard})
        await session.run()

    def _cancel_guard(self) -> None:
        guard, self._guard = self._guard, None
        if guard is not None and guard is not asyncio.current_task():
            guard.cancel()

    def _schedule(self, coroutine: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coroutine, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("Background task %s failed", task.get_name(), exc_info=exc)
