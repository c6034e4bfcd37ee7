from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .endpoint import Role

__all__ = ["BridgeError", "SetupError"]


class BridgeError(Exception):
    """Base class for errors raised by the bridge."""


class SetupError(BridgeError):
    """A listening socket could not be bound; the bridge cannot run."""

    def __init__(self, message: str, *, role: Role | None = None, port: int | None = None) -> None:
        super().__init__(message)
        self.role = role
        self.port = port

    @classmethod
    def bind_failed(cls, role: Role, port: int, exc: OSError) -> SetupError:
        reason = exc.strerror or str(exc)
        return cls(f"[{role.value}] bind failed on port {port}: {reason}", role=role, port=port)
