from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = [
    "DEFAULT_BACKLOG",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_CLIENT_PORT",
    "DEFAULT_HOST",
    "DEFAULT_MAIN_PORT",
    "DEFAULT_POLL_INTERVAL",
    "BridgeConfig",
]

DEFAULT_HOST = "0.0.0.0"
DEFAULT_MAIN_PORT = 3333
DEFAULT_CLIENT_PORT = 2331
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_BACKLOG = 4
# Upper bound for noticing a hangup on a stalled side, and for flushing on close.
DEFAULT_POLL_INTERVAL = 0.1


class BridgeConfig(BaseModel):
    """Runtime settings for a bridge process.

    Port ``0`` asks the OS for a free port, which is mostly useful in tests.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = DEFAULT_HOST
    main_port: int = Field(default=DEFAULT_MAIN_PORT, ge=0, le=65535)
    client_port: int = Field(default=DEFAULT_CLIENT_PORT, ge=0, le=65535)
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1)
    backlog: int = Field(default=DEFAULT_BACKLOG, ge=1)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    log_file: Path | None = None
    pid_file: Path | None = None
    daemon: bool = False
    syslog: bool = False
    verbose: bool = False

    @model_validator(mode="after")
    def _distinct_ports(self) -> BridgeConfig:
        if self.main_port and self.main_port == self.client_port:
            raise ValueError(f"main and client port must differ (both {self.main_port})")
        return self
