from .bridge import Bridge, run_bridge
from .config import DEFAULT_CLIENT_PORT, DEFAULT_MAIN_PORT, BridgeConfig
from .endpoint import Endpoint, Role
from .exceptions import BridgeError, SetupError
from .gate import ADMITTED, Admission, AdmissionGate, PairingState, RejectReason
from .listener import Listener
from .relay import RelaySession, TerminalReason

__version__ = "0.1.0"

__all__ = [
    "ADMITTED",
    "DEFAULT_CLIENT_PORT",
    "DEFAULT_MAIN_PORT",
    "Admission",
    "AdmissionGate",
    "Bridge",
    "BridgeConfig",
    "BridgeError",
    "Endpoint",
    "Listener",
    "PairingState",
    "RejectReason",
    "RelaySession",
    "Role",
    "SetupError",
    "TerminalReason",
    "run_bridge",
]
