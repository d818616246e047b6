"""Core data models shared by the state machine, API, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

UNKNOWN_NAME = "Unknown"
DEFAULT_STATUS_PLACEHOLDER = "—"


class Phase(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    SERVICES_DISCOVERED = "services_discovered"
    READY = "ready"
    STALLED = "stalled"


class ConnectPolicy(str, Enum):
    """What `connect` does while another peripheral is pending or connected."""

    REJECT = "reject"
    REPLACE = "replace"


@dataclass(frozen=True)
class Peripheral:
    identifier: str
    name: str
    rssi: int


@dataclass
class ActiveConnection:
    """The single pending or established link, owned by the state machine."""

    identifier: str
    handle: Any
    connected: bool = False
    command_handle: Any = None
    status_handle: Any = None
    services: list[Any] = field(default_factory=list)
    stage: Phase = Phase.CONNECTING

    @property
    def can_send(self) -> bool:
        return self.connected and self.command_handle is not None


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of everything the presentation layer may read."""

    radio_ready: bool
    scanning: bool
    connected: bool
    phase: Phase
    devices: tuple[Peripheral, ...]
    status_text: str
    target: str | None = None
    can_send: bool = False
    last_error: str | None = None
