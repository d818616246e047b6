"""Inbound events delivered by the radio collaborator.

Each variant maps to exactly one handler in the connection state machine.
Handles are opaque objects owned by the radio; service and characteristic
handles only need to expose a ``uuid`` string.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RadioStateChanged:
    powered_on: bool


@dataclass(frozen=True)
class PeripheralDiscovered:
    handle: Any
    identifier: str
    name: str | None
    rssi: int


@dataclass(frozen=True)
class Connected:
    handle: Any


@dataclass(frozen=True)
class Disconnected:
    handle: Any
    error: str | None = None


@dataclass(frozen=True)
class ServicesDiscovered:
    handle: Any
    services: Sequence[Any] = field(default_factory=tuple)
    error: str | None = None


@dataclass(frozen=True)
class CharacteristicsDiscovered:
    service: Any
    characteristics: Sequence[Any] = field(default_factory=tuple)
    error: str | None = None


@dataclass(frozen=True)
class CharacteristicValueUpdated:
    characteristic: Any
    data: bytes = b""
    error: str | None = None


RadioEvent = (
    RadioStateChanged
    | PeripheralDiscovered
    | Connected
    | Disconnected
    | ServicesDiscovered
    | CharacteristicsDiscovered
    | CharacteristicValueUpdated
)
