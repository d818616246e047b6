from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import pytest

from nusctl.core.events import (
    CharacteristicsDiscovered,
    CharacteristicValueUpdated,
    Connected,
    Disconnected,
    PeripheralDiscovered,
    RadioStateChanged,
    ServicesDiscovered,
)
from nusctl.core.ids import COMMAND_CHAR_UUID, SERVICE_UUID, STATUS_CHAR_UUID
from nusctl.core.machine import ConnectionStateMachine


@dataclass(eq=False)
class Handle:
    """Opaque peripheral handle; compares by identity like a real radio object."""

    identifier: str


@dataclass(eq=False)
class Attr:
    """Service or characteristic handle exposing a uuid, compared by identity."""

    uuid: str


class FakeRadio:
    def __init__(self) -> None:
        self.sink = None
        self.known: dict[str, Handle] = {}
        self.calls: list[tuple[Any, ...]] = []

    def set_event_sink(self, sink) -> None:
        self.sink = sink

    def emit(self, event) -> None:
        self.sink(event)

    def add_known(self, identifier: str) -> Handle:
        handle = Handle(identifier)
        self.known[identifier] = handle
        return handle

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def request_scan(self, service_uuids: Sequence[str]) -> None:
        self.calls.append(("scan", tuple(service_uuids)))

    def request_stop_scan(self) -> None:
        self.calls.append(("stop_scan",))

    def lookup_peripheral(self, identifier: str) -> Handle | None:
        return self.known.get(identifier)

    def request_connect(self, handle) -> None:
        self.calls.append(("connect", handle))

    def request_disconnect(self, handle) -> None:
        self.calls.append(("disconnect", handle))

    def request_discover_services(self, handle, service_uuids: Sequence[str]) -> None:
        self.calls.append(("discover_services", handle, tuple(service_uuids)))

    def request_discover_characteristics(self, service, char_uuids: Sequence[str]) -> None:
        self.calls.append(("discover_characteristics", service, tuple(char_uuids)))

    def request_set_notify(self, characteristic, enabled: bool) -> None:
        self.calls.append(("notify", characteristic, enabled))

    def request_write(self, characteristic, data: bytes, *, response: bool = False) -> None:
        self.calls.append(("write", characteristic, data, response))


class ScriptedRadio(FakeRadio):
    """Radio that answers every request immediately with a successful outcome."""

    def __init__(self, advertisements: Sequence[tuple[str, str | None, int]] = ()) -> None:
        super().__init__()
        self.advertisements = list(advertisements)
        self.service = Attr(SERVICE_UUID)
        self.command = Attr(COMMAND_CHAR_UUID)
        self.status = Attr(STATUS_CHAR_UUID)
        self.replies: dict[bytes, bytes] = {}
        self.closed = False

    def start(self) -> None:
        self.emit(RadioStateChanged(True))

    def close(self) -> None:
        self.closed = True

    def request_scan(self, service_uuids: Sequence[str]) -> None:
        super().request_scan(service_uuids)
        for identifier, name, rssi in self.advertisements:
            handle = self.known.get(identifier) or self.add_known(identifier)
            self.emit(PeripheralDiscovered(handle, identifier, name, rssi))

    def request_connect(self, handle) -> None:
        super().request_connect(handle)
        self.emit(Connected(handle))

    def request_disconnect(self, handle) -> None:
        super().request_disconnect(handle)
        self.emit(Disconnected(handle))

    def request_discover_services(self, handle, service_uuids: Sequence[str]) -> None:
        super().request_discover_services(handle, service_uuids)
        self.emit(ServicesDiscovered(handle, (self.service,)))

    def request_discover_characteristics(self, service, char_uuids: Sequence[str]) -> None:
        super().request_discover_characteristics(service, char_uuids)
        self.emit(CharacteristicsDiscovered(service, (self.command, self.status)))

    def request_write(self, characteristic, data: bytes, *, response: bool = False) -> None:
        super().request_write(characteristic, data, response=response)
        reply = self.replies.get(data)
        if reply is not None:
            self.emit(CharacteristicValueUpdated(self.status, reply))


@pytest.fixture
def radio() -> FakeRadio:
    return FakeRadio()


@pytest.fixture
def machine(radio: FakeRadio) -> ConnectionStateMachine:
    return ConnectionStateMachine(radio)


@pytest.fixture
def scripted_radio() -> ScriptedRadio:
    return ScriptedRadio(advertisements=[("AA:BB:CC:DD:EE:01", "ESP32-Lamp", -55)])


@pytest.fixture
def attrs():
    """Factory for fresh service/characteristic handles."""

    return Attr
