"""Connection lifecycle state machine for a single peripheral.

The machine is the only owner of mutable controller state. Public operations
issue requests to the radio and return immediately; the radio reports results
through `dispatch`, which may be called from any thread. Every operation and
every event is applied under one lock, and observers only ever receive
immutable `ControllerState` snapshots.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from nusctl.core.events import (
    CharacteristicsDiscovered,
    CharacteristicValueUpdated,
    Connected,
    Disconnected,
    PeripheralDiscovered,
    RadioEvent,
    RadioStateChanged,
    ServicesDiscovered,
)
from nusctl.core.ids import DEFAULT_IDS, ProtocolIds
from nusctl.core.model import (
    DEFAULT_STATUS_PLACEHOLDER,
    UNKNOWN_NAME,
    ActiveConnection,
    ConnectPolicy,
    ControllerState,
    Peripheral,
    Phase,
)
from nusctl.core.registry import DeviceRegistry
from nusctl.core.status import decode_status
from nusctl.transports.base import Radio

LOGGER = logging.getLogger(__name__)

Observer = Callable[[ControllerState], None]


class ConnectionStateMachine:
    def __init__(
        self,
        radio: Radio,
        *,
        ids: ProtocolIds = DEFAULT_IDS,
        policy: ConnectPolicy = ConnectPolicy.REJECT,
        status_placeholder: str = DEFAULT_STATUS_PLACEHOLDER,
    ) -> None:
        self.ids = ids
        self.policy = policy
        self._radio = radio
        self._placeholder = status_placeholder
        self._lock = threading.RLock()
        self._registry = DeviceRegistry()
        self._radio_ready = False
        self._scanning = False
        self._connection: ActiveConnection | None = None
        self._status_text = ""
        self._last_error: str | None = None
        self._observers: list[Observer] = []
        self._handlers: dict[type, Callable[[Any], None]] = {
            RadioStateChanged: self._on_radio_state_changed,
            PeripheralDiscovered: self._on_peripheral_discovered,
            Connected: self._on_connected,
            ServicesDiscovered: self._on_services_discovered,
            CharacteristicsDiscovered: self._on_characteristics_discovered,
            CharacteristicValueUpdated: self._on_value_updated,
            Disconnected: self._on_disconnected,
        }
        self._state = self._snapshot()
        radio.set_event_sink(self.dispatch)

    @property
    def state(self) -> ControllerState:
        with self._lock:
            return self._state

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register `observer` for state snapshots; returns an unsubscribe callable."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    # Public operations

    def start_scan(self) -> None:
        with self._lock:
            if not self._radio_ready:
                LOGGER.debug("Ignoring scan request: radio not ready")
                return
            self._registry.clear()
            self._scanning = True
            self._radio.request_scan([self.ids.service])
            self._publish()

    def stop_scan(self) -> None:
        with self._lock:
            self._stop_scan()
            self._publish()

    def connect(self, device: Peripheral | str) -> None:
        identifier = device.identifier if isinstance(device, Peripheral) else device
        with self._lock:
            handle = self._radio.lookup_peripheral(identifier)
            if handle is None:
                LOGGER.debug("Ignoring connect: radio does not know %s", identifier)
                return

            current = self._connection
            if current is not None:
                if current.identifier == identifier:
                    LOGGER.debug("Ignoring connect: %s is already the target", identifier)
                    return
                if self.policy is ConnectPolicy.REJECT:
                    LOGGER.info(
                        "Ignoring connect to %s: %s is %s",
                        identifier,
                        current.identifier,
                        current.stage.value,
                    )
                    return
                LOGGER.info("Replacing connection to %s with %s", current.identifier, identifier)
                self._radio.request_disconnect(current.handle)

            self._stop_scan()
            self._connection = ActiveConnection(identifier=identifier, handle=handle)
            self._last_error = None
            self._radio.request_connect(handle)
            self._publish()

    def disconnect(self) -> None:
        with self._lock:
            if self._connection is None:
                LOGGER.debug("Ignoring disconnect: no peripheral")
                return
            # Local state is only reset when the Disconnected event arrives.
            self._radio.request_disconnect(self._connection.handle)

    def send(self, text: str) -> None:
        with self._lock:
            conn = self._connection
            if conn is None or not conn.can_send:
                LOGGER.debug("Dropping send of %r: no command channel", text)
                return
            try:
                data = text.encode("utf-8")
            except UnicodeEncodeError:
                LOGGER.debug("Dropping send of %r: not encodable as UTF-8", text)
                return
            self._radio.request_write(conn.command_handle, data, response=False)

    # Event handling

    def dispatch(self, event: RadioEvent) -> None:
        """Apply one radio event atomically and publish the resulting state."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported radio event: {event!r}")
        with self._lock:
            handler(event)
            self._publish()

    def _on_radio_state_changed(self, event: RadioStateChanged) -> None:
        self._radio_ready = event.powered_on
        if not event.powered_on and self._scanning:
            LOGGER.info("Radio powered off while scanning")
            self._scanning = False

    def _on_peripheral_discovered(self, event: PeripheralDiscovered) -> None:
        if not self._scanning:
            return
        peripheral = Peripheral(
            identifier=event.identifier,
            name=event.name or UNKNOWN_NAME,
            rssi=int(event.rssi),
        )
        if self._registry.add(peripheral):
            LOGGER.debug("Discovered %s (%s) rssi=%d", peripheral.identifier, peripheral.name, peripheral.rssi)

    def _on_connected(self, event: Connected) -> None:
        conn = self._current(event.handle)
        if conn is None:
            LOGGER.debug("Ignoring connect event for a peripheral that is not the target")
            return
        conn.connected = True
        LOGGER.info("Connected to %s", conn.identifier)
        self._radio.request_discover_services(conn.handle, [self.ids.service])

    def _on_services_discovered(self, event: ServicesDiscovered) -> None:
        conn = self._current(event.handle)
        if conn is None or not conn.connected:
            return
        if event.error:
            self._record_error(f"Service discovery failed for {conn.identifier}: {event.error}")
            return

        matching = [s for s in event.services if self.ids.matches_service(_uuid_of(s))]
        if not matching:
            LOGGER.warning("%s does not expose service %s", conn.identifier, self.ids.service)
            conn.stage = Phase.STALLED
            return

        conn.stage = Phase.SERVICES_DISCOVERED
        for service in matching:
            conn.services.append(service)
            self._radio.request_discover_characteristics(service, [self.ids.command, self.ids.status])

    def _on_characteristics_discovered(self, event: CharacteristicsDiscovered) -> None:
        conn = self._connection
        if conn is None or not conn.connected or event.service not in conn.services:
            return
        if event.error:
            self._record_error(f"Characteristic discovery failed for {conn.identifier}: {event.error}")
            return

        status_found = None
        for characteristic in event.characteristics:
            uuid = _uuid_of(characteristic)
            if self.ids.matches_command(uuid):
                conn.command_handle = characteristic
            if self.ids.matches_status(uuid):
                conn.status_handle = characteristic
                status_found = characteristic

        if status_found is not None:
            self._radio.request_set_notify(status_found, True)

        if conn.command_handle is not None:
            conn.stage = Phase.READY
            LOGGER.info("%s ready for commands", conn.identifier)
        else:
            LOGGER.warning("%s does not expose command characteristic %s", conn.identifier, self.ids.command)
            conn.stage = Phase.STALLED

    def _on_value_updated(self, event: CharacteristicValueUpdated) -> None:
        conn = self._connection
        if conn is None:
            return
        if event.error:
            self._record_error(f"Notification failed: {event.error}")
            return
        # Only the active link's subscribed status characteristic may update the text.
        if conn.status_handle is None or event.characteristic is not conn.status_handle:
            return
        if not self.ids.matches_status(_uuid_of(event.characteristic)):
            return
        self._status_text = decode_status(event.data)

    def _on_disconnected(self, event: Disconnected) -> None:
        conn = self._current(event.handle)
        if conn is None:
            LOGGER.debug("Ignoring disconnect event for a stale peripheral")
            return
        # Single reset point for the active connection.
        self._connection = None
        if event.error:
            self._record_error(f"Disconnected from {conn.identifier}: {event.error}")
        else:
            LOGGER.info("Disconnected from %s", conn.identifier)

    # Internals

    def _current(self, handle: Any) -> ActiveConnection | None:
        conn = self._connection
        if conn is None or conn.handle != handle:
            return None
        return conn

    def _stop_scan(self) -> None:
        self._scanning = False
        self._radio.request_stop_scan()

    def _record_error(self, message: str) -> None:
        LOGGER.warning(message)
        self._last_error = message

    def _snapshot(self) -> ControllerState:
        conn = self._connection
        if conn is not None:
            phase = conn.stage
        elif self._scanning:
            phase = Phase.SCANNING
        else:
            phase = Phase.IDLE
        return ControllerState(
            radio_ready=self._radio_ready,
            scanning=self._scanning,
            connected=conn is not None and conn.connected,
            phase=phase,
            devices=self._registry.snapshot(),
            status_text=self._status_text or self._placeholder,
            target=conn.identifier if conn is not None else None,
            can_send=conn is not None and conn.can_send,
            last_error=self._last_error,
        )

    def _publish(self) -> None:
        state = self._snapshot()
        if state == self._state:
            return
        self._state = state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                LOGGER.exception("State observer %r failed", observer)


def _uuid_of(attribute: Any) -> str:
    return str(getattr(attribute, "uuid", ""))
