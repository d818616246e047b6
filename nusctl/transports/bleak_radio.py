"""Radio collaborator implemented on bleak.

bleak is asyncio based, so the radio runs its own event loop on a daemon
thread. Requests are scheduled onto that loop and return at once; outcomes
are reported to the event sink from the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Sequence
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.backends.service import BleakGATTService
from bleak.exc import BleakError

from nusctl.core.errors import RadioUnavailableError
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
from nusctl.core.ids import normalize_uuid
from nusctl.transports.base import EventSink

LOGGER = logging.getLogger(__name__)

_LOOP_START_TIMEOUT_S = 5.0
_SHUTDOWN_TIMEOUT_S = 5.0
_PROBE_TIMEOUT_S = 10.0


class BleakRadio:
    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self._connect_timeout_s = connect_timeout_s
        self._sink: EventSink | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._loop_ready = threading.Event()
        self._scanner: BleakScanner | None = None
        self._devices_lock = threading.Lock()
        self._devices: dict[str, BLEDevice] = {}
        self._clients: dict[str, BleakClient] = {}
        # id(characteristic) -> (characteristic, owning client); the tuple keeps the id stable.
        self._characteristics: dict[int, tuple[BleakGATTCharacteristic, BleakClient]] = {}
        # Writes, notify changes and disconnects run one at a time in request order.
        self._gatt_lock = asyncio.Lock()

    def set_event_sink(self, sink: EventSink | None) -> None:
        self._sink = sink

    def start(self) -> None:
        """Start the loop thread, probe the adapter, and announce whether it is usable."""
        if self._thread is not None:
            return
        self._loop_ready.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="nusctl-ble")
        self._thread.start()
        if not self._loop_ready.wait(timeout=_LOOP_START_TIMEOUT_S):
            raise RadioUnavailableError("BLE event loop did not start")
        future = asyncio.run_coroutine_threadsafe(self._adapter_usable(), self._loop)
        try:
            usable = future.result(timeout=_PROBE_TIMEOUT_S)
        except FutureTimeoutError:
            future.cancel()
            LOGGER.warning("Bluetooth adapter probe timed out")
            usable = False
        self._emit(RadioStateChanged(usable))

    def close(self) -> None:
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return
        future = asyncio.run_coroutine_threadsafe(self._shutdown(), loop)
        try:
            future.result(timeout=_SHUTDOWN_TIMEOUT_S)
        except Exception as exc:
            LOGGER.warning("BLE shutdown did not complete cleanly: %s", exc)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=_SHUTDOWN_TIMEOUT_S)
        self._loop = None
        self._thread = None
        self._emit(RadioStateChanged(False))

    # Radio protocol

    def request_scan(self, service_uuids: Sequence[str]) -> None:
        self._submit(self._scan(list(service_uuids)))

    def request_stop_scan(self) -> None:
        self._submit(self._stop_scanner())

    def lookup_peripheral(self, identifier: str) -> BLEDevice | None:
        with self._devices_lock:
            return self._devices.get(identifier)

    def request_connect(self, handle: BLEDevice) -> None:
        self._submit(self._connect(handle))

    def request_disconnect(self, handle: BLEDevice) -> None:
        self._submit(self._disconnect(handle))

    def request_discover_services(self, handle: BLEDevice, service_uuids: Sequence[str]) -> None:
        self._submit(self._discover_services(handle, service_uuids))

    def request_discover_characteristics(self, service: BleakGATTService, char_uuids: Sequence[str]) -> None:
        self._submit(self._discover_characteristics(service, char_uuids))

    def request_set_notify(self, characteristic: BleakGATTCharacteristic, enabled: bool) -> None:
        self._submit(self._set_notify(characteristic, enabled))

    def request_write(self, characteristic: BleakGATTCharacteristic, data: bytes, *, response: bool = False) -> None:
        self._submit(self._write(characteristic, data, response))

    # Loop-side coroutines

    async def _scan(self, service_uuids: list[str]) -> None:
        await self._stop_scanner()
        scanner = BleakScanner(detection_callback=self._on_detection, service_uuids=service_uuids)
        try:
            await scanner.start()
        except BleakError as exc:
            LOGGER.warning("Could not start BLE scan: %s", exc)
            if not await self._adapter_usable():
                self._emit(RadioStateChanged(False))
            return
        self._scanner = scanner
        LOGGER.debug("Scanning for %s", ", ".join(service_uuids))

    async def _adapter_usable(self) -> bool:
        """Briefly start and stop an unfiltered scanner to check the adapter."""
        scanner = BleakScanner()
        try:
            await scanner.start()
            await scanner.stop()
        except (BleakError, OSError) as exc:
            LOGGER.warning("Bluetooth adapter is not usable: %s", exc)
            return False
        return True

    async def _stop_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as exc:
            LOGGER.warning("Could not stop BLE scan: %s", exc)

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        with self._devices_lock:
            self._devices[device.address] = device
        self._emit(
            PeripheralDiscovered(
                handle=device,
                identifier=device.address,
                name=device.name or advertisement.local_name,
                rssi=advertisement.rssi,
            )
        )

    async def _connect(self, device: BLEDevice) -> None:
        def _on_disconnect(_: BleakClient) -> None:
            self._forget_client(device.address)
            self._emit(Disconnected(device))

        client = BleakClient(
            device,
            disconnected_callback=_on_disconnect,
            timeout=self._connect_timeout_s,
        )
        self._clients[device.address] = client
        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            self._forget_client(device.address)
            self._emit(Disconnected(device, error=str(exc) or type(exc).__name__))
            return
        self._emit(Connected(device))

    async def _disconnect(self, device: BLEDevice) -> None:
        client = self._clients.get(device.address)
        if client is None:
            # Nothing is linked; report the reset the caller is waiting for.
            self._emit(Disconnected(device))
            return
        try:
            async with self._gatt_lock:
                await client.disconnect()
        except BleakError as exc:
            LOGGER.warning("Disconnect from %s failed: %s", device.address, exc)
            self._forget_client(device.address)
            self._emit(Disconnected(device, error=str(exc)))

    async def _discover_services(self, device: BLEDevice, service_uuids: Sequence[str]) -> None:
        client = self._clients.get(device.address)
        if client is None or not client.is_connected:
            self._emit(ServicesDiscovered(device, error=f"{device.address} is not connected"))
            return
        wanted = {normalize_uuid(uuid) for uuid in service_uuids}
        services = [service for service in client.services if normalize_uuid(service.uuid) in wanted]
        self._emit(ServicesDiscovered(device, tuple(services)))

    async def _discover_characteristics(self, service: BleakGATTService, char_uuids: Sequence[str]) -> None:
        client = self._client_for_service(service)
        if client is None:
            self._emit(CharacteristicsDiscovered(service, error="service does not belong to a connected peripheral"))
            return
        wanted = {normalize_uuid(uuid) for uuid in char_uuids}
        found = [c for c in service.characteristics if normalize_uuid(c.uuid) in wanted]
        for characteristic in found:
            self._characteristics[id(characteristic)] = (characteristic, client)
        self._emit(CharacteristicsDiscovered(service, tuple(found)))

    async def _set_notify(self, characteristic: BleakGATTCharacteristic, enabled: bool) -> None:
        client = self._client_for_characteristic(characteristic)
        if client is None:
            return

        def _on_notify(sender: BleakGATTCharacteristic, data: bytearray) -> None:
            self._emit(CharacteristicValueUpdated(sender, bytes(data)))

        try:
            async with self._gatt_lock:
                if enabled:
                    await client.start_notify(characteristic, _on_notify)
                else:
                    await client.stop_notify(characteristic)
        except BleakError as exc:
            self._emit(CharacteristicValueUpdated(characteristic, error=str(exc)))

    async def _write(self, characteristic: BleakGATTCharacteristic, data: bytes, response: bool) -> None:
        client = self._client_for_characteristic(characteristic)
        if client is None:
            LOGGER.debug("Dropping write to %s: no connected client", characteristic.uuid)
            return
        try:
            async with self._gatt_lock:
                await client.write_gatt_char(characteristic, data, response=response)
        except BleakError as exc:
            LOGGER.warning("Write to %s failed: %s", characteristic.uuid, exc)

    async def _shutdown(self) -> None:
        await self._stop_scanner()
        for client in list(self._clients.values()):
            try:
                await client.disconnect()
            except BleakError as exc:
                LOGGER.warning("Disconnect during shutdown failed: %s", exc)

    # Helpers

    def _client_for_service(self, service: BleakGATTService) -> BleakClient | None:
        for client in self._clients.values():
            if client.is_connected and any(s is service for s in client.services):
                return client
        return None

    def _client_for_characteristic(self, characteristic: BleakGATTCharacteristic) -> BleakClient | None:
        entry = self._characteristics.get(id(characteristic))
        if entry is None or not entry[1].is_connected:
            return None
        return entry[1]

    def _forget_client(self, address: str) -> None:
        client = self._clients.pop(address, None)
        if client is None:
            return
        self._characteristics = {
            key: entry for key, entry in self._characteristics.items() if entry[1] is not client
        }

    def _emit(self, event: RadioEvent) -> None:
        sink = self._sink
        if sink is not None:
            sink(event)

    def _submit(self, coro: Coroutine[Any, Any, None]) -> None:
        loop = self._loop
        if loop is None:
            coro.close()
            LOGGER.debug("Dropping BLE request: radio not started")
            return
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        future.add_done_callback(_log_failure)

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._gatt_lock = asyncio.Lock()
        self._loop = loop
        self._loop_ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()


def _log_failure(future: Future[None]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("BLE request failed", exc_info=exc)
