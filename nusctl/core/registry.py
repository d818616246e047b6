"""Deduplicated, first-seen-ordered collection of scanned peripherals."""

from __future__ import annotations

from collections.abc import Iterator

from nusctl.core.model import Peripheral


class DeviceRegistry:
    def __init__(self) -> None:
        self._devices: list[Peripheral] = []
        self._seen: set[str] = set()

    def clear(self) -> None:
        self._devices = []
        self._seen = set()

    def add(self, peripheral: Peripheral) -> bool:
        """Append `peripheral` unless its identifier is already present.

        Repeated advertisements never overwrite the first entry's name or RSSI.
        Returns True when the peripheral was appended.
        """
        if peripheral.identifier in self._seen:
            return False
        self._seen.add(peripheral.identifier)
        self._devices.append(peripheral)
        return True

    def get(self, identifier: str) -> Peripheral | None:
        for device in self._devices:
            if device.identifier == identifier:
                return device
        return None

    def snapshot(self) -> tuple[Peripheral, ...]:
        return tuple(self._devices)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._seen

    def __iter__(self) -> Iterator[Peripheral]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._devices)
