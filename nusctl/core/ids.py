"""Fixed GATT identifiers shared with the peripheral firmware."""

from __future__ import annotations

import re
from dataclasses import dataclass

BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"

SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
COMMAND_CHAR_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"
STATUS_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def normalize_uuid(value: str) -> str:
    """Return the lowercase 128-bit form of a 16-, 32- or 128-bit UUID string.

    Raises ValueError for anything else.
    """
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ValueError(f"'{value}' is not a 16-bit, 32-bit, or 128-bit UUID string")
    if len(normalized) == 4:
        return f"0000{normalized}{BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{BASE_UUID_SUFFIX}"
    return normalized


@dataclass(frozen=True)
class ProtocolIds:
    service: str
    command: str
    status: str

    def matches_service(self, uuid: str) -> bool:
        return _same_uuid(uuid, self.service)

    def matches_command(self, uuid: str) -> bool:
        return _same_uuid(uuid, self.command)

    def matches_status(self, uuid: str) -> bool:
        return _same_uuid(uuid, self.status)


def _same_uuid(candidate: str, expected: str) -> bool:
    try:
        return normalize_uuid(candidate) == normalize_uuid(expected)
    except ValueError:
        return False


DEFAULT_IDS = ProtocolIds(
    service=SERVICE_UUID,
    command=COMMAND_CHAR_UUID,
    status=STATUS_CHAR_UUID,
)
