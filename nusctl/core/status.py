"""Decoding of status notification payloads."""

from __future__ import annotations


def decode_status(data: bytes | bytearray) -> str:
    """Decode a status payload as UTF-8, substituting invalid sequences."""
    return bytes(data).decode("utf-8", errors="replace")
