"""Command/status controller for a single BLE UART-style peripheral."""

__version__ = "0.1.0"
