"""Domain-specific errors for nusctl."""


class NusctlError(Exception):
    """Base error for nusctl."""


class ConfigError(NusctlError):
    """Raised when the configuration file is unreadable or invalid."""


class RadioUnavailableError(NusctlError):
    """Raised when the Bluetooth adapter never reports itself ready."""


class DeviceNotFoundError(NusctlError):
    """Raised when a requested peripheral was not seen during scanning."""


class WaitTimeoutError(NusctlError):
    """Raised when a caller-side wait for controller state times out."""
