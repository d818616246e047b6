"""Radio collaborator interface consumed by the connection state machine."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from nusctl.core.events import RadioEvent

EventSink = Callable[[RadioEvent], None]


class Radio(Protocol):
    """Capability surface of the underlying Bluetooth stack.

    Every ``request_*`` call must return without waiting for the outcome;
    results are delivered later, possibly from another thread, through the
    sink registered with `set_event_sink`.
    """

    def set_event_sink(self, sink: EventSink | None) -> None: ...

    def request_scan(self, service_uuids: Sequence[str]) -> None: ...

    def request_stop_scan(self) -> None: ...

    def lookup_peripheral(self, identifier: str) -> Any | None:
        """Return the handle for a peripheral the radio knows, or None."""

    def request_connect(self, handle: Any) -> None: ...

    def request_disconnect(self, handle: Any) -> None: ...

    def request_discover_services(self, handle: Any, service_uuids: Sequence[str]) -> None: ...

    def request_discover_characteristics(self, service: Any, char_uuids: Sequence[str]) -> None: ...

    def request_set_notify(self, characteristic: Any, enabled: bool) -> None: ...

    def request_write(self, characteristic: Any, data: bytes, *, response: bool = False) -> None: ...
