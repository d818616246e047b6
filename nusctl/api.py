"""Stable public API for building tooling on top of nusctl.

This module is the supported integration surface for third-party callers
(GUI/TUI front ends, scripts). Avoid importing from internal modules unless
intentionally depending on non-stable internals.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from types import TracebackType

from nusctl.core.config import ControllerConfig, load_config
from nusctl.core.errors import (
    ConfigError,
    DeviceNotFoundError,
    NusctlError,
    RadioUnavailableError,
    WaitTimeoutError,
)
from nusctl.core.ids import DEFAULT_IDS, ProtocolIds
from nusctl.core.machine import ConnectionStateMachine, Observer
from nusctl.core.model import ConnectPolicy, ControllerState, Peripheral, Phase
from nusctl.core.status import decode_status
from nusctl.transports.base import Radio

__all__ = [
    "NusctlError",
    "ConfigError",
    "DeviceNotFoundError",
    "RadioUnavailableError",
    "WaitTimeoutError",
    "ControllerConfig",
    "ControllerState",
    "ConnectPolicy",
    "DEFAULT_IDS",
    "Peripheral",
    "Phase",
    "ProtocolIds",
    "Radio",
    "decode_status",
    "load_config",
    "Client",
]


class Client:
    """Public client wrapping the connection state machine and a radio.

    Without an explicit `radio` a `BleakRadio` is created; `start()` must be
    called before the radio reports itself ready. All operations are
    non-blocking; `wait_for` is the only call that blocks, and it only blocks
    the caller.
    """

    def __init__(
        self,
        radio: Radio | None = None,
        *,
        config: ControllerConfig | None = None,
    ) -> None:
        self.config = config or load_config()
        if radio is None:
            from nusctl.transports.bleak_radio import BleakRadio

            radio = BleakRadio(connect_timeout_s=self.config.timeout_s)
        self._radio = radio
        self._changed = threading.Condition()
        self._machine = ConnectionStateMachine(
            radio,
            ids=self.config.ids,
            policy=self.config.connect_policy,
            status_placeholder=self.config.status_placeholder,
        )
        self._latest = self._machine.state
        self._machine.subscribe(self._notify_waiters)

    def __enter__(self) -> Client:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def start(self) -> None:
        start = getattr(self._radio, "start", None)
        if start is not None:
            start()

    def close(self) -> None:
        close = getattr(self._radio, "close", None)
        if close is not None:
            close()

    @property
    def state(self) -> ControllerState:
        return self._machine.state

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self._machine.subscribe(observer)

    def start_scan(self) -> None:
        self._machine.start_scan()

    def stop_scan(self) -> None:
        self._machine.stop_scan()

    def connect(self, device: Peripheral | str) -> None:
        self._machine.connect(device)

    def disconnect(self) -> None:
        self._machine.disconnect()

    def send(self, text: str) -> None:
        self._machine.send(text)

    def wait_for(
        self,
        predicate: Callable[[ControllerState], bool],
        timeout_s: float,
        *,
        description: str = "controller state",
    ) -> ControllerState:
        """Block until a published state satisfies `predicate`.

        Raises WaitTimeoutError when `timeout_s` elapses first.
        """
        deadline = time.monotonic() + timeout_s
        with self._changed:
            while True:
                state = self._latest
                if predicate(state):
                    return state
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise WaitTimeoutError(
                        f"Timed out after {timeout_s:g}s waiting for {description} (phase={state.phase.value})"
                    )
                self._changed.wait(remaining)

    def _notify_waiters(self, state: ControllerState) -> None:
        # Runs under the machine lock; never touch the machine from here.
        with self._changed:
            self._latest = state
            self._changed.notify_all()
