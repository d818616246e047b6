from __future__ import annotations

import threading

import pytest

from nusctl.api import Client, ControllerConfig, Phase, WaitTimeoutError
from nusctl.core.events import RadioStateChanged


def test_client_full_round_trip(scripted_radio) -> None:
    scripted_radio.replies[b"LED:1"] = b"ON"

    with Client(scripted_radio, config=ControllerConfig()) as client:
        assert client.state.radio_ready is True
        client.start_scan()
        device = client.state.devices[0]
        assert device.name == "ESP32-Lamp"

        client.connect(device)
        assert client.state.phase is Phase.READY

        client.send("LED:1")
        assert client.state.status_text == "ON"
        assert scripted_radio.named("write")[0][2] == b"LED:1"

        client.disconnect()
        assert client.state.connected is False

    assert scripted_radio.closed is True


def test_wait_for_returns_matching_state(scripted_radio) -> None:
    client = Client(scripted_radio, config=ControllerConfig())
    client.start()
    state = client.wait_for(lambda s: s.radio_ready, 0.1)
    assert state.radio_ready is True


def test_wait_for_times_out(radio) -> None:
    client = Client(radio, config=ControllerConfig())
    with pytest.raises(WaitTimeoutError) as exc:
        client.wait_for(lambda s: s.radio_ready, 0.05, description="adapter")
    assert "adapter" in str(exc.value)


def test_wait_for_wakes_on_event_from_other_thread(radio) -> None:
    client = Client(radio, config=ControllerConfig())
    timer = threading.Timer(0.05, radio.emit, args=(RadioStateChanged(True),))
    timer.start()
    try:
        state = client.wait_for(lambda s: s.radio_ready, 2.0)
    finally:
        timer.cancel()
    assert state.radio_ready is True


def test_client_uses_config_placeholder(radio) -> None:
    client = Client(radio, config=ControllerConfig(status_placeholder="waiting"))
    assert client.state.status_text == "waiting"
