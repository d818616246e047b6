from __future__ import annotations

from typer.testing import CliRunner

from nusctl import cli
from nusctl.api import Client, ControllerConfig

DEVICE = "AA:BB:CC:DD:EE:01"

runner = CliRunner()


def _patch_client(monkeypatch, radio, **config) -> None:
    config.setdefault("scan_seconds", 0.05)
    config.setdefault("timeout_s", 0.05)
    monkeypatch.setattr(cli, "_build_client", lambda _config_path: Client(radio, config=ControllerConfig(**config)))


def test_scan_lists_devices(monkeypatch, scripted_radio) -> None:
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["scan", "--seconds", "0"])
    assert result.exit_code == 0
    assert f"{DEVICE} ESP32-Lamp RSSI -55" in result.stdout
    assert ("stop_scan",) in scripted_radio.calls


def test_scan_without_devices(monkeypatch, scripted_radio) -> None:
    scripted_radio.advertisements = []
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["scan", "--seconds", "0"])
    assert result.exit_code == 0
    assert "No devices found" in result.stdout


def test_send_writes_command(monkeypatch, scripted_radio) -> None:
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["send", "LED:1", "--device", DEVICE])
    assert result.exit_code == 0
    assert "payload=4c45443a31" in result.stdout
    writes = scripted_radio.named("write")
    assert len(writes) == 1
    assert writes[0][1] is scripted_radio.command
    assert writes[0][2] == b"LED:1"
    assert scripted_radio.named("disconnect")


def test_send_prints_status_updates(monkeypatch, scripted_radio) -> None:
    scripted_radio.replies[b"LED:0"] = b"OFF"
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["send", "LED:0", "--device", DEVICE, "--listen", "0.01"])
    assert result.exit_code == 0
    assert "Sent 'LED:0'" in result.stdout


def test_send_unknown_device_is_clean_error(monkeypatch, scripted_radio) -> None:
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["send", "LED:1", "--device", "11:22:33:44:55:66"])
    assert result.exit_code == 1
    assert "Error: Device 11:22:33:44:55:66 was not found" in result.stderr
    assert "Traceback" not in result.stderr


def test_send_without_command_characteristic_fails(monkeypatch, scripted_radio) -> None:
    scripted_radio.command.uuid = "2a19"
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["send", "LED:1", "--device", DEVICE])
    assert result.exit_code == 1
    assert "Could not open command channel" in result.stderr
    assert scripted_radio.named("write") == []


def test_monitor_connects_and_disconnects(monkeypatch, scripted_radio) -> None:
    _patch_client(monkeypatch, scripted_radio)
    result = runner.invoke(cli.app, ["monitor", "--device", DEVICE, "--seconds", "0.01"])
    assert result.exit_code == 0
    assert f"Connected to {DEVICE}" in result.stdout
    assert scripted_radio.named("disconnect")
