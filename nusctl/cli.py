"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import typer

from nusctl.api import Client
from nusctl.core.config import load_config
from nusctl.core.errors import DeviceNotFoundError, NusctlError, WaitTimeoutError
from nusctl.core.model import ControllerState, Phase

app = typer.Typer(help="Send text commands to a BLE UART-style peripheral and read its status")


def _build_client(config_path: Path | None) -> Client:
    return Client(config=load_config(config_path))


def _wait_ready(client: Client) -> None:
    client.wait_for(lambda s: s.radio_ready, client.config.timeout_s, description="Bluetooth adapter")


def _connect(client: Client, device: str) -> None:
    _wait_ready(client)
    client.start_scan()
    try:
        client.wait_for(
            lambda s: any(d.identifier.lower() == device.lower() for d in s.devices),
            client.config.scan_seconds,
            description=f"device {device}",
        )
    except WaitTimeoutError:
        raise DeviceNotFoundError(f"Device {device} was not found while scanning") from None

    target = next(d for d in client.state.devices if d.identifier.lower() == device.lower())
    client.connect(target)
    state = client.wait_for(
        lambda s: s.phase in (Phase.READY, Phase.STALLED) or (s.target is None and not s.scanning),
        client.config.timeout_s,
        description=f"connection to {device}",
    )
    if state.phase is not Phase.READY:
        detail = state.last_error or "command characteristic not available"
        raise NusctlError(f"Could not open command channel to {device}: {detail}")


def _print_status_updates(client: Client, seconds: float) -> None:
    last_status: list[str | None] = [None]

    def _on_state(state: ControllerState) -> None:
        if state.status_text != last_status[0]:
            last_status[0] = state.status_text
            typer.echo(f"status: {state.status_text}")

    unsubscribe = client.subscribe(_on_state)
    try:
        time.sleep(seconds)
    finally:
        unsubscribe()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(None, "--config", help="Path to a config YAML file"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.obj = {"config": config}


@app.command("scan")
def scan(
    ctx: typer.Context,
    seconds: float | None = typer.Option(None, "--seconds", help="Scan duration"),
) -> None:
    """List peripherals advertising the command service."""
    try:
        with _build_client(ctx.obj["config"]) as client:
            _wait_ready(client)
            client.start_scan()
            time.sleep(seconds if seconds is not None else client.config.scan_seconds)
            client.stop_scan()
            devices = client.state.devices
            if not devices:
                typer.echo("No devices found")
                return
            for device in devices:
                typer.echo(f"{device.identifier} {device.name} RSSI {device.rssi}")
    except NusctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("send")
def send(
    ctx: typer.Context,
    text: str,
    device: str = typer.Option(..., "--device", help="Device identifier (address or UUID)"),
    listen: float = typer.Option(0.0, "--listen", help="Seconds to print status updates after sending"),
) -> None:
    """Connect to DEVICE, write TEXT to the command characteristic, and disconnect."""
    try:
        with _build_client(ctx.obj["config"]) as client:
            _connect(client, device)
            client.send(text)
            typer.echo(f"Sent {text!r} to {device} payload={text.encode('utf-8', 'replace').hex()}")
            if listen > 0:
                _print_status_updates(client, listen)
            client.disconnect()
    except NusctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("monitor")
def monitor(
    ctx: typer.Context,
    device: str = typer.Option(..., "--device", help="Device identifier (address or UUID)"),
    seconds: float = typer.Option(30.0, "--seconds", help="How long to listen"),
) -> None:
    """Connect to DEVICE and print status notifications."""
    try:
        with _build_client(ctx.obj["config"]) as client:
            _connect(client, device)
            typer.echo(f"Connected to {device}")
            _print_status_updates(client, seconds)
            client.disconnect()
    except NusctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
