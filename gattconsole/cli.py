"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Any

import typer
import yaml

from gattconsole.api import Console
from gattconsole.core.config_loader import load_config
from gattconsole.core.errors import GattConsoleError
from gattconsole.core.model import SessionConfig
from gattconsole.core.output import ConsoleOutput
from gattconsole.transports.ble_gatt import BleakTransport

app = typer.Typer(help="Interactive and scriptable BLE GATT console")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{level_name}'", param_hint="--log-level")
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _load(config: Path | None) -> SessionConfig:
    loaded = load_config(config)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded.config


def _install_interrupt_handler(console: Console) -> Any:
    def _on_sigint(signum: int, frame: Any) -> None:
        if not console.interrupt():
            raise KeyboardInterrupt

    return signal.signal(signal.SIGINT, _on_sigint)


def _config_document(config: SessionConfig) -> dict[str, Any]:
    return {
        "timeout_s": int(config.timeout_s) if config.timeout_s.is_integer() else config.timeout_s,
        "send_format": config.send_format.value,
        "receive_formats": [fmt.value for fmt in config.receive_formats],
        "byte_order": config.byte_order.value,
        "write_pause_ms": round(config.write_pause_s * 1000),
        "startup": list(config.startup),
    }


@app.command("run")
def run_console(
    script: Path | None = typer.Option(
        None,
        "--script",
        "-s",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Execute commands from FILE instead of stdin",
    ),
    config: Path | None = typer.Option(None, "--config", help="Configuration file (YAML)"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    """Start the console; exits with the script's exit code."""
    _configure_logging(log_level)
    interactive = script is None and sys.stdin.isatty()
    try:
        session_config = _load(config)
        console = Console(
            BleakTransport(),
            config=session_config,
            out=ConsoleOutput(is_redirected=not interactive),
            interactive=interactive,
        )
        previous = _install_interrupt_handler(console)
        try:
            if console.start():
                if script is not None:
                    with script.open(encoding="utf-8") as stream:
                        console.run(stream)
                else:
                    console.run(sys.stdin)
        finally:
            signal.signal(signal.SIGINT, previous)
            console.close()
    except GattConsoleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    raise typer.Exit(code=console.exit_code)


@app.command("config")
def show_config(
    config: Path | None = typer.Option(None, "--config", help="Configuration file (YAML)"),
) -> None:
    """Print the effective configuration."""
    try:
        loaded = load_config(config)
    except GattConsoleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    typer.echo(f"# source: {loaded.source or '<defaults>'}")
    typer.echo(yaml.safe_dump(_config_document(loaded.config), sort_keys=False), nl=False)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
