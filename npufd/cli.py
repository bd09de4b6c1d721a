"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path

import typer

from npufd.api import build_collector
from npufd.core.agent import Agent
from npufd.core.config import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_DAEMON_URL,
    DEFAULT_OUTPUT_FILE,
    DEFAULT_SLEEP_INTERVAL_S,
    ENV_PREFIX,
    MAX_SLEEP_INTERVAL_S,
    MIN_SLEEP_INTERVAL_S,
    Config,
)
from npufd.core.errors import NpufdError

app = typer.Typer(help="Generate Rebellions NPU labels for node-feature-discovery")

LOGGER = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_STOP_SIGNALS = ("SIGINT", "SIGTERM", "SIGQUIT")

DaemonUrlOption = typer.Option(
    DEFAULT_DAEMON_URL,
    "--rbln-daemon-url",
    envvar=f"{ENV_PREFIX}RBLN_DAEMON_URL",
    help="Endpoint of the rbln-daemon gRPC server",
)
CatalogOption = typer.Option(
    None,
    "--device-catalog",
    envvar=f"{ENV_PREFIX}DEVICE_CATALOG",
    help="Extra YAML device catalog merged over the packaged one",
)
ConnectTimeoutOption = typer.Option(
    DEFAULT_CONNECT_TIMEOUT_S,
    "--connect-timeout",
    envvar=f"{ENV_PREFIX}CONNECT_TIMEOUT",
    help="Seconds to wait for the daemon connection",
)
LogLevelOption = typer.Option(
    "info",
    "--log-level",
    envvar=f"{ENV_PREFIX}LOG_LEVEL",
    help="Logging level (debug, info, warning, error)",
)


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level '{level}'", param_hint="--log-level")
    logging.basicConfig(level=numeric, format=_LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z", force=True)


def _install_stop_handlers(stop: threading.Event) -> None:
    def _handler(signum: int, _frame: object) -> None:
        LOGGER.info("Received %s, stopping", signal.Signals(signum).name)
        stop.set()

    for name in _STOP_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, _handler)


@app.command("run")
def run_agent(
    daemon_url: str = DaemonUrlOption,
    output_file: Path = typer.Option(
        DEFAULT_OUTPUT_FILE,
        "--output-file",
        "-o",
        envvar=f"{ENV_PREFIX}OUTPUT_FILE",
        help="Path to output file",
    ),
    sleep_interval: int = typer.Option(
        DEFAULT_SLEEP_INTERVAL_S,
        "--sleep-interval",
        envvar=f"{ENV_PREFIX}SLEEP_INTERVAL",
        help=f"Time to sleep between labeling (min: {MIN_SLEEP_INTERVAL_S}s, max: {MAX_SLEEP_INTERVAL_S}s)",
    ),
    oneshot: bool = typer.Option(
        False,
        "--oneshot",
        envvar=f"{ENV_PREFIX}ONESHOT",
        help="Label once and exit",
    ),
    no_timestamp: bool = typer.Option(
        False,
        "--no-timestamp",
        envvar=f"{ENV_PREFIX}NO_TIMESTAMP",
        help="Skip writing expiry timestamp to labels",
    ),
    device_catalog: Path | None = CatalogOption,
    connect_timeout: float = ConnectTimeoutOption,
    log_level: str = LogLevelOption,
) -> None:
    """Collect NPU features and publish them to the label file."""
    _configure_logging(log_level)
    try:
        config = Config.build(
            daemon_url=daemon_url,
            output_file=output_file,
            sleep_interval_s=sleep_interval,
            oneshot=oneshot,
            no_timestamp=no_timestamp,
            device_catalog=device_catalog,
            connect_timeout_s=connect_timeout,
        )
        LOGGER.info("Starting npufd with %s", config)
        agent = Agent(build_collector(config), sleep_interval_s=config.sleep_interval_s)

        stop = threading.Event()
        _install_stop_handlers(stop)
        if config.oneshot:
            agent.run_once(stop)
        else:
            agent.run_forever(stop)
    except NpufdError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("labels")
def show_labels(
    daemon_url: str = DaemonUrlOption,
    no_timestamp: bool = typer.Option(
        True,
        "--no-timestamp/--timestamp",
        help="Include or skip the expiry timestamp line",
    ),
    device_catalog: Path | None = CatalogOption,
    connect_timeout: float = ConnectTimeoutOption,
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        envvar=f"{ENV_PREFIX}LOG_LEVEL",
        help="Logging level (debug, info, warning, error)",
    ),
) -> None:
    """Collect NPU features and print the labels without writing any file."""
    _configure_logging(log_level)
    try:
        config = Config.build(
            daemon_url=daemon_url,
            no_timestamp=no_timestamp,
            device_catalog=device_catalog,
            connect_timeout_s=connect_timeout,
        )
        collector = build_collector(config)
        result = collector.collect()
        typer.echo(collector.publisher.render(result.features), nl=False)
        typer.echo(f"source={result.source} outcome={result.outcome.value}", err=True)
    except NpufdError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
