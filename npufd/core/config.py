"""Validated agent configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from npufd.core.errors import ConfigError

MIN_SLEEP_INTERVAL_S = 10
MAX_SLEEP_INTERVAL_S = 3600

DEFAULT_DAEMON_URL = "127.0.0.1:50051"
DEFAULT_OUTPUT_FILE = Path("/etc/kubernetes/node-feature-discovery/features.d/rbln-features")
DEFAULT_SLEEP_INTERVAL_S = 60
DEFAULT_CONNECT_TIMEOUT_S = 10.0

ENV_PREFIX = "RBLN_NPU_FEATURE_DISCOVERY_"


@dataclass(frozen=True)
class Config:
    daemon_url: str = DEFAULT_DAEMON_URL
    output_file: Path = DEFAULT_OUTPUT_FILE
    sleep_interval_s: int = DEFAULT_SLEEP_INTERVAL_S
    oneshot: bool = False
    no_timestamp: bool = False
    device_catalog: Path | None = None
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S

    @classmethod
    def build(
        cls,
        *,
        daemon_url: str = DEFAULT_DAEMON_URL,
        output_file: Path | str = DEFAULT_OUTPUT_FILE,
        sleep_interval_s: int = DEFAULT_SLEEP_INTERVAL_S,
        oneshot: bool = False,
        no_timestamp: bool = False,
        device_catalog: Path | str | None = None,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ) -> Config:
        if not MIN_SLEEP_INTERVAL_S <= sleep_interval_s <= MAX_SLEEP_INTERVAL_S:
            raise ConfigError(
                f"sleep-interval must be {MIN_SLEEP_INTERVAL_S}-{MAX_SLEEP_INTERVAL_S} seconds"
            )
        if connect_timeout_s <= 0:
            raise ConfigError("connect-timeout must be greater than zero")
        if not str(output_file).strip():
            raise ConfigError("output-file must not be empty")

        return cls(
            daemon_url=strip_scheme(daemon_url.strip()),
            output_file=Path(output_file),
            sleep_interval_s=sleep_interval_s,
            oneshot=oneshot,
            no_timestamp=no_timestamp,
            device_catalog=Path(device_catalog) if device_catalog else None,
            connect_timeout_s=connect_timeout_s,
        )


def strip_scheme(address: str) -> str:
    """Drop an http(s):// prefix; gRPC targets are plain host:port."""
    for scheme in ("http://", "https://"):
        if address.startswith(scheme):
            return address[len(scheme) :]
    return address
