"""Programmatic entry points for NPU feature discovery.

Re-exports the models and errors callers need to inspect a collection, and
wires a collector from a `Config` the same way `npufd run` does. Sources can be
replaced, so scripts can collect labels from a different daemon or sysfs root.
"""

from __future__ import annotations

from npufd.core.catalog import DeviceCatalog, load_catalog
from npufd.core.collector import FeaturesCollector
from npufd.core.config import Config
from npufd.core.errors import (
    CatalogError,
    CatalogLoadError,
    CatalogValidationError,
    CollectionCancelledError,
    ConfigError,
    MalformedVersionError,
    NpufdError,
    PublishError,
    SysfsIOError,
    TransportConnectError,
    TransportError,
    TransportRPCError,
    UnknownDeviceError,
    UnknownFamilyError,
)
from npufd.core.model import (
    CollectionResult,
    Device,
    DeviceFamily,
    DeviceProduct,
    DriverVersion,
    Features,
    Outcome,
)
from npufd.core.publisher import FilePublisher, render_labels
from npufd.core.version import parse_driver_version
from npufd.sources.sysfs import SysfsScanner
from npufd.transports.base import DaemonClient, DaemonConnector
from npufd.transports.grpc_daemon import daemon_connector

__all__ = [
    "NpufdError",
    "ConfigError",
    "CatalogError",
    "CatalogLoadError",
    "CatalogValidationError",
    "UnknownDeviceError",
    "UnknownFamilyError",
    "MalformedVersionError",
    "TransportError",
    "TransportConnectError",
    "TransportRPCError",
    "SysfsIOError",
    "PublishError",
    "CollectionCancelledError",
    "CollectionResult",
    "Device",
    "DeviceFamily",
    "DeviceProduct",
    "DriverVersion",
    "Features",
    "Outcome",
    "Config",
    "DeviceCatalog",
    "DaemonClient",
    "DaemonConnector",
    "SysfsScanner",
    "FilePublisher",
    "load_catalog",
    "parse_driver_version",
    "render_labels",
    "build_collector",
    "Client",
]


def build_collector(
    config: Config,
    *,
    connect_daemon: DaemonConnector | None = None,
    scanner: SysfsScanner | None = None,
) -> FeaturesCollector:
    """Wire a collector from configuration; sources can be swapped for tests or tooling."""
    return FeaturesCollector(
        connect_daemon=connect_daemon
        or daemon_connector(config.daemon_url, connect_timeout_s=config.connect_timeout_s),
        catalog=load_catalog(config.device_catalog),
        publisher=FilePublisher(config.output_file, no_timestamp=config.no_timestamp),
        scanner=scanner,
    )


class Client:
    """Public client for one-off feature collection.

    A `Client` wraps catalog loading, daemon/sysfs collection and label
    publishing behind a stable API for scripts and other agents.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        connect_daemon: DaemonConnector | None = None,
        scanner: SysfsScanner | None = None,
    ) -> None:
        self.config = config or Config()
        self._collector = build_collector(self.config, connect_daemon=connect_daemon, scanner=scanner)

    def collect(self) -> CollectionResult:
        """Collect features without touching the output file."""
        return self._collector.collect()

    def collect_once(self) -> CollectionResult:
        """Collect features and publish them to the configured output file."""
        return self._collector.collect_once()
