"""Feature collection: daemon first, sysfs as the fallback source."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from npufd.core.catalog import DeviceCatalog
from npufd.core.errors import (
    CatalogError,
    CollectionCancelledError,
    MalformedVersionError,
    TransportError,
)
from npufd.core.model import CollectionResult, Features, Outcome
from npufd.core.publisher import FilePublisher
from npufd.core.version import parse_driver_version
from npufd.sources.sysfs import SysfsScanner
from npufd.transports.base import DaemonConnector

LOGGER = logging.getLogger(__name__)

SOURCE_DAEMON = "daemon"
SOURCE_SYSFS = "sysfs"

# Errors that end the daemon attempt and send the cycle to sysfs.
_FALLBACK_ERRORS = (TransportError, CatalogError, MalformedVersionError)


class FeaturesCollector:
    """Builds a `Features` record per cycle and hands it to the publisher.

    The daemon is asked first. Its failures (unreachable, RPC errors, device
    ids or version strings it reports that cannot be interpreted) switch the
    cycle to sysfs, which is the last resort: any error there fails the cycle.
    A daemon answer with zero devices, or devices without a version, is final.
    """

    def __init__(
        self,
        *,
        connect_daemon: DaemonConnector,
        catalog: DeviceCatalog,
        publisher: FilePublisher,
        scanner: SysfsScanner | None = None,
    ) -> None:
        self._connect_daemon = connect_daemon
        self._catalog = catalog
        self._publisher = publisher
        self._scanner = scanner or SysfsScanner()

    @property
    def publisher(self) -> FilePublisher:
        return self._publisher

    def collect_once(self, cancel: threading.Event | None = None) -> CollectionResult:
        result = self.collect(cancel)
        _check_cancelled(cancel)
        self._publisher.save(result.features, cancel=cancel)
        LOGGER.info(
            "Published features from %s (%s) to %s",
            result.source,
            result.outcome.value,
            self._publisher.output_file,
        )
        return result

    def collect(self, cancel: threading.Event | None = None) -> CollectionResult:
        _check_cancelled(cancel)
        try:
            return self._collect_from_daemon(cancel)
        except _FALLBACK_ERRORS as exc:
            if isinstance(exc, TransportError):
                LOGGER.debug("Failed to collect features from daemon, falling back to sysfs: %s", exc)
            else:
                LOGGER.warning("Daemon reported unusable data, falling back to sysfs: %s", exc)

        _check_cancelled(cancel)
        return self._collect_from_sysfs()

    def _collect_from_daemon(self, cancel: threading.Event | None) -> CollectionResult:
        with self._connect_daemon(cancel) as client:
            devices = client.serviceable_devices()
            _check_cancelled(cancel)
            if not devices:
                return CollectionResult(SOURCE_DAEMON, Outcome.ABSENT, Features())

            # Heterogeneous NPUs on one node are not expected; the first device
            # stands for all of them.
            first = devices[0]
            detected = self._detected(first.dev_id, len(devices))

            try:
                raw_version = client.version(first)
            except TransportError as exc:
                LOGGER.debug("Failed to fetch driver version from daemon: %s", exc)
                return CollectionResult(SOURCE_DAEMON, Outcome.PARTIAL, detected)

        driver_version = parse_driver_version(raw_version)
        return CollectionResult(SOURCE_DAEMON, Outcome.FULL, replace(detected, driver_version=driver_version))

    def _collect_from_sysfs(self) -> CollectionResult:
        devices = self._scanner.discover_devices()
        features = self._detected(devices[0].device_id, len(devices)) if devices else Features()

        raw_version = self._scanner.read_driver_version()
        if raw_version is None:
            outcome = Outcome.PARTIAL if devices else Outcome.ABSENT
            return CollectionResult(SOURCE_SYSFS, outcome, features)

        driver_version = parse_driver_version(raw_version)
        return CollectionResult(SOURCE_SYSFS, Outcome.FULL, replace(features, driver_version=driver_version))

    def _detected(self, device_id: str, count: int) -> Features:
        product = self._catalog.product_from_device_id(device_id)
        return Features(
            npu_present=True,
            npu_count=count,
            npu_family=product.family(),
            npu_product=product.feature_label(),
        )


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise CollectionCancelledError("collection cancelled")
