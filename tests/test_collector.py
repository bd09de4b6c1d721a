from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import pytest

from npufd.core.catalog import load_catalog
from npufd.core.collector import FeaturesCollector
from npufd.core.errors import (
    CollectionCancelledError,
    MalformedVersionError,
    PublishError,
    SysfsIOError,
    TransportConnectError,
    TransportRPCError,
    UnknownDeviceError,
)
from npufd.core.model import Device, DeviceFamily, Outcome
from npufd.core.publisher import FilePublisher


@dataclass(frozen=True)
class FakeDevice:
    dev_id: str


class FakeDaemon:
    def __init__(
        self,
        device_ids: tuple[str, ...] = (),
        *,
        version: str = "1.2.3",
        list_error: Exception | None = None,
        version_error: Exception | None = None,
    ) -> None:
        self.devices = [FakeDevice(device_id) for device_id in device_ids]
        self.version_value = version
        self.list_error = list_error
        self.version_error = version_error
        self.version_calls: list[FakeDevice] = []
        self.closed = False

    def serviceable_devices(self) -> list[FakeDevice]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices)

    def version(self, device: FakeDevice) -> str:
        self.version_calls.append(device)
        if self.version_error is not None:
            raise self.version_error
        return self.version_value


def _connector(daemon: FakeDaemon):
    @contextmanager
    def _connect(cancel):
        try:
            yield daemon
        finally:
            daemon.closed = True

    return _connect


def _unreachable(cancel):
    raise TransportConnectError("failed to dial rbln-daemon 127.0.0.1:50051")


class FakeScanner:
    def __init__(
        self,
        device_ids: tuple[str, ...] = (),
        *,
        version: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.devices = [Device(device_id) for device_id in device_ids]
        self.version = version
        self.error = error
        self.calls = 0

    def discover_devices(self) -> list[Device]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.devices)

    def read_driver_version(self) -> str | None:
        return self.version


def _collector(tmp_path: Path, connect, scanner: FakeScanner | None = None) -> FeaturesCollector:
    return FeaturesCollector(
        connect_daemon=connect,
        catalog=load_catalog(),
        publisher=FilePublisher(tmp_path / "rbln-features", no_timestamp=True),
        scanner=scanner or FakeScanner(),
    )


def _labels(tmp_path: Path) -> str:
    return (tmp_path / "rbln-features").read_text(encoding="utf-8")


def test_daemon_with_no_devices_publishes_absent(tmp_path: Path) -> None:
    daemon = FakeDaemon()
    scanner = FakeScanner(("1020",))
    result = _collector(tmp_path, _connector(daemon), scanner).collect_once()

    assert result.source == "daemon"
    assert result.outcome is Outcome.ABSENT
    assert _labels(tmp_path) == "rebellions.ai/npu.present=false\n"
    assert scanner.calls == 0
    assert daemon.closed


def test_daemon_full_collection(tmp_path: Path) -> None:
    daemon = FakeDaemon(("1220", "1220"), version="1.3.73-release+9")
    result = _collector(tmp_path, _connector(daemon)).collect_once()

    assert result.outcome is Outcome.FULL
    assert result.features.npu_count == 2
    assert result.features.npu_family is DeviceFamily.ATOM
    assert daemon.version_calls == [FakeDevice("1220")]
    assert _labels(tmp_path) == (
        "rebellions.ai/npu.present=true\n"
        "rebellions.ai/npu.count=2\n"
        "rebellions.ai/npu.family=ATOM\n"
        "rebellions.ai/npu.product=RBLN-CA22\n"
        "rebellions.ai/driver-version.full=1.3.73\n"
        "rebellions.ai/driver-version.major=1\n"
        "rebellions.ai/driver-version.minor=3\n"
        "rebellions.ai/driver-version.patch=73\n"
        "rebellions.ai/driver-version.revision=release+9\n"
    )


def test_daemon_version_failure_is_partial_success(tmp_path: Path) -> None:
    daemon = FakeDaemon(("1020",), version_error=TransportRPCError("GetVersion failed"))
    scanner = FakeScanner(("1250",), version="9.9.9")
    result = _collector(tmp_path, _connector(daemon), scanner).collect_once()

    assert result.source == "daemon"
    assert result.outcome is Outcome.PARTIAL
    assert result.features.driver_version is None
    assert scanner.calls == 0
    assert "driver-version" not in _labels(tmp_path)


def test_unreachable_daemon_falls_back_to_sysfs(tmp_path: Path) -> None:
    result = _collector(tmp_path, _unreachable, FakeScanner(("1020",))).collect_once()

    assert result.source == "sysfs"
    assert result.outcome is Outcome.PARTIAL
    assert _labels(tmp_path) == (
        "rebellions.ai/npu.present=true\n"
        "rebellions.ai/npu.count=1\n"
        "rebellions.ai/npu.family=ATOM\n"
        "rebellions.ai/npu.product=RBLN-CA02\n"
    )


def test_daemon_rpc_error_falls_back_to_sysfs(tmp_path: Path) -> None:
    daemon = FakeDaemon(list_error=TransportRPCError("UNIMPLEMENTED"))
    scanner = FakeScanner(("1150",), version="1.0.0")
    result = _collector(tmp_path, _connector(daemon), scanner).collect_once()

    assert result.source == "sysfs"
    assert result.outcome is Outcome.FULL
    assert result.features.npu_product == "RBLN-CA15"
    assert result.features.driver_version_full == "1.0.0"
    assert daemon.closed


def test_unknown_daemon_device_falls_back_with_fresh_features(tmp_path: Path) -> None:
    daemon = FakeDaemon(("ffff", "ffff"))
    scanner = FakeScanner()
    result = _collector(tmp_path, _connector(daemon), scanner).collect_once()

    assert daemon.version_calls == []
    assert daemon.closed
    assert scanner.calls == 1
    assert result.source == "sysfs"
    assert result.outcome is Outcome.ABSENT
    assert _labels(tmp_path) == "rebellions.ai/npu.present=false\n"


def test_malformed_daemon_version_falls_back(tmp_path: Path) -> None:
    daemon = FakeDaemon(("1020",), version="1.2")
    scanner = FakeScanner(("1020",), version="1.2.4")
    result = _collector(tmp_path, _connector(daemon), scanner).collect_once()

    assert result.source == "sysfs"
    assert result.features.driver_version_full == "1.2.4"


def test_sysfs_without_devices_still_reads_version(tmp_path: Path) -> None:
    result = _collector(tmp_path, _unreachable, FakeScanner(version="1.2.3~1")).collect_once()

    assert result.features.npu_present is False
    assert result.features.driver_version_revision == "1"


def test_unknown_sysfs_device_fails_cycle(tmp_path: Path) -> None:
    collector = _collector(tmp_path, _unreachable, FakeScanner(("ffff",)))
    with pytest.raises(UnknownDeviceError):
        collector.collect_once()
    assert not (tmp_path / "rbln-features").exists()


def test_malformed_sysfs_version_fails_cycle(tmp_path: Path) -> None:
    collector = _collector(tmp_path, _unreachable, FakeScanner(("1020",), version="1"))
    with pytest.raises(MalformedVersionError):
        collector.collect_once()
    assert not (tmp_path / "rbln-features").exists()


def test_both_sources_failing_keeps_previous_file(tmp_path: Path) -> None:
    target = tmp_path / "rbln-features"
    target.write_text("rebellions.ai/npu.present=false\n", encoding="utf-8")
    before = target.read_bytes()

    collector = _collector(tmp_path, _unreachable, FakeScanner(error=SysfsIOError("vendor unreadable")))
    with pytest.raises(SysfsIOError):
        collector.collect_once()
    assert target.read_bytes() == before


def test_publish_failure_fails_cycle(tmp_path: Path) -> None:
    collector = FeaturesCollector(
        connect_daemon=_connector(FakeDaemon()),
        catalog=load_catalog(),
        publisher=FilePublisher(tmp_path / "missing" / "rbln-features"),
        scanner=FakeScanner(),
    )
    with pytest.raises(PublishError):
        collector.collect_once()


def test_collect_does_not_publish(tmp_path: Path) -> None:
    result = _collector(tmp_path, _connector(FakeDaemon(("1020",)))).collect()
    assert result.outcome is Outcome.FULL
    assert not (tmp_path / "rbln-features").exists()


def test_cancelled_before_start(tmp_path: Path) -> None:
    cancel = threading.Event()
    cancel.set()
    scanner = FakeScanner(("1020",))
    with pytest.raises(CollectionCancelledError):
        _collector(tmp_path, _connector(FakeDaemon()), scanner).collect_once(cancel=cancel)
    assert scanner.calls == 0
    assert not (tmp_path / "rbln-features").exists()


def test_cancelled_during_daemon_attempt_releases_connection(tmp_path: Path) -> None:
    cancel = threading.Event()

    class CancellingDaemon(FakeDaemon):
        def serviceable_devices(self) -> list[FakeDevice]:
            cancel.set()
            return super().serviceable_devices()

    daemon = CancellingDaemon(("1020",))
    scanner = FakeScanner(("1020",))
    with pytest.raises(CollectionCancelledError):
        _collector(tmp_path, _connector(daemon), scanner).collect_once(cancel=cancel)

    assert daemon.closed
    assert scanner.calls == 0
    assert list(tmp_path.iterdir()) == []


def test_unknown_daemon_family_falls_back_to_sysfs(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    extra = tmp_path / "extra.yaml"
    extra.write_text("products:\n  '1f00': XX01\n", encoding="utf-8")
    daemon = FakeDaemon(("1f00",))
    scanner = FakeScanner(("1250",), version="1.3.73")
    collector = FeaturesCollector(
        connect_daemon=_connector(daemon),
        catalog=load_catalog(extra),
        publisher=FilePublisher(tmp_path / "rbln-features", no_timestamp=True),
        scanner=scanner,
    )

    with caplog.at_level(logging.WARNING, logger="npufd.core.collector"):
        result = collector.collect_once()

    assert daemon.version_calls == []
    assert daemon.closed
    assert result.source == "sysfs"
    assert result.outcome is Outcome.FULL
    assert result.features.npu_product == "RBLN-CA25"
    assert "XX01" in caplog.text
