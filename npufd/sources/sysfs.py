"""Device discovery and driver version lookup through sysfs."""

from __future__ import annotations

import logging
from pathlib import Path

from npufd.core.errors import SysfsIOError
from npufd.core.model import Device

RBLN_VENDOR_ID = "0x1eff"
PCI_DEVICES_PATH = Path("/sys/bus/pci/devices")
RBLN_CLASS_PATH = Path("/sys/class/rebellions")
CANONICAL_DEVICE = "rbln0"
KERNEL_VERSION_ATTR = "kernel_version"

LOGGER = logging.getLogger(__name__)


class SysfsScanner:
    def __init__(
        self,
        *,
        pci_devices_path: Path = PCI_DEVICES_PATH,
        class_path: Path = RBLN_CLASS_PATH,
    ) -> None:
        self.pci_devices_path = Path(pci_devices_path)
        self.class_path = Path(class_path)

    def discover_devices(self) -> list[Device]:
        """Return serviceable NPUs, skipping physical functions with SR-IOV enabled."""
        try:
            entries = sorted(self.pci_devices_path.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise SysfsIOError(f"Could not list {self.pci_devices_path}: {exc}") from exc

        devices: list[Device] = []
        for entry in entries:
            vendor = _read_attr(entry / "vendor", what="vendor")
            if vendor != RBLN_VENDOR_ID:
                continue

            if _sriov_numvfs(entry) != 0:
                LOGGER.debug("Skipping %s: SR-IOV enabled on physical function", entry.name)
                continue

            device_id = _read_attr(entry / "device", what="device id").removeprefix("0x")
            devices.append(Device(device_id=device_id))

        return devices

    def read_driver_version(self) -> str | None:
        """Return the loaded driver's version, or None when no driver exposes it."""
        version_file = self.class_path / CANONICAL_DEVICE / KERNEL_VERSION_ATTR
        try:
            version_file.stat()
        except FileNotFoundError:
            LOGGER.debug("Driver version file %s not found", version_file)
            return None
        except OSError as exc:
            raise SysfsIOError(f"Could not stat {version_file}: {exc}") from exc

        return _read_attr(version_file, what="driver version")


def _read_attr(path: Path, *, what: str) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        raise SysfsIOError(f"Failed to read {what} from {path}: {exc}") from exc


def _sriov_numvfs(entry: Path) -> int:
    # Unreadable or unparsable counts are treated as zero.
    path = entry / "sriov_numvfs"
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except FileNotFoundError:
        return 0
    except (OSError, ValueError) as exc:
        LOGGER.debug("Ignoring unreadable %s: %s", path, exc)
        return 0
