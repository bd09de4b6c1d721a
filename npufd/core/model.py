"""Core data models used across sources, collector, and publisher."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from npufd.core.errors import UnknownFamilyError


class DeviceFamily(str, Enum):
    ATOM = "ATOM"
    REBEL = "REBEL"


_FAMILY_PREFIXES = {
    "CA": DeviceFamily.ATOM,
    "CR": DeviceFamily.REBEL,
}


@dataclass(frozen=True)
class Device:
    device_id: str


@dataclass(frozen=True)
class DeviceProduct:
    code: str

    def feature_label(self) -> str:
        return f"RBLN-{self.code}"

    def family(self) -> DeviceFamily:
        family = _FAMILY_PREFIXES.get(self.code[:2])
        if family is None:
            raise UnknownFamilyError(self.code)
        return family


@dataclass(frozen=True)
class DriverVersion:
    full: str
    major: str
    minor: str
    patch: str
    revision: str | None = None


@dataclass(frozen=True)
class Features:
    """Label values published for one collection cycle.

    A default-constructed record means "no device found". Count, product and
    family travel together with `npu_present`; version components are grouped
    in `driver_version` so they are either all known or all absent.
    """

    npu_present: bool = False
    npu_count: int | None = None
    npu_family: DeviceFamily | None = None
    npu_product: str | None = None
    driver_version: DriverVersion | None = None

    def __post_init__(self) -> None:
        device_fields = (self.npu_count, self.npu_family, self.npu_product)
        if self.npu_present and any(value is None for value in device_fields):
            raise ValueError("npu_count, npu_family and npu_product are required when npu_present is set")
        if not self.npu_present and any(value is not None for value in device_fields):
            raise ValueError("npu_count, npu_family and npu_product must be absent when npu_present is unset")

    @property
    def driver_version_full(self) -> str | None:
        return self.driver_version.full if self.driver_version else None

    @property
    def driver_version_major(self) -> str | None:
        return self.driver_version.major if self.driver_version else None

    @property
    def driver_version_minor(self) -> str | None:
        return self.driver_version.minor if self.driver_version else None

    @property
    def driver_version_patch(self) -> str | None:
        return self.driver_version.patch if self.driver_version else None

    @property
    def driver_version_revision(self) -> str | None:
        return self.driver_version.revision if self.driver_version else None


class Outcome(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    ABSENT = "absent"


@dataclass(frozen=True)
class CollectionResult:
    source: str
    outcome: Outcome
    features: Features
