"""Daemon client interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from threading import Event
from typing import Callable, Protocol


class DaemonDevice(Protocol):
    dev_id: str


class DaemonClient(Protocol):
    def serviceable_devices(self) -> Sequence[DaemonDevice]:
        """Return devices the daemon considers serviceable, in daemon order."""

    def version(self, device: DaemonDevice) -> str:
        """Return the raw driver version string reported for a device."""


DaemonConnector = Callable[[Event | None], AbstractContextManager[DaemonClient]]
