"""Label rendering and atomic publishing of the feature file."""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from npufd.core.errors import CollectionCancelledError, PublishError
from npufd.core.model import Features

LABEL_PREFIX = "rebellions.ai"
EXPIRY_AFTER = timedelta(hours=1)
FILE_MODE = 0o644

LOGGER = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def render_labels(features: Features, expiry: datetime | None = None) -> str:
    """Serialize features as node-feature-discovery `key=value` lines."""
    values: list[tuple[str, object | None]] = [
        ("npu.present", "true" if features.npu_present else "false"),
        ("npu.count", features.npu_count),
        ("npu.family", features.npu_family.value if features.npu_family else None),
        ("npu.product", features.npu_product),
        ("driver-version.full", features.driver_version_full),
        ("driver-version.major", features.driver_version_major),
        ("driver-version.minor", features.driver_version_minor),
        ("driver-version.patch", features.driver_version_patch),
        ("driver-version.revision", features.driver_version_revision),
    ]

    lines: list[str] = []
    if expiry is not None:
        lines.append(f"# +expiry-time={expiry.isoformat(timespec='seconds')}")
    lines.extend(f"{LABEL_PREFIX}/{key}={value}" for key, value in values if value is not None)
    return "".join(f"{line}\n" for line in lines)


class FilePublisher:
    def __init__(
        self,
        output_file: Path,
        *,
        no_timestamp: bool = False,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.output_file = Path(output_file)
        self.no_timestamp = no_timestamp
        self._clock = clock

    def render(self, features: Features) -> str:
        expiry = None if self.no_timestamp else self._clock() + EXPIRY_AFTER
        return render_labels(features, expiry=expiry)

    @property
    def temp_path(self) -> Path:
        return self.output_file.parent / f".{self.output_file.name}"

    def save(self, features: Features, cancel: threading.Event | None = None) -> None:
        """Write the labels to a hidden sibling file and rename it over the target.

        Readers of the target only ever see a complete previous or new file.
        The parent directory must already exist.
        """
        text = self.render(features)

        directory = self.output_file.parent
        if not self.output_file.name or not directory.is_dir():
            raise PublishError(f"Output directory {directory} does not exist for {self.output_file}")

        temp_path = self.temp_path
        try:
            with temp_path.open("w", encoding="ascii") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(temp_path, FILE_MODE)
        except (OSError, UnicodeEncodeError) as exc:
            _discard(temp_path)
            raise PublishError(f"Writing temp feature file {temp_path} failed: {exc}") from exc

        if cancel is not None and cancel.is_set():
            _discard(temp_path)
            raise CollectionCancelledError("publishing cancelled before rename")

        try:
            os.replace(temp_path, self.output_file)
        except OSError as exc:
            _discard(temp_path)
            raise PublishError(f"Publishing feature file {self.output_file} failed: {exc}") from exc

        LOGGER.debug("Features saved to %s:\n%s", self.output_file, text)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("Could not remove temp feature file %s: %s", path, exc)
