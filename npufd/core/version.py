"""Driver version string parsing."""

from __future__ import annotations

import re

from npufd.core.errors import MalformedVersionError
from npufd.core.model import DriverVersion

_REVISION_SEPARATOR_RE = re.compile(r"[-+~]")


def parse_driver_version(raw: str) -> DriverVersion:
    """Split a raw driver version into semver components and revision.

    Only the first of ``-``, ``+`` or ``~`` separates the revision, which is
    kept verbatim. Components are not checked for being numeric and anything
    after the patch component is dropped.
    """
    trimmed = raw.strip()
    semver = trimmed
    revision: str | None = None

    match = _REVISION_SEPARATOR_RE.search(trimmed)
    if match:
        semver = trimmed[: match.start()]
        revision = trimmed[match.end() :]

    parts = semver.split(".")
    if len(parts) < 3:
        raise MalformedVersionError(raw)

    major, minor, patch = parts[:3]
    return DriverVersion(full=semver, major=major, minor=minor, patch=patch, revision=revision)
