"""Domain-specific errors for npufd."""


class NpufdError(Exception):
    """Base error for npufd."""


class ConfigError(NpufdError):
    """Raised when agent configuration is out of bounds."""


class CatalogError(NpufdError):
    """Base error for device catalog lookups and loading."""


class UnknownDeviceError(CatalogError):
    """Raised when a raw device id is not in the catalog."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"unknown device id: {device_id}")
        self.device_id = device_id


class UnknownFamilyError(CatalogError):
    """Raised when a product code has no known family prefix."""

    def __init__(self, product: str) -> None:
        super().__init__(f"unknown product name: {product}")
        self.product = product


class CatalogLoadError(CatalogError):
    """Raised when a catalog file cannot be read."""


class CatalogValidationError(CatalogError):
    """Raised when a catalog file does not conform to schema or semantics."""


class MalformedVersionError(NpufdError):
    """Raised when a driver version string has fewer than three components."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"failed to split semver with dots: {raw!r}")
        self.raw = raw


class TransportError(NpufdError):
    """Base daemon transport error."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class TransportConnectError(TransportError):
    """Raised when the daemon channel cannot be established."""


class TransportRPCError(TransportError):
    """Raised when a daemon RPC fails."""


class SysfsIOError(NpufdError):
    """Raised on unexpected sysfs read failures (not a missing optional file)."""


class PublishError(NpufdError):
    """Raised when the label file cannot be written or renamed."""


class CollectionCancelledError(NpufdError):
    """Raised when a collection cycle is aborted by its cancel event."""
