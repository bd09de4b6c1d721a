"""gRPC client for the rbln-daemon device management service."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

import grpc

from npufd.core.errors import (
    CollectionCancelledError,
    TransportConnectError,
    TransportRPCError,
)
from npufd.transports import messages
from npufd.transports.base import DaemonConnector, DaemonDevice

DEFAULT_CONNECT_TIMEOUT_S = 10.0
_POLL_INTERVAL_S = 0.1


class GrpcDaemonClient:
    def __init__(
        self,
        channel: grpc.Channel,
        *,
        rpc_timeout_s: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self._rpc_timeout_s = rpc_timeout_s
        self._cancel = cancel
        self._get_device_list = channel.unary_stream(
            f"/{messages.SERVICE}/GetServiceableDeviceList",
            request_serializer=messages.Empty.SerializeToString,
            response_deserializer=messages.Device.FromString,
        )
        self._get_version = channel.unary_unary(
            f"/{messages.SERVICE}/GetVersion",
            request_serializer=messages.Device.SerializeToString,
            response_deserializer=messages.VersionInfo.FromString,
        )

    def serviceable_devices(self) -> list[DaemonDevice]:
        try:
            call = self._get_device_list(messages.Empty(), timeout=self._rpc_timeout_s)
            with _cancel_on(self._cancel, call):
                return list(call)
        except grpc.RpcError as exc:
            self._raise_if_cancelled()
            raise _rpc_error("GetServiceableDeviceList", exc) from exc

    def version(self, device: DaemonDevice) -> str:
        try:
            future = self._get_version.future(device, timeout=self._rpc_timeout_s)
            with _cancel_on(self._cancel, future):
                response = future.result()
        except grpc.FutureCancelledError as exc:
            self._raise_if_cancelled()
            raise TransportRPCError("GetVersion RPC was cancelled") from exc
        except grpc.RpcError as exc:
            self._raise_if_cancelled()
            raise _rpc_error("GetVersion", exc) from exc
        return response.drv_version

    def _raise_if_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise CollectionCancelledError("daemon RPC cancelled")


@contextmanager
def connect(
    endpoint: str,
    *,
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    rpc_timeout_s: float | None = None,
    cancel: threading.Event | None = None,
) -> Iterator[GrpcDaemonClient]:
    """Open a plaintext channel to the daemon, blocking until it is ready.

    The channel is closed when the block exits, including on errors and
    cancellation.
    """
    channel = grpc.insecure_channel(endpoint)
    try:
        _wait_ready(channel, endpoint, connect_timeout_s, cancel)
        yield GrpcDaemonClient(channel, rpc_timeout_s=rpc_timeout_s, cancel=cancel)
    finally:
        channel.close()


def daemon_connector(
    endpoint: str,
    *,
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    rpc_timeout_s: float | None = None,
) -> DaemonConnector:
    def _connect(cancel: threading.Event | None):
        return connect(
            endpoint,
            connect_timeout_s=connect_timeout_s,
            rpc_timeout_s=rpc_timeout_s,
            cancel=cancel,
        )

    return _connect


def _wait_ready(
    channel: grpc.Channel,
    endpoint: str,
    timeout_s: float,
    cancel: threading.Event | None,
) -> None:
    ready = grpc.channel_ready_future(channel)
    deadline = time.monotonic() + timeout_s
    while True:
        remaining = deadline - time.monotonic()
        try:
            ready.result(timeout=max(0.0, min(_POLL_INTERVAL_S, remaining)))
            return
        except grpc.FutureTimeoutError:
            if cancel is not None and cancel.is_set():
                ready.cancel()
                raise CollectionCancelledError(f"connecting to rbln-daemon {endpoint} cancelled") from None
            if remaining <= 0:
                ready.cancel()
                raise TransportConnectError(
                    f"failed to dial rbln-daemon {endpoint}: not ready after {timeout_s:g}s"
                ) from None


@contextmanager
def _cancel_on(cancel: threading.Event | None, call: grpc.Future) -> Iterator[None]:
    """Cancel an in-flight call if the cancel event is set before it finishes."""
    if cancel is None:
        yield
        return

    finished = threading.Event()

    def _watch() -> None:
        while not finished.wait(_POLL_INTERVAL_S):
            if cancel.is_set():
                call.cancel()
                return

    watcher = threading.Thread(target=_watch, name="npufd-rpc-cancel", daemon=True)
    watcher.start()
    try:
        yield
    finally:
        finished.set()
        watcher.join()


def _rpc_error(method: str, exc: grpc.RpcError) -> TransportRPCError:
    code = exc.code() if callable(getattr(exc, "code", None)) else None
    details = exc.details() if callable(getattr(exc, "details", None)) else str(exc)
    code_name = code.name if code is not None else None
    return TransportRPCError(f"failed to {method} RPC: {code_name}: {details}", code=code_name)
