"""Stable public API for building tooling on top of restate.

This module is the supported integration surface for third-party callers
that want to drive devices without going through the HTTP server.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from restate.core.consensus import ToggleDecision
from restate.core.device import DeviceHandle
from restate.core.endpoints import Behavior, EndpointDescriptor
from restate.core.errors import (
    AllTargetsFailedError,
    ClientError,
    ConfigError,
    FamilyLoadError,
    FamilyValidationError,
    InternalError,
    InvalidValueError,
    MalformedResponseError,
    RestateError,
    TargetSelectionError,
    TransportError,
    TransportTimeoutError,
    TransportUnreachableError,
    UnknownCodeError,
    VendorRejectedError,
)
from restate.core.model import DeviceFamily, DispatchResult, InvokeResult, NamedStatus
from restate.core.service import GatewayService
from restate.transports.base import Transport
from restate.transports.signed_http import SignedHTTPTransport

__all__ = [
    "RestateError",
    "ConfigError",
    "FamilyLoadError",
    "FamilyValidationError",
    "ClientError",
    "UnknownCodeError",
    "InvalidValueError",
    "TargetSelectionError",
    "TransportError",
    "TransportTimeoutError",
    "TransportUnreachableError",
    "VendorRejectedError",
    "MalformedResponseError",
    "InternalError",
    "AllTargetsFailedError",
    "Behavior",
    "EndpointDescriptor",
    "DeviceFamily",
    "DeviceHandle",
    "DispatchResult",
    "InvokeResult",
    "NamedStatus",
    "ToggleDecision",
    "Transport",
    "SignedHTTPTransport",
    "Client",
]


class Client:
    """Public client for the gateway core.

    A `Client` loads the family tables and the device configuration once and
    then invokes codes on single devices or groups of devices.
    """

    def __init__(
        self,
        config: str | Path | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        self._service = GatewayService(config, transport=transport)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def api_version(self) -> str:
        return self._service.api_version

    def list_families(self) -> list[DeviceFamily]:
        return self._service.list_families()

    def list_devices(self, family: str) -> list[str]:
        return self._service.device_names(family)

    def list_codes(self, family: str, name: str) -> list[str]:
        return self._service.device_codes(family, name)

    def invoke(
        self,
        family: str,
        code: str,
        value: str | None = None,
        *,
        devices: list[str],
    ) -> InvokeResult:
        return self._service.invoke(family, devices, code, value)

    def invoke_device(self, family: str, name: str, code: str, value: str | None = None) -> Any:
        return self._service.invoke_device(family, name, code, value)

    def toggle(self, family: str, devices: list[str]) -> ToggleDecision:
        """Flip a group of devices towards the opposite of their majority state."""
        return self._service.toggle(family, devices)

    def close(self) -> None:
        self._service.close()
