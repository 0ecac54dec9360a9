"""Service layer used by the HTTP surface, the CLI and the public client."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from restate.core.config_loader import load_devices, load_families
from restate.core.consensus import STATUS_CODE, TOGGLE_CODE, ToggleDecision, resolve_toggle
from restate.core.device import DeviceHandle
from restate.core.dispatcher import dispatch_many, unique_targets
from restate.core.endpoints import Behavior
from restate.core.errors import (
    AllTargetsFailedError,
    InvalidValueError,
    TargetSelectionError,
    UnknownCodeError,
)
from restate.core.model import DeviceFamily, DispatchResult, InvokeResult, NamedStatus
from restate.transports.base import Transport
from restate.transports.signed_http import SignedHTTPTransport

FADE_VALUE = "-1"
LOGGER = logging.getLogger(__name__)


class GatewayService:
    def __init__(
        self,
        config: str | Path | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        self.transport = transport or SignedHTTPTransport()
        loaded_families = load_families()
        self.families: dict[str, DeviceFamily] = loaded_families.families
        loaded_devices = load_devices(self.families, self.transport, config)
        self.api_version = loaded_devices.api_version
        self.devices: dict[str, dict[str, DeviceHandle]] = loaded_devices.devices
        self.load_warnings = loaded_families.warnings + loaded_devices.warnings

    def list_families(self) -> list[DeviceFamily]:
        return sorted(
            (self.families[family_id] for family_id in self.devices if self.devices[family_id]),
            key=lambda f: f.route,
        )

    def family(self, family: str) -> DeviceFamily:
        """Look a family up by id or by its route segment."""
        if family in self.families and family in self.devices:
            return self.families[family]
        for candidate in self.list_families():
            if candidate.route == family:
                return candidate
        raise TargetSelectionError(f"Unknown device family '{family}'")

    def device_names(self, family: str) -> list[str]:
        return sorted(self.devices.get(self.family(family).id, {}))

    def device(self, family: str, name: str) -> DeviceHandle:
        handle = self.devices.get(self.family(family).id, {}).get(name)
        if handle is None:
            raise TargetSelectionError(f"Invalid Parameter: hosts (Device '{name}' does not exist)")
        return handle

    def device_codes(self, family: str, name: str) -> list[str]:
        return self.device(family, name).codes()

    def resolve_targets(self, family: str, names: Sequence[str]) -> list[DeviceHandle]:
        cleaned = [name.strip() for name in names if name and name.strip()]
        if not cleaned:
            raise TargetSelectionError("Invalid Parameter: hosts")
        return unique_targets([self.device(family, name) for name in cleaned])

    def invoke(
        self,
        family: str,
        targets: Sequence[str],
        code: str,
        value: str | None = None,
    ) -> InvokeResult:
        handles = self.resolve_targets(family, targets)
        behavior, value = self._check(handles, code, value)
        LOGGER.debug("Invoking %s=%s on %s", code, value, ", ".join(h.name for h in handles))

        if behavior is Behavior.STATUS:
            result = dispatch_many(handles, code, None)
        elif behavior is Behavior.TOGGLE:
            result = self._toggle(handles, value)
        elif behavior is Behavior.FADE:
            result = self._fade(handles, code)
        elif behavior is Behavior.NUMERIC:
            if value is None:
                raise InvalidValueError("Invalid Parameter: value")
            result = dispatch_many(handles, code, value)
        else:
            result = dispatch_many(handles, code, value)

        if result.all_failed:
            raise AllTargetsFailedError(f"All devices failed '{code}'")
        return InvokeResult(
            succeeded=tuple(NamedStatus(name=o.device_name, status=o.payload) for o in result.succeeded),
            failed=tuple(result.failed),
        )

    def invoke_device(self, family: str, name: str, code: str, value: str | None = None) -> Any:
        """Single-device route: returns the device status, or ``None`` for SET calls."""
        result = self.invoke(family, [name], code, value)
        status = result.succeeded[0].status
        return None if status == "OK" else status

    def toggle(self, family: str, targets: Sequence[str]) -> ToggleDecision:
        """Flip a group of devices towards the opposite of their majority state."""
        handles = self.resolve_targets(family, targets)
        self._check(handles, STATUS_CODE, None)
        self._check(handles, TOGGLE_CODE, None)
        return resolve_toggle(handles)

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def _check(
        self,
        handles: Sequence[DeviceHandle],
        code: str,
        value: str | None,
    ) -> tuple[Behavior, str | None]:
        if not handles:
            raise TargetSelectionError("Invalid Parameter: hosts")
        endpoints = []
        for handle in handles:
            endpoint = handle.endpoints.get(code)
            if endpoint is None:
                raise UnknownCodeError(f"Invalid Parameter for device '{handle.name}': code")
            endpoints.append(endpoint)

        behavior = endpoints[0].behavior
        canonical: str | None = None
        if behavior is not Behavior.STATUS:
            for endpoint in endpoints:
                canonical = endpoint.validate(value)
        if behavior is Behavior.TOGGLE and canonical not in {None, "0", "1"}:
            raise InvalidValueError("Invalid Parameter: value (expected 0 or 1)")
        return behavior, canonical

    def _toggle(self, handles: Sequence[DeviceHandle], value: str | None) -> DispatchResult:
        if value is not None:
            return dispatch_many(handles, TOGGLE_CODE, value)
        return resolve_toggle(handles).result

    def _fade(self, handles: Sequence[DeviceHandle], code: str) -> DispatchResult:
        switched_off = dispatch_many(handles, TOGGLE_CODE, "0")
        if switched_off.all_failed:
            raise AllTargetsFailedError("All devices failed to switch off before fading")
        survivors = [h for h in handles if h.name not in set(switched_off.failed)]
        faded = dispatch_many(survivors, code, FADE_VALUE)
        return DispatchResult(
            outcomes=faded.outcomes + tuple(o for o in switched_off.outcomes if not o.succeeded)
        )
