"""Core data models used across loader, dispatcher, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from restate.core.endpoints import EndpointDescriptor


@dataclass(frozen=True)
class DeviceFamily:
    id: str
    name: str
    route: str
    endpoints: tuple[EndpointDescriptor, ...]
    wrap_payload: bool = False
    expand_ids: bool = False
    requires_ids: bool = False

    def device_types(self) -> frozenset[str]:
        types: set[str] = set()
        for endpoint in self.endpoints:
            types.update(endpoint.supported_device_types)
        return frozenset(types)


@dataclass(frozen=True)
class DeviceRecord:
    name: str
    host: str
    device_type: str
    ids: tuple[str, ...] = ()
    key: str = ""
    timeout_ms: int = 1000


@dataclass(frozen=True)
class DispatchOutcome:
    device_name: str
    succeeded: bool
    payload: Any = None


@dataclass(frozen=True)
class DispatchResult:
    outcomes: tuple[DispatchOutcome, ...]

    @property
    def succeeded(self) -> list[DispatchOutcome]:
        return sorted((o for o in self.outcomes if o.succeeded), key=lambda o: o.device_name)

    @property
    def failed(self) -> list[str]:
        return sorted(o.device_name for o in self.outcomes if not o.succeeded)

    @property
    def all_failed(self) -> bool:
        return not any(o.succeeded for o in self.outcomes)


@dataclass(frozen=True)
class NamedStatus:
    name: str
    status: Any


@dataclass(frozen=True)
class InvokeResult:
    succeeded: tuple[NamedStatus, ...]
    failed: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.succeeded:
            data["devices"] = [{"name": s.name, "status": s.status} for s in self.succeeded]
        if self.failed:
            data["errors"] = list(self.failed)
        return data
