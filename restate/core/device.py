"""Device handles bind one configured device to its endpoints and transport."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from restate.core.endpoints import METHOD_GET, PLACEHOLDER_VALUE, EndpointDescriptor, find_endpoint
from restate.core.errors import UnknownCodeError
from restate.core.responses import normalize
from restate.transports.base import Transport


@dataclass(frozen=True)
class DeviceHandle:
    """A configured device.

    Built once at configuration load and never mutated afterwards, so one
    handle may be invoked from several dispatch threads at the same time.
    """

    name: str
    family: str
    device_type: str
    host: str
    transport: Transport = field(compare=False, repr=False)
    endpoints: dict[str, EndpointDescriptor] = field(default_factory=dict, compare=False)
    ids: tuple[str, ...] = ()
    key: str = ""
    timeout_s: float = 1.0

    @classmethod
    def build(
        cls,
        *,
        name: str,
        family: str,
        device_type: str,
        host: str,
        transport: Transport,
        table: tuple[EndpointDescriptor, ...],
        ids: tuple[str, ...] = (),
        key: str = "",
        timeout_s: float = 1.0,
    ) -> DeviceHandle:
        endpoints: dict[str, EndpointDescriptor] = {}
        for endpoint in table:
            if endpoint.code not in endpoints:
                resolved = find_endpoint(table, endpoint.code, device_type)
                if resolved is not None:
                    endpoints[endpoint.code] = resolved
        return cls(
            name=name,
            family=family,
            device_type=device_type,
            host=host,
            transport=transport,
            endpoints=endpoints,
            ids=ids,
            key=key,
            timeout_s=timeout_s,
        )

    def codes(self) -> list[str]:
        return list(self.endpoints)

    def endpoint(self, code: str) -> EndpointDescriptor:
        endpoint = self.endpoints.get(code)
        if endpoint is None:
            raise UnknownCodeError(f"Invalid Parameter for device '{self.name}': code")
        return endpoint

    def invoke(self, code: str, value: str | None = None) -> Any:
        """Run one call for ``code``.

        Returns ``None`` for SET calls and the normalized state for GET calls.
        Unknown codes and invalid values raise before the transport is used.
        """
        endpoint = self.endpoint(code)
        canonical = endpoint.validate(value)
        method = endpoint.resolve_method(canonical is not None)
        payload = endpoint.build_payload(self.ids, canonical if canonical is not None else PLACEHOLDER_VALUE)

        raw = self.transport.send(
            self.host,
            method=method,
            namespace=endpoint.namespace,
            payload=payload,
            key=self.key,
            timeout_s=self.timeout_s,
        )
        if method != METHOD_GET:
            return None
        return normalize(endpoint.response, raw or {})
