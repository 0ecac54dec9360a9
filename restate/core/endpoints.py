"""Endpoint descriptors: per-code metadata, validation and payload building."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import dataclass
from string import Template

from restate.core.errors import InvalidValueError

METHOD_GET = "GET"
METHOD_SET = "SET"
PLACEHOLDER_VALUE = "0"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)


class Behavior(str, enum.Enum):
    DEFAULT = "default"
    STATUS = "status"
    TOGGLE = "toggle"
    NUMERIC = "numeric"
    FADE = "fade"


@dataclass(frozen=True)
class EndpointDescriptor:
    code: str
    namespace: str
    template: str
    supported_device_types: frozenset[str]
    behavior: Behavior = Behavior.DEFAULT
    min_value: int = 0
    max_value: int = 0
    response: str | None = None
    wrap: bool = False

    @property
    def bounded(self) -> bool:
        return not (self.min_value == 0 and self.max_value == 0)

    def supports(self, device_type: str) -> bool:
        return device_type in self.supported_device_types

    def validate(self, value: str | None) -> str | None:
        """Check a caller-supplied value against this endpoint's bounds.

        Returns the value in canonical decimal form, or ``None`` when it is
        absent or empty; the caller decides what absence means via
        :meth:`resolve_method`.
        """
        if value is None or value == "":
            return None
        text = str(value).strip()
        if not _INTEGER_RE.fullmatch(text):
            raise InvalidValueError(f"Invalid Parameter: value ('{value}' is not an integer)")
        number = int(text)
        if self.bounded and not self.min_value <= number <= self.max_value:
            raise InvalidValueError(
                f"Invalid Parameter: value (Min: {self.min_value}, Max: {self.max_value})"
            )
        return str(number)

    def build_payload(self, ids: tuple[str, ...], value: str) -> str:
        template = Template(self.template)
        fragments = [template.substitute(id=device_id, value=value) for device_id in ids or ("",)]
        joined = ",".join(fragments)
        if self.wrap:
            key = self.namespace.rsplit(".", 1)[-1]
            return f"{{{json.dumps(key)}:[{joined}]}}"
        return joined

    def resolve_method(self, has_value: bool) -> str:
        return METHOD_SET if has_value else METHOD_GET


def find_endpoint(
    endpoints: tuple[EndpointDescriptor, ...] | list[EndpointDescriptor],
    code: str,
    device_type: str,
) -> EndpointDescriptor | None:
    for endpoint in endpoints:
        if endpoint.code == code and endpoint.supports(device_type):
            return endpoint
    return None
