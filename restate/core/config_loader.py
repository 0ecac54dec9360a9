"""Loading and validation of family descriptor tables and device configuration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from restate.core.device import DeviceHandle
from restate.core.endpoints import PLACEHOLDER_VALUE, Behavior, EndpointDescriptor
from restate.core.errors import ConfigError, FamilyLoadError, FamilyValidationError
from restate.core.model import DeviceFamily, DeviceRecord
from restate.core.responses import NORMALIZERS
from restate.transports.base import Transport

CONFIG_ENV = "RESTATE_CONFIG"
DEVICE_TYPE_KEY = "meross"
DEFAULT_TIMEOUT_MS = 1000
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise FamilyValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedFamilies:
    families: dict[str, DeviceFamily]
    warnings: tuple[str, ...]


@dataclass(frozen=True)
class LoadedDevices:
    api_version: str
    devices: dict[str, dict[str, DeviceHandle]]
    warnings: tuple[str, ...]


def _load_schema_validator(name: str) -> Any:
    schema_text = resources.files("restate.schemas").joinpath(name).read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _validate(doc: Any, schema_name: str, source: Path | Traversable | str) -> None:
    validator = _load_schema_validator(schema_name)
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise FamilyValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def _family_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "restate/families", xdg_data / "restate/families"


def _read_yaml(path: Path | Traversable) -> Any:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FamilyLoadError(f"Could not read {path}: {exc}") from exc

    try:
        return yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise FamilyValidationError(f"Invalid YAML in {path}: {exc}") from exc


def _check_template(family_id: str, endpoint: EndpointDescriptor) -> None:
    context = f"{family_id}.{endpoint.code}"
    try:
        payload = endpoint.build_payload(("id",), PLACEHOLDER_VALUE)
    except (KeyError, ValueError) as exc:
        raise FamilyValidationError(
            f"{context}.template may only use the $id and $value placeholders"
        ) from exc
    try:
        json.loads(payload)
    except json.JSONDecodeError as exc:
        raise FamilyValidationError(f"{context}.template does not render to JSON: {exc}") from exc


def _build_family(doc: Any, source: Path | Traversable) -> DeviceFamily:
    _validate(doc, "family.schema.json", source)

    family_id = doc["id"]
    wrap = bool(doc.get("wrapPayload", False))
    endpoints: list[EndpointDescriptor] = []
    claimed: set[tuple[str, str]] = set()

    for raw in doc["endpoints"]:
        response = raw.get("response")
        if response is not None and response not in NORMALIZERS:
            raise FamilyValidationError(
                f"{family_id}.{raw['code']}.response '{response}' is not a known response shape"
            )
        endpoint = EndpointDescriptor(
            code=raw["code"],
            namespace=raw["namespace"],
            template=raw["template"],
            supported_device_types=frozenset(raw["supportedDevices"]),
            behavior=Behavior(raw.get("behavior", Behavior.DEFAULT.value)),
            min_value=int(raw.get("minValue", 0)),
            max_value=int(raw.get("maxValue", 0)),
            response=response,
            wrap=wrap,
        )
        if endpoint.min_value > endpoint.max_value:
            raise FamilyValidationError(f"{family_id}.{endpoint.code} has minValue above maxValue")
        for device_type in endpoint.supported_device_types:
            pair = (endpoint.code, device_type)
            if pair in claimed:
                raise FamilyValidationError(
                    f"{family_id} defines code '{endpoint.code}' twice for device type '{device_type}'"
                )
            claimed.add(pair)
        _check_template(family_id, endpoint)
        endpoints.append(endpoint)

    return DeviceFamily(
        id=family_id,
        name=doc["name"],
        route=doc.get("route", family_id),
        endpoints=tuple(endpoints),
        wrap_payload=wrap,
        expand_ids=bool(doc.get("expandIds", False)),
        requires_ids=bool(doc.get("requiresIds", False)),
    )


def _iter_packaged_family_paths() -> list[Traversable]:
    family_root = resources.files("restate.families")
    return [item for item in family_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_family_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _family_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_families() -> LoadedFamilies:
    families: dict[str, DeviceFamily] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_family_paths(), key=lambda p: p.name):
        family = _build_family(_read_yaml(path), path)
        families[family.id] = family

    for path in _iter_user_family_paths():
        family = _build_family(_read_yaml(path), path)
        if family.id in families:
            warning = f"User family '{family.id}' overrides packaged family"
            LOGGER.warning(warning)
            warnings.append(warning)
        families[family.id] = family

    return LoadedFamilies(families=families, warnings=tuple(warnings))


def config_path(explicit: str | Path | None = None) -> Path:
    if explicit:
        return Path(explicit)
    env_path = os.environ.get(CONFIG_ENV)
    if not env_path:
        raise ConfigError(f"No configuration file given (set {CONFIG_ENV} or pass --config)")
    return Path(env_path)


def _record_from(config: Any) -> DeviceRecord | None:
    if not isinstance(config, dict):
        return None
    name = str(config.get("name") or "").strip()
    host = str(config.get("host") or "").strip()
    device_type = str(config.get("deviceType") or "").strip()
    if not name or not host or not device_type:
        return None
    ids = config.get("ids") or []
    if not isinstance(ids, list):
        ids = [ids]
    try:
        timeout_ms = int(config.get("timeoutMs") or DEFAULT_TIMEOUT_MS)
    except (TypeError, ValueError):
        return None
    return DeviceRecord(
        name=name,
        host=host,
        device_type=device_type,
        ids=tuple(str(i) for i in ids),
        key=str(config.get("key") or ""),
        timeout_ms=timeout_ms,
    )


def _family_for(device_type: str, families: dict[str, DeviceFamily]) -> DeviceFamily | None:
    for family in sorted(families.values(), key=lambda f: f.id):
        if device_type in family.device_types():
            return family
    return None


def _handle(record: DeviceRecord, family: DeviceFamily, transport: Transport) -> DeviceHandle:
    return DeviceHandle.build(
        name=record.name,
        family=family.id,
        device_type=record.device_type,
        host=record.host,
        transport=transport,
        table=family.endpoints,
        ids=record.ids,
        key=record.key,
        timeout_s=record.timeout_ms / 1000.0,
    )


def build_devices(
    doc: Any,
    families: dict[str, DeviceFamily],
    transport: Transport,
    *,
    source: Path | str = "<config>",
) -> LoadedDevices:
    if not isinstance(doc, dict):
        raise ConfigError(f"Configuration {source} must contain a mapping at root")
    _validate(doc, "devices.schema.json", source)

    devices: dict[str, dict[str, DeviceHandle]] = {}
    warnings: list[str] = []

    def _warn(message: str) -> None:
        LOGGER.warning(message)
        warnings.append(message)

    for entry in doc.get("devices") or []:
        if entry.get("type") != DEVICE_TYPE_KEY:
            continue
        record = _record_from(entry.get("config"))
        if record is None:
            _warn("Unable to load device due to missing parameters")
            continue
        family = _family_for(record.device_type, families)
        if family is None:
            _warn(f"Device '{record.name}' has unsupported device type '{record.device_type}'")
            continue
        if family.requires_ids and not record.ids:
            _warn(f"Device '{record.name}' needs at least one id for family '{family.id}'")
            continue
        members = devices.setdefault(family.id, {})
        if record.name in members:
            _warn(f"Duplicate device name '{record.name}' in family '{family.id}'")
            continue
        members[record.name] = _handle(record, family, transport)
        LOGGER.info("Found device \"%s\"", record.name)

    for family_id, members in devices.items():
        family = families[family_id]
        if not family.expand_ids:
            continue
        for handle in list(members.values()):
            for device_id in handle.ids:
                if device_id in members:
                    continue
                record = DeviceRecord(
                    name=device_id,
                    host=handle.host,
                    device_type=handle.device_type,
                    ids=(device_id,),
                    key=handle.key,
                    timeout_ms=int(handle.timeout_s * 1000),
                )
                members[device_id] = _handle(record, family, transport)
                LOGGER.info("Found device \"%s\"", device_id)

    if not any(devices.values()):
        raise ConfigError("no routes found in config")

    return LoadedDevices(
        api_version=str(doc.get("apiVersion") or "v1"),
        devices=devices,
        warnings=tuple(warnings),
    )


def load_devices(
    families: dict[str, DeviceFamily],
    transport: Transport,
    path: str | Path | None = None,
) -> LoadedDevices:
    resolved = config_path(path)
    try:
        doc = _read_yaml(resolved)
    except FamilyValidationError as exc:
        raise ConfigError(str(exc)) from exc
    return build_devices(doc, families, transport, source=resolved)
