"""Normalizers turning raw vendor GET envelopes into client-facing state."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from restate.core.errors import MalformedResponseError

Normalizer = Callable[[dict[str, Any]], Any]


def _dig(data: Any, *path: str | int) -> Any:
    current = data
    for step in path:
        try:
            current = current[step]
        except (KeyError, IndexError, TypeError) as exc:
            joined = ".".join(str(p) for p in path)
            raise MalformedResponseError(f"Vendor response is missing '{joined}'") from exc
    return current


def _temperature(current: int, target: int, open_window: int) -> dict[str, Any]:
    return {
        "current": current,
        "target": target,
        "heating": target - current > 0,
        "openWindow": open_window != 0,
    }


def light_status(raw: dict[str, Any]) -> dict[str, Any]:
    digest = _dig(raw, "payload", "all", "digest")
    status: dict[str, Any] = {"onoff": _dig(digest, "togglex", 0, "onoff")}
    light = digest.get("light") or {}
    # Zero means "not reported" for bulb-only fields.
    for key in ("rgb", "temperature", "luminance"):
        if light.get(key):
            status[key] = light[key]
    return status


def thermostat_status(raw: dict[str, Any]) -> dict[str, Any]:
    thermostat = _dig(raw, "payload", "all", "digest", "thermostat")
    mode = _dig(thermostat, "mode", 0)
    window = _dig(thermostat, "windowOpened", 0)
    return {
        "onoff": _dig(mode, "onoff"),
        "mode": _dig(mode, "mode"),
        "temperature": _temperature(
            _dig(mode, "currentTemp"),
            _dig(mode, "targetTemp"),
            window.get("status", 0),
        ),
    }


def thermostat_mode(raw: dict[str, Any]) -> dict[str, Any]:
    return {"mode": _dig(raw, "payload", "mode", 0, "mode")}


def thermostat_heat_temp(raw: dict[str, Any]) -> dict[str, Any]:
    return {"heatTemp": _dig(raw, "payload", "mode", 0, "heatTemp")}


def hub_status(raw: dict[str, Any]) -> list[dict[str, Any]]:
    states = []
    for entry in _dig(raw, "payload", "all"):
        temperature = entry.get("temperature") or {}
        states.append(
            {
                "id": _dig(entry, "id"),
                "onoff": (entry.get("togglex") or {}).get("onoff", 0),
                "mode": (entry.get("mode") or {}).get("state", 0),
                "online": (entry.get("online") or {}).get("status", 0),
                "temperature": _temperature(
                    temperature.get("room", 0),
                    temperature.get("currentSet", 0),
                    temperature.get("openWindow", 0),
                ),
            }
        )
    return states


def _hub_values(section: str, field: str) -> Normalizer:
    def _normalize(raw: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            {"id": _dig(entry, "id"), "value": _dig(entry, field)}
            for entry in _dig(raw, "payload", section)
        ]

    return _normalize


NORMALIZERS: dict[str, Normalizer] = {
    "light_status": light_status,
    "thermostat_status": thermostat_status,
    "thermostat_mode": thermostat_mode,
    "thermostat_heat_temp": thermostat_heat_temp,
    "hub_status": hub_status,
    "hub_battery": _hub_values("battery", "value"),
    "hub_mode": _hub_values("mode", "state"),
    "hub_adjust": _hub_values("adjust", "temperature"),
}


def normalize(name: str | None, raw: dict[str, Any]) -> Any:
    if name is None:
        return raw.get("payload", {})
    return NORMALIZERS[name](raw)


def onoff_of(status: Any) -> int:
    """Extract the on/off vote from a normalized status.

    Multiplexed hubs report one entry per hardware id; the first entry is
    the device's vote, matching the single-device inversion rule.
    """
    if isinstance(status, list):
        if not status:
            raise MalformedResponseError("Status response lists no devices")
        status = status[0]
    try:
        return 1 if int(status["onoff"]) else 0
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedResponseError("Status response has no usable 'onoff'") from exc
