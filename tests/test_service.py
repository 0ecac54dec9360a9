from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from restate.core.errors import (
    AllTargetsFailedError,
    InvalidValueError,
    TargetSelectionError,
    TransportTimeoutError,
    UnknownCodeError,
)
from restate.core.service import GatewayService

CONFIG = """
apiVersion: v1
devices:
  - type: meross
    config: {name: lamp, host: lamp.local, deviceType: bulb, key: k}
  - type: meross
    config: {name: plug, host: plug.local, deviceType: socket}
  - type: meross
    config: {name: porch, host: porch.local, deviceType: bulb}
  - type: meross
    config: {name: hall, host: hall.local, deviceType: thermostat}
  - type: meross
    config: {name: hub, host: hub.local, deviceType: radiator, ids: ["01", "02"]}
"""


class FakeTransport:
    def __init__(self, states: dict[str, int] | None = None, offline: set[str] | None = None) -> None:
        self.states = states or {}
        self.offline = offline or set()
        self.calls: list[tuple[str, str, str, dict]] = []
        self._lock = threading.Lock()

    def send(self, host, *, method, namespace, payload, key="", timeout_s=1.0):
        with self._lock:
            self.calls.append((host, method, namespace, json.loads(payload)))
        if host in self.offline:
            raise TransportTimeoutError(f"{host} timed out")
        if method == "SET":
            return None
        onoff = self.states.get(host, 0)
        if namespace == "Appliance.Hub.Mts100.All":
            return {"payload": {"all": [{"id": "01", "togglex": {"onoff": onoff}}]}}
        if namespace == "Appliance.System.All" and host == "hall.local":
            return {
                "payload": {
                    "all": {
                        "digest": {
                            "thermostat": {
                                "mode": [
                                    {"onoff": onoff, "mode": 1, "currentTemp": 180, "targetTemp": 210}
                                ],
                                "windowOpened": [{"status": 0}],
                            }
                        }
                    }
                }
            }
        return {"payload": {"all": {"digest": {"togglex": [{"onoff": onoff}]}}}}

    def sets(self) -> list[tuple[str, str, dict]]:
        return [(host, namespace, body) for host, method, namespace, body in self.calls if method == "SET"]


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "restate.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_listing(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport())

    assert [f.route for f in service.list_families()] == ["meross", "radiator", "thermostat"]
    assert service.device_names("meross") == ["lamp", "plug", "porch"]
    assert service.device_names("radiator") == ["01", "02", "hub"]
    assert "fade" in service.device_codes("meross", "lamp")
    assert "fade" not in service.device_codes("meross", "plug")


def test_status_single_device(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport({"lamp.local": 1}))
    assert service.invoke_device("meross", "lamp", "status") == {"onoff": 1}


def test_thermostat_status_is_normalized(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport({"hall.local": 1}))

    status = service.invoke_device("thermostat", "hall", "status")

    assert status == {
        "onoff": 1,
        "mode": 1,
        "temperature": {"current": 180, "target": 210, "heating": True, "openWindow": False},
    }


def test_set_returns_none(config_file: Path) -> None:
    transport = FakeTransport()
    service = GatewayService(config_file, transport=transport)

    assert service.invoke_device("meross", "lamp", "luminance", "40") is None
    assert transport.sets() == [("lamp.local", "Appliance.Control.Light", {"light": {"channel": 0, "capacity": 4, "luminance": 40}})]


def test_toggle_without_value_uses_majority_inverse(config_file: Path) -> None:
    transport = FakeTransport({"lamp.local": 1, "plug.local": 1, "porch.local": 0})
    service = GatewayService(config_file, transport=transport)

    result = service.invoke("meross", ["lamp", "plug", "porch"], "toggle")

    assert [s.name for s in result.succeeded] == ["lamp", "plug", "porch"]
    assert result.failed == ()
    assert {body["togglex"]["onoff"] for _, _, body in transport.sets()} == {0}


def test_toggle_partial_failure(config_file: Path) -> None:
    transport = FakeTransport({"lamp.local": 0}, offline={"plug.local"})
    service = GatewayService(config_file, transport=transport)

    result = service.invoke("meross", ["lamp", "plug"], "toggle")

    assert result.to_dict() == {"devices": [{"name": "lamp", "status": "OK"}], "errors": ["plug"]}
    assert transport.sets() == [("lamp.local", "Appliance.Control.ToggleX", {"togglex": {"channel": 0, "onoff": 1}})]


def test_all_targets_offline(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport(offline={"lamp.local", "plug.local"}))

    with pytest.raises(AllTargetsFailedError):
        service.invoke("meross", ["lamp", "plug"], "toggle")


def test_toggle_with_explicit_value(config_file: Path) -> None:
    transport = FakeTransport()
    service = GatewayService(config_file, transport=transport)

    service.invoke("meross", ["lamp", "plug"], "toggle", "1")

    assert all(body["togglex"]["onoff"] == 1 for _, _, body in transport.sets())
    assert not any(method == "GET" for _, method, _, _ in transport.calls)


def test_fade_switches_off_then_fades(config_file: Path) -> None:
    transport = FakeTransport(offline={"porch.local"})
    service = GatewayService(config_file, transport=transport)

    result = service.invoke("meross", ["lamp", "porch"], "fade")

    assert [s.name for s in result.succeeded] == ["lamp"]
    assert result.failed == ("porch",)
    lamp_sets = [(ns, body) for host, ns, body in transport.sets() if host == "lamp.local"]
    assert lamp_sets[0] == ("Appliance.Control.ToggleX", {"togglex": {"channel": 0, "onoff": 0}})
    assert lamp_sets[1][0] == "Appliance.Control.Light"
    assert lamp_sets[1][1]["light"]["luminance"] == -1


def test_hub_pseudo_device_addresses_its_own_id(config_file: Path) -> None:
    transport = FakeTransport()
    service = GatewayService(config_file, transport=transport)

    service.invoke_device("radiator", "02", "toggle", "1")

    assert transport.sets() == [
        ("hub.local", "Appliance.Hub.ToggleX", {"ToggleX": [{"channel": 0, "id": "02", "onoff": 1}]})
    ]


def test_hub_toggle_votes_with_first_id(config_file: Path) -> None:
    transport = FakeTransport({"hub.local": 1})
    service = GatewayService(config_file, transport=transport)

    result = service.invoke("radiator", ["hub"], "toggle")

    assert [s.name for s in result.succeeded] == ["hub"]
    assert transport.sets() == [
        (
            "hub.local",
            "Appliance.Hub.ToggleX",
            {"ToggleX": [{"channel": 0, "id": "01", "onoff": 0}, {"channel": 0, "id": "02", "onoff": 0}]},
        )
    ]


def test_duplicate_targets_collapse(config_file: Path) -> None:
    transport = FakeTransport()
    service = GatewayService(config_file, transport=transport)

    result = service.invoke("meross", ["lamp", "lamp", " plug "], "toggle", "0")

    assert [s.name for s in result.succeeded] == ["lamp", "plug"]
    assert len(transport.sets()) == 2


def test_empty_target_list_is_client_error(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport())
    with pytest.raises(TargetSelectionError, match="hosts"):
        service.invoke("meross", [], "toggle")


def test_unknown_device_is_client_error(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport())
    with pytest.raises(TargetSelectionError, match="Device 'garage' does not exist"):
        service.invoke("meross", ["lamp", "garage"], "toggle")


def test_unsupported_code_on_any_target_sends_nothing(config_file: Path) -> None:
    transport = FakeTransport()
    service = GatewayService(config_file, transport=transport)

    with pytest.raises(UnknownCodeError, match="plug"):
        service.invoke("meross", ["lamp", "plug"], "luminance", "20")

    assert transport.calls == []


def test_numeric_requires_value(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport())
    with pytest.raises(InvalidValueError):
        service.invoke_device("meross", "lamp", "luminance")


def test_toggle_rejects_values_other_than_zero_or_one(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport())
    with pytest.raises(InvalidValueError):
        service.invoke_device("meross", "lamp", "toggle", "2")


def test_unknown_family(config_file: Path) -> None:
    service = GatewayService(config_file, transport=FakeTransport())
    with pytest.raises(TargetSelectionError):
        service.device_names("garage")


def test_toggle_fails_when_every_set_fails(config_file: Path) -> None:
    class ReadOnlyTransport(FakeTransport):
        def send(self, host, *, method, namespace, payload, key="", timeout_s=1.0):
            if method == "SET":
                raise TransportTimeoutError(f"{host} timed out")
            return super().send(host, method=method, namespace=namespace, payload=payload)

    service = GatewayService(config_file, transport=ReadOnlyTransport({"lamp.local": 1}))

    with pytest.raises(AllTargetsFailedError):
        service.invoke("meross", ["lamp", "plug"], "toggle")


def test_signed_toggle_value_is_accepted(config_file: Path) -> None:
    transport = FakeTransport()
    service = GatewayService(config_file, transport=transport)

    service.invoke_device("meross", "plug", "toggle", "+1")

    assert transport.sets() == [("plug.local", "Appliance.Control.ToggleX", {"togglex": {"channel": 0, "onoff": 1}})]
