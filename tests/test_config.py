import json
import os

import pytest

from soboss.config import ConfigProvider, DeviceConfig, SonosConfig, parse_device_config
from soboss.core.errors import ConfigurationError


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")


def test_overlays_merge_in_order(tmp_path) -> None:
    _write(tmp_path / "sonos.json", {"maxSetVolume": 60, "speakers": {"S1": {"identifier": "kitchen"}}})
    _write(tmp_path / "sonos.private.json", {"speakers": {"S2": {"identifier": "office"}}})
    _write(tmp_path / "sonos.dev.json", {"maxSetVolume": 30})
    _write(tmp_path / "sonos.dev.private.json", {"speakers": {"S1": {"identifier": "den"}}})
    _write(tmp_path / "sonos.prod.json", {"maxSetVolume": 99})

    data = ConfigProvider(str(tmp_path), "dev").get("sonos")

    assert data == {
        "maxSetVolume": 30,
        "speakers": {"S1": {"identifier": "den"}, "S2": {"identifier": "office"}},
    }


def test_missing_base_file_is_a_configuration_error(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        ConfigProvider(str(tmp_path)).get("ping")


def test_invalid_json_is_a_configuration_error(tmp_path) -> None:
    (tmp_path / "ping.json").write_text("{nope", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigProvider(str(tmp_path)).get("ping")


def test_snapshot_is_reread_when_file_changes(tmp_path) -> None:
    path = tmp_path / "ping.json"
    _write(path, {"defaultInterval": 1000})
    provider = ConfigProvider(str(tmp_path))
    assert provider.ping().default_interval == 1000

    _write(path, {"defaultInterval": 5000})
    st = os.stat(path)
    os.utime(path, (st.st_atime, st.st_mtime + 10))

    assert provider.ping().default_interval == 5000


def test_ping_defaults_and_validation(tmp_path) -> None:
    _write(tmp_path / "ping.json", {})
    ping = ConfigProvider(str(tmp_path)).ping()
    assert ping.default_interval == 10000
    assert ping.time_out_ms == 2000

    _write(tmp_path / "ping.json", {"timeOutMs": 0})
    provider = ConfigProvider(str(tmp_path))
    with pytest.raises(ConfigurationError):
        provider.ping()


def test_devices_section_must_be_a_list(tmp_path) -> None:
    _write(tmp_path / "genericDevices.json", {"identifier": "tv"})
    with pytest.raises(ConfigurationError):
        ConfigProvider(str(tmp_path)).devices()


def test_device_config_keeps_action_key_order() -> None:
    cfg = parse_device_config(
        {
            "identifier": "tv",
            "hostAddress": "10.0.0.2",
            "checks": ["ping"],
            "pingIntervalMs": 2500,
            "onAvailable": [{"targetSpeakers": ["x"], "playState": "play", "setVolume": 10, "leaveGroup": True}],
        }
    )
    assert cfg.ping_enabled is True
    assert cfg.ping_interval_ms == 2500
    assert list(cfg.on_available[0]) == ["targetSpeakers", "playState", "setVolume", "leaveGroup"]
    assert cfg.on_unavailable is None


def test_device_config_ping_enabled_tristate() -> None:
    assert DeviceConfig.model_validate({"identifier": "a"}).ping_enabled is None
    assert DeviceConfig.model_validate({"identifier": "a", "checks": []}).ping_enabled is False


@pytest.mark.parametrize("raw", [{"hostAddress": "x"}, {"identifier": "  "}, "tv", {"identifier": "a", "pingIntervalMs": -1}])
def test_invalid_device_config(raw) -> None:
    with pytest.raises(ConfigurationError):
        parse_device_config(raw)


def test_sonos_config_lookup_and_cap_clamp() -> None:
    sonos = SonosConfig.model_validate({"maxSetVolume": 150, "speakers": {"RINCON-1": {"identifier": "kitchen"}}})
    assert sonos.max_set_volume == 100
    assert sonos.identifier_for_serial("RINCON-1") == "kitchen"
    assert sonos.identifier_for_serial("other") is None
    assert sonos.identifiers == ["kitchen"]
