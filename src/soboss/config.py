from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from soboss.core.errors import ConfigurationError

DEVICES_SECTION = "genericDevices"
PING_SECTION = "ping"
SONOS_SECTION = "sonos"


def _strip_quotes(s: str) -> str:
    s = (s or "").strip()
    if len(s) >= 2 and ((s[0] == s[-1]) and s[0] in ("'", '"')):
        s = s[1:-1].strip()
    return s


def _env_files() -> tuple[str, str]:
    """
    Local .env first, then the repo-root .env (handy when running from scripts/).
    """
    repo_root_env = str(Path(__file__).resolve().parents[2] / ".env")
    return (".env", repo_root_env)


class AppSettings(BaseSettings):
    """
    Process-level settings (environment / .env). Device, ping and speaker
    configuration lives in the JSON sections served by `ConfigProvider`.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = Field(default="soboss", alias="SOBOSS_NAME")
    log_level: str = Field(default="INFO", alias="SOBOSS_LOG_LEVEL")
    timezone: str = Field(default="UTC", alias="SOBOSS_TIMEZONE")
    environment: str = Field(default="production", alias="SOBOSS_ENV")
    config_dir: str = Field(default="config", alias="SOBOSS_CONFIG_DIR")

    poll_interval_ms: int = Field(default=500, alias="SOBOSS_POLL_INTERVAL_MS")
    reload_seconds: int = Field(default=600, alias="SOBOSS_RELOAD_SECONDS")
    discovery_timeout_seconds: float = Field(default=4.0, alias="SOBOSS_DISCOVERY_TIMEOUT_SECONDS")
    discovery_interval_seconds: int = Field(default=300, alias="SOBOSS_DISCOVERY_INTERVAL_SECONDS")
    # icmp (pythonping, needs raw sockets) | system (ping binary)
    ping_method: str = Field(default="icmp", alias="SOBOSS_PING_METHOD")

    @field_validator("name", "timezone", "environment", "config_dir", mode="before")
    @classmethod
    def _norm_str(cls, v: object) -> str:
        return _strip_quotes(str(v))

    @field_validator("ping_method", mode="before")
    @classmethod
    def _norm_ping_method(cls, v: object) -> str:
        s = _strip_quotes(str(v)).lower()
        if s not in ("icmp", "system"):
            raise ValueError("SOBOSS_PING_METHOD must be 'icmp' or 'system'")
        return s

    @field_validator("poll_interval_ms")
    @classmethod
    def _positive_poll(cls, v: int) -> int:
        return max(50, int(v))


class PingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    default_interval: int = Field(default=10000, alias="defaultInterval")
    time_out_ms: int = Field(default=2000, alias="timeOutMs")

    @field_validator("default_interval", "time_out_ms")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class SpeakerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    identifier: str


class SonosConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    max_set_volume: Optional[int] = Field(default=None, alias="maxSetVolume")
    # Keyed by speaker serial number.
    speakers: Dict[str, SpeakerConfig] = Field(default_factory=dict)

    @field_validator("max_set_volume")
    @classmethod
    def _clamp_max(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return None
        return max(0, min(100, int(v)))

    @property
    def identifiers(self) -> List[str]:
        return [s.identifier for s in self.speakers.values()]

    def identifier_for_serial(self, serial: str) -> Optional[str]:
        cfg = self.speakers.get(serial)
        if cfg is None or not cfg.identifier:
            return None
        return cfg.identifier


class DeviceConfig(BaseModel):
    """
    One entry of the `genericDevices` section.

    Absent fields leave the device's current value untouched on reload.
    Action lists are kept as plain dicts so key order (= execution order) survives.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    identifier: str
    host_address: Optional[str] = Field(default=None, alias="hostAddress")
    checks: Optional[List[str]] = None
    ping_interval_ms: Optional[int] = Field(default=None, alias="pingIntervalMs")
    on_available: Optional[List[Dict[str, Any]]] = Field(default=None, alias="onAvailable")
    on_unavailable: Optional[List[Dict[str, Any]]] = Field(default=None, alias="onUnavailable")

    @field_validator("identifier")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("identifier must not be empty")
        return v

    @field_validator("ping_interval_ms")
    @classmethod
    def _positive_interval(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("pingIntervalMs must be > 0")
        return v

    @property
    def ping_enabled(self) -> Optional[bool]:
        if self.checks is None:
            return None
        return "ping" in self.checks


class ConfigProvider:
    """
    Serves JSON config sections from `config_dir`.

    `get(section)` returns `<section>.json` deep-merged with, in order,
    `<section>.private.json`, `<section>.<env>.json` and
    `<section>.<env>.private.json` when they exist. Results are cached until
    one of the contributing files changes on disk.
    """

    def __init__(self, config_dir: str, environment: str = "production") -> None:
        self._dir = Path(config_dir)
        self._environment = environment
        self._cache: Dict[str, Tuple[Tuple[Tuple[str, float], ...], Any]] = {}

    @property
    def config_dir(self) -> Path:
        return self._dir

    def get(self, section: str) -> Any:
        base = self._dir / ("%s.json" % section)
        if not base.exists():
            raise ConfigurationError("Required config file '%s' is not available" % base)

        files = [base] + [p for p in self._overlay_paths(section) if p.exists()]
        signature = tuple((str(p), os.stat(p).st_mtime) for p in files)
        cached = self._cache.get(section)
        if cached is not None and cached[0] == signature:
            return cached[1]

        data = _read_json(base)
        for path in files[1:]:
            data = _deep_merge(data, _read_json(path))
        self._cache[section] = (signature, data)
        return data

    def invalidate(self, section: Optional[str] = None) -> None:
        if section is None:
            self._cache.clear()
        else:
            self._cache.pop(section, None)

    def ping(self) -> PingConfig:
        return _validate(PingConfig, self.get(PING_SECTION), PING_SECTION)

    def sonos(self) -> SonosConfig:
        return _validate(SonosConfig, self.get(SONOS_SECTION), SONOS_SECTION)

    def devices(self) -> List[Any]:
        raw = self.get(DEVICES_SECTION)
        if not isinstance(raw, list):
            raise ConfigurationError("Config section '%s' must be a list" % DEVICES_SECTION)
        return raw

    def _overlay_paths(self, section: str) -> List[Path]:
        env = self._environment
        return [
            self._dir / ("%s.private.json" % section),
            self._dir / ("%s.%s.json" % (section, env)),
            self._dir / ("%s.%s.private.json" % (section, env)),
        ]


def parse_device_config(raw: Any) -> DeviceConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError("Device config must be an object, got %s" % type(raw).__name__)
    return _validate(DeviceConfig, raw, DEVICES_SECTION)


def _validate(model: Any, data: Any, section: str) -> Any:
    try:
        return model.model_validate(data if data is not None else {})
    except ValidationError as e:
        raise ConfigurationError("Invalid '%s' config: %s" % (section, e)) from e


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError("Config file '%s' is not valid JSON: %s" % (path, e)) from e


def _deep_merge(base: Any, overlay: Any) -> Any:
    """
    Objects merge key by key; anything else in `overlay` replaces `base`.
    """
    if isinstance(base, dict) and isinstance(overlay, dict):
        out = dict(base)
        for k, v in overlay.items():
            out[k] = _deep_merge(out[k], v) if k in out else v
        return out
    return overlay
