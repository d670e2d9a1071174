from __future__ import annotations

import asyncio
import time
from typing import Dict, List, Optional

from soboss.commands.processor import ProcessorFactory
from soboss.config import ConfigProvider, DeviceConfig, parse_device_config
from soboss.core.errors import ConfigurationError
from soboss.core.events import EventBus
from soboss.core.logging import get_logger
from soboss.devices.device import ManagedDevice
from soboss.integrations.ping import ReachabilityProbe


class DeviceRegistry:
    """
    All managed devices, keyed by identifier.

    Only `reload()` changes membership. The config is the source of truth:
    new identifiers are created, known ones updated in place, and devices
    that disappeared from the config are closed and dropped.
    """

    def __init__(
        self,
        *,
        config: ConfigProvider,
        events: EventBus,
        probe: ReachabilityProbe,
        processor_factory: ProcessorFactory,
    ) -> None:
        self._config = config
        self._events = events
        self._probe = probe
        self._processor_factory = processor_factory
        self._devices: Dict[str, ManagedDevice] = {}
        self._log = get_logger(component="device_registry")

    def get(self, identifier: str) -> Optional[ManagedDevice]:
        if not identifier:
            return None
        return self._devices.get(identifier)

    def all(self) -> List[ManagedDevice]:
        return list(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)

    async def reload(self) -> None:
        ping = self._config.ping()
        entries = self._config.devices()

        configs: Dict[str, DeviceConfig] = {}
        for raw in entries:
            try:
                cfg = parse_device_config(raw)
            except ConfigurationError as e:
                self._log.error("device_config_invalid", error=str(e))
                continue
            if cfg.identifier in configs:
                self._log.warning("device_config_duplicate", device=cfg.identifier)
            configs[cfg.identifier] = cfg

        for identifier, cfg in configs.items():
            device = self._devices.get(identifier)
            is_new = device is None
            if device is None:
                device = ManagedDevice(
                    identifier,
                    events=self._events,
                    probe=self._probe,
                    processor_factory=self._processor_factory,
                )
                self._devices[identifier] = device
            await device.apply_config(cfg, ping)
            self._log.info(
                "device_loaded",
                device=identifier,
                status="new" if is_new else "updated",
                ping=device.has_ping_check,
            )

        for identifier in [i for i in self._devices if i not in configs]:
            device = self._devices.pop(identifier)
            device.close()
            self._log.info("device_removed", device=identifier)

    async def poll_all(self, now: Optional[float] = None) -> None:
        """
        One poll round: tick every device at once and wait for all of them.
        """
        if now is None:
            now = time.monotonic()
        devices = self.all()
        results = await asyncio.gather(*(d.tick(now) for d in devices), return_exceptions=True)
        for device, res in zip(devices, results):
            if isinstance(res, BaseException):
                if not isinstance(res, Exception):
                    raise res
                self._log.error("device_tick_failed", device=device.identifier, error="%s: %s" % (type(res).__name__, res))
