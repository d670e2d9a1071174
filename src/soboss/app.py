from __future__ import annotations

import asyncio
import signal
from typing import Any, Mapping

from soboss.commands.processor import CommandProcessor
from soboss.config import AppSettings, ConfigProvider
from soboss.core.errors import ConfigurationError
from soboss.core.events import AVAILABILITY_CHANGE, Event, EventBus
from soboss.core.logging import get_logger
from soboss.core.scheduler import Scheduler, run_guarded
from soboss.devices.registry import DeviceRegistry
from soboss.integrations.ping import make_probe
from soboss.integrations.playback import PlaybackRegistry
from soboss.integrations.sonos import SonosDiscovery
from soboss.startup.checks import CheckStatus, run_startup_checks


class SoBossApp:
    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings
        self._log = get_logger(app=settings.name)
        # Create asyncio primitives inside the running loop.
        self._stop: "asyncio.Event" = None  # type: ignore[assignment]

        self._config = ConfigProvider(settings.config_dir, settings.environment)
        self._events = EventBus()
        self._scheduler = Scheduler(timezone=settings.timezone)
        self._speakers = PlaybackRegistry()
        self._discovery = SonosDiscovery(self._speakers)
        self._devices = DeviceRegistry(
            config=self._config,
            events=self._events,
            probe=make_probe(settings.ping_method),
            processor_factory=self._make_processor,
        )

    @property
    def devices(self) -> DeviceRegistry:
        return self._devices

    async def run(self) -> None:
        self._log.info("starting", environment=self._settings.environment, config_dir=self._settings.config_dir)
        self._stop = asyncio.Event()
        self._install_signal_handlers()

        results = run_startup_checks(self._config)
        if any(r.status == CheckStatus.FAIL for r in results):
            self._log.error("startup_checks_failed")
            return

        self._events.subscribe(AVAILABILITY_CHANGE, self._log_availability_change)

        await run_guarded(self._discover_speakers, "sonos_discovery")
        await self._devices.reload()

        self._scheduler.every_seconds(self._settings.reload_seconds, self._devices.reload, name="device_reload")
        self._scheduler.every_seconds(
            self._settings.discovery_interval_seconds, self._discover_speakers, name="sonos_discovery"
        )
        self._scheduler.fixed_delay(
            self._settings.poll_interval_ms / 1000.0, self._devices.poll_all, name="device_poll"
        )

        self._scheduler.start()
        self._log.info("running", devices=len(self._devices), speakers=self._speakers.identifiers())
        await self._stop.wait()
        self._log.info("stopping")
        self._scheduler.shutdown()

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    def _make_processor(self, action_list: Mapping[str, Any]) -> CommandProcessor:
        # Re-read per action list so an edited maxSetVolume applies on the next event.
        return CommandProcessor(
            action_list,
            speakers=self._speakers,
            max_set_volume=self._config.sonos().max_set_volume,
        )

    async def _discover_speakers(self) -> None:
        try:
            sonos = self._config.sonos()
        except ConfigurationError as e:
            self._log.error("sonos_config_invalid", error=str(e))
            return
        await self._discovery.discover(sonos, timeout_seconds=self._settings.discovery_timeout_seconds)

    async def _log_availability_change(self, event: Event) -> None:
        change = event.payload
        self._log.debug(
            "availability_change",
            device=getattr(change.device, "identifier", None),
            available=change.available,
        )

    def _install_signal_handlers(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:  # pragma: no cover
            return

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:  # pragma: no cover (Windows)
                pass
