from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from soboss.commands.processor import ProcessorFactory
from soboss.config import DeviceConfig, PingConfig
from soboss.core.events import AVAILABILITY_CHANGE, AvailabilityChange, Event, EventBus
from soboss.core.logging import get_logger
from soboss.devices.monitor import AvailabilityMonitor
from soboss.integrations.ping import ReachabilityProbe

ON_AVAILABLE = "onAvailable"
ON_UNAVAILABLE = "onUnavailable"


class ManagedDevice:
    """
    A pingable device whose availability flips trigger action lists.

    `apply_config` and `tick` are serialized through a per-device lock so a
    reload never interleaves with a poll of the same device.
    """

    def __init__(
        self,
        identifier: str,
        *,
        events: EventBus,
        probe: ReachabilityProbe,
        processor_factory: ProcessorFactory,
    ) -> None:
        self.identifier = identifier
        self.host_address: Optional[str] = None
        self.monitor: Optional[AvailabilityMonitor] = None
        self.action_lists: Dict[str, List[Mapping[str, Any]]] = {ON_AVAILABLE: [], ON_UNAVAILABLE: []}

        self._events = events
        self._probe = probe
        self._processor_factory = processor_factory
        self._lock = asyncio.Lock()
        self._log = get_logger(component="device", device=identifier)

        self._subscription = events.subscribe(AVAILABILITY_CHANGE, self._on_availability_change, key=self)

    def __repr__(self) -> str:
        return "ManagedDevice(%r)" % self.identifier

    @property
    def has_ping_check(self) -> bool:
        return self.monitor is not None

    async def apply_config(self, config: DeviceConfig, ping: PingConfig) -> None:
        async with self._lock:
            if config.host_address is not None:
                self.host_address = config.host_address

            enabled = config.ping_enabled
            if enabled is True and self.monitor is None:
                self.monitor = AvailabilityMonitor(
                    self,
                    events=self._events,
                    probe=self._probe,
                    interval_ms=ping.default_interval,
                    timeout_ms=ping.time_out_ms,
                )
                self._log.info("ping_check_enabled")
            elif enabled is False and self.monitor is not None:
                # Drop the monitor entirely; its schedule and last state go with it.
                self.monitor = None
                self._log.info("ping_check_disabled")

            if self.monitor is not None:
                self.monitor.interval_ms = config.ping_interval_ms or ping.default_interval
                self.monitor.timeout_ms = ping.time_out_ms

            if config.on_available is not None:
                self.action_lists[ON_AVAILABLE] = list(config.on_available)
            if config.on_unavailable is not None:
                self.action_lists[ON_UNAVAILABLE] = list(config.on_unavailable)

    async def tick(self, now: float) -> None:
        async with self._lock:
            if self.monitor is not None:
                await self.monitor.tick(now)

    def close(self) -> None:
        self._events.unsubscribe(self._subscription)
        self.monitor = None

    async def _on_availability_change(self, event: Event) -> None:
        change: AvailabilityChange = event.payload
        if change.device is not self:
            return

        if change.available:
            self._log.info("device_available")
        else:
            self._log.info("device_unavailable")

        trigger = ON_AVAILABLE if change.available else ON_UNAVAILABLE
        action_lists = list(self.action_lists.get(trigger) or [])
        if not action_lists:
            self._log.debug("no_actions", trigger=trigger)
            return

        for i, action_list in enumerate(action_lists):
            try:
                processor = self._processor_factory(action_list)
                await processor.process()
            except Exception as e:
                self._log.error("action_list_failed", trigger=trigger, index=i, error="%s: %s" % (type(e).__name__, e))
