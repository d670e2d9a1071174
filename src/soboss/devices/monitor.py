from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from soboss.core.events import AVAILABILITY_CHANGE, AvailabilityChange, EventBus
from soboss.core.logging import get_logger
from soboss.integrations.ping import ReachabilityProbe

if TYPE_CHECKING:  # pragma: no cover
    from soboss.devices.device import ManagedDevice


class AvailabilityState(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


class AvailabilityMonitor:
    """
    Ping check for one device.

    The first completed probe only records the state. After that, every
    online/offline flip publishes one `AVAILABILITY_CHANGE` event keyed by
    the owning device; repeated identical results publish nothing.
    """

    def __init__(
        self,
        device: "ManagedDevice",
        *,
        events: EventBus,
        probe: ReachabilityProbe,
        interval_ms: int,
        timeout_ms: int,
    ) -> None:
        self._device = device
        self._events = events
        self._probe = probe
        self.interval_ms = int(interval_ms)
        self.timeout_ms = int(timeout_ms)
        self.next_check_at = float("-inf")
        self.state = AvailabilityState.UNKNOWN
        self._log = get_logger(component="ping_check", device=device.identifier)

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0

    async def tick(self, now: float) -> None:
        if now < self.next_check_at:
            return
        # Reschedule before probing so a slow probe can't cause back-to-back checks.
        self.next_check_at = now + self.interval_seconds

        available = await self.check()

        previous = self.state
        current = AvailabilityState.ONLINE if available else AvailabilityState.OFFLINE
        if previous is current:
            return
        self.state = current

        if previous is AvailabilityState.UNKNOWN:
            self._log.debug("initial_state", state=current.value)
            return

        self._log.debug("state_changed", previous=previous.value, state=current.value)
        await self._events.publish(
            AVAILABILITY_CHANGE,
            AvailabilityChange(device=self._device, available=available),
            key=self._device,
        )

    async def check(self) -> bool:
        host = self._device.host_address
        if not host:
            self._log.warning("missing_host_address")
            return False
        try:
            return bool(await self._probe.check(host, self.timeout_ms))
        except Exception as e:
            self._log.warning("probe_failed", host=host, error="%s: %s" % (type(e).__name__, e))
            return False
