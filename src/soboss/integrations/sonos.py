from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Callable, Dict, List, Optional, TypeVar

import soco

from soboss.config import SonosConfig
from soboss.core.errors import DeviceOperationError
from soboss.core.logging import get_logger
from soboss.integrations.playback import PlaybackEndpoint, PlaybackRegistry

T = TypeVar("T")


class SoCoSpeaker(PlaybackEndpoint):
    """
    Sonos speaker backed by a SoCo device.

    SoCo is synchronous/blocking; every call runs in the default executor.
    """

    def __init__(self, identifier: str, device: Any) -> None:
        self.identifier = identifier
        self._device = device
        self.room_name: Optional[str] = None
        self.serial_number: Optional[str] = None
        self.model_name: Optional[str] = None
        self.uid: Optional[str] = None

    @property
    def host_address(self) -> str:
        return str(getattr(self._device, "ip_address", ""))

    def update_info(self, *, device: Any, room_name: str, serial_number: str, model_name: str, uid: str) -> None:
        self._device = device
        self.room_name = room_name
        self.serial_number = serial_number
        self.model_name = model_name
        self.uid = uid

    async def get_volume(self) -> int:
        return int(await self._run(lambda: self._device.volume))

    async def set_volume(self, volume: int, channel: str = "Master") -> None:
        args = [("InstanceID", 0), ("Channel", channel), ("DesiredVolume", int(volume))]
        await self._run(partial(self._device.renderingControl.SetVolume, args))

    async def play(self) -> bool:
        await self._run(self._device.play)
        return True

    async def pause(self) -> bool:
        await self._run(self._device.pause)
        return True

    async def play_spdif(self) -> bool:
        uid = self.uid or self._device.uid
        uri = "x-sonos-htastream:%s:spdif" % uid
        get_logger(component="sonos", speaker=self.identifier).debug("play_spdif", uri=uri)
        args = [("InstanceID", 0), ("CurrentURI", uri), ("CurrentURIMetaData", "")]
        await self._run(partial(self._device.avTransport.SetAVTransportURI, args))
        return True

    async def join_group(self, room_name: str) -> bool:
        return await self._run(partial(self._join_blocking, room_name))

    async def leave_group(self) -> None:
        await self._run(self._device.unjoin)

    def _join_blocking(self, room_name: str) -> bool:
        peer = None
        for zone in self._device.all_zones or ():
            if zone.player_name == room_name:
                peer = zone
                break
        if peer is None:
            return False
        try:
            master = peer.group.coordinator or peer
        except Exception:
            master = peer
        self._device.join(master)
        return True

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except Exception as e:
            raise DeviceOperationError("speaker %s (%s): %s" % (self.identifier, self.host_address, e)) from e


class SonosDiscovery:
    """
    Finds Sonos players on the LAN and registers the configured ones
    (matched by serial number) under their identifier.
    """

    def __init__(self, registry: PlaybackRegistry, *, allow_network_scan: bool = False) -> None:
        self._registry = registry
        self._allow_network_scan = allow_network_scan
        self._log = get_logger(component="sonos_discovery")

    async def discover(self, sonos: SonosConfig, *, timeout_seconds: float = 4.0) -> List[SoCoSpeaker]:
        loop = asyncio.get_running_loop()
        zones = await loop.run_in_executor(
            None,
            partial(soco.discover, timeout=timeout_seconds, allow_network_scan=self._allow_network_scan),
        )
        found: List[SoCoSpeaker] = []
        for zone in sorted(zones or (), key=lambda z: str(getattr(z, "ip_address", ""))):
            try:
                info: Dict[str, Any] = await loop.run_in_executor(None, zone.get_speaker_info)
            except Exception:
                self._log.exception("speaker_info_failed", host=getattr(zone, "ip_address", None))
                continue
            speaker = self._register(zone, info or {}, sonos)
            if speaker is not None:
                found.append(speaker)
        self._log.info("discovery_complete", seen=len(zones or ()), registered=len(found))
        return found

    def _register(self, zone: Any, info: Dict[str, Any], sonos: SonosConfig) -> Optional[SoCoSpeaker]:
        host = getattr(zone, "ip_address", None)
        serial = str(info.get("serial_number") or "")
        model = str(info.get("model_name") or "")
        room = str(info.get("zone_name") or "")
        uid = str(info.get("uid") or getattr(zone, "uid", "") or "")

        if not serial or not model or not room or not uid:
            self._log.warning("speaker_incomplete_description", host=host, serial=serial or None)
            return None

        identifier = sonos.identifier_for_serial(serial)
        if identifier is None:
            self._log.info("speaker_unused", host=host, model=model, serial=serial)
            return None

        existing = self._registry.get(identifier)
        speaker = existing if isinstance(existing, SoCoSpeaker) else SoCoSpeaker(identifier, zone)
        speaker.update_info(device=zone, room_name=room, serial_number=serial, model_name=model, uid=uid)
        is_new = self._registry.register(speaker)
        self._log.info(
            "speaker_discovered",
            speaker=identifier,
            status="new" if is_new else "existing",
            model=model,
            host=host,
            serial=serial,
        )
        return speaker
