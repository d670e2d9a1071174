from __future__ import annotations

import asyncio
import math
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from soboss.core.errors import ConfigurationError
from soboss.core.logging import get_logger
from soboss.integrations.playback import PlaybackEndpoint, PlaybackRegistry

TARGET_SPEAKERS = "targetSpeakers"
SOURCE_SPEAKERS = "sourceSpeakers"
RESERVED_KEYS = (TARGET_SPEAKERS, SOURCE_SPEAKERS)

SET_VOLUME = "setVolume"
PLAY_STATE = "playState"
JOIN_SPEAKER = "joinSpeaker"
LEAVE_GROUP = "leaveGroup"
COMMANDS = (SET_VOLUME, PLAY_STATE, JOIN_SPEAKER, LEAVE_GROUP)

LOWEST_SOURCE = "lowestSource"
HIGHEST_SOURCE = "highestSource"
PLAY_STATES = ("play", "pause", "playSPDIF")

ProcessorFactory = Callable[[Mapping[str, Any]], "CommandProcessor"]


def clamp(value: float, low: int, high: int) -> int:
    return int(round(min(max(value, low), high)))


class CommandProcessor:
    """
    Executes one action list, e.g.::

        {"targetSpeakers": ["kitchen"], "sourceSpeakers": ["tv"],
         "setVolume": "lowestSource", "playState": "playSPDIF"}

    Speaker identifiers are resolved once, here; unknown ones are logged and
    left out. Commands run in the order their keys appear. Each command fans
    out to all targets concurrently and a failing target never stops its
    siblings. A `ConfigurationError` ends processing of this action list.
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        speakers: PlaybackRegistry,
        max_set_volume: Optional[int] = None,
    ) -> None:
        self._config: Dict[str, Any] = dict(config)
        self._speakers = speakers
        self._max_set_volume = max_set_volume
        self._log = get_logger(component="command_processor")

        self.target_speakers = self._resolve(self._config.get(TARGET_SPEAKERS), "target")
        self.source_speakers = self._resolve(self._config.get(SOURCE_SPEAKERS), "source")

    def _resolve(self, raw: Any, role: str) -> Dict[str, PlaybackEndpoint]:
        out: Dict[str, PlaybackEndpoint] = {}
        if not isinstance(raw, (list, tuple)):
            return out
        for identifier in raw:
            if not isinstance(identifier, str):
                self._log.warning("speaker_identifier_invalid", value=repr(identifier), role=role)
                continue
            if identifier in out:
                continue
            speaker = self._speakers.get(identifier)
            if speaker is None:
                self._log.warning("speaker_not_available", speaker=identifier, role=role)
                continue
            out[identifier] = speaker
        return out

    async def process(self) -> None:
        for action, data in self._config.items():
            if action in RESERVED_KEYS:
                continue

            if action == SET_VOLUME:
                await self.set_volume(data)
            elif action == PLAY_STATE:
                await self.set_play_state(data)
            elif action == JOIN_SPEAKER:
                await self.join_speaker(data)
            elif action == LEAVE_GROUP:
                await self.leave_group()
            else:
                self._log.warning("unknown_command", action=action)

    async def set_volume(self, data: Any) -> None:
        if isinstance(data, bool):
            raise ConfigurationError("setVolume expects a number or %s/%s, got %r" % (LOWEST_SOURCE, HIGHEST_SOURCE, data))

        if isinstance(data, (int, float)):
            if not math.isfinite(data):
                raise ConfigurationError("setVolume must be a finite number, got %r" % data)
            volume = clamp(data, 0, 100)
        elif isinstance(data, str):
            if data not in (LOWEST_SOURCE, HIGHEST_SOURCE):
                raise ConfigurationError("Unknown setVolume value: %r" % data)
            if not self.source_speakers:
                raise ConfigurationError("setVolume %s requires source speakers" % data)

            levels = await self._source_volumes()
            if not levels:
                self._log.warning("source_volume_unavailable", action=SET_VOLUME, sources=list(self.source_speakers))
                return
            if data == LOWEST_SOURCE:
                volume = clamp(min(levels), 0, 100)
            else:
                volume = clamp(max(levels), 0, 100)
            self._log.info("source_volume", action=SET_VOLUME, mode=data, sources=list(self.source_speakers), volume=volume)
        else:
            raise ConfigurationError("setVolume expects a number or %s/%s, got %r" % (LOWEST_SOURCE, HIGHEST_SOURCE, data))

        # Hard ceiling to protect ears; applied before anything reaches a speaker.
        if self._max_set_volume is not None and volume > self._max_set_volume:
            self._log.info("volume_capped", requested=volume, cap=self._max_set_volume)
            volume = self._max_set_volume

        await self._fan_out(SET_VOLUME, lambda spk: spk.set_volume(volume, "Master"))
        self._log.info("volume_set", action=SET_VOLUME, targets=list(self.target_speakers), volume=volume)

    async def set_play_state(self, state: Any) -> None:
        if state not in PLAY_STATES:
            raise ConfigurationError("Invalid play state: %r" % (state,))

        def call(spk: PlaybackEndpoint) -> Awaitable[Any]:
            if state == "pause":
                return spk.pause()
            if state == "play":
                return spk.play()
            return spk.play_spdif()

        await self._fan_out(PLAY_STATE, call)
        self._log.info("play_state_set", action=PLAY_STATE, targets=list(self.target_speakers), state=state)

    async def join_speaker(self, name: Any) -> None:
        peer = self._speakers.get(name) if isinstance(name, str) else None
        if peer is None:
            raise ConfigurationError("Unable to find speaker %r" % (name,))
        room = peer.room_name
        if not room:
            raise ConfigurationError("Speaker %r has no room name" % name)

        results = await self._fan_out(JOIN_SPEAKER, lambda spk: spk.join_group(room))
        for identifier, ok in results.items():
            if not ok:
                self._log.warning("join_not_confirmed", speaker=identifier, group=name)
        self._log.info("group_joined", action=JOIN_SPEAKER, targets=list(self.target_speakers), group=name)

    async def leave_group(self) -> None:
        await self._fan_out(LEAVE_GROUP, lambda spk: spk.leave_group())
        self._log.info("group_left", action=LEAVE_GROUP, targets=list(self.target_speakers))

    async def _source_volumes(self) -> List[int]:
        ids = list(self.source_speakers)
        results = await asyncio.gather(
            *(spk.get_volume() for spk in self.source_speakers.values()),
            return_exceptions=True,
        )
        levels: List[int] = []
        for identifier, res in zip(ids, results):
            if isinstance(res, BaseException):
                _reraise_if_fatal(res)
                self._log.warning("speaker_command_failed", action="getVolume", speaker=identifier, error=_fmt(res))
                continue
            levels.append(int(res))
        return levels

    async def _fan_out(
        self, action: str, call: Callable[[PlaybackEndpoint], Awaitable[Any]]
    ) -> Dict[str, Any]:
        """
        Launch `call` for every target at once, wait for all of them.
        Returns results of the targets that succeeded.
        """
        ids = list(self.target_speakers)
        results = await asyncio.gather(
            *(_invoke(call, spk) for spk in self.target_speakers.values()),
            return_exceptions=True,
        )
        out: Dict[str, Any] = {}
        for identifier, res in zip(ids, results):
            if isinstance(res, BaseException):
                _reraise_if_fatal(res)
                self._log.warning("speaker_command_failed", action=action, speaker=identifier, error=_fmt(res))
                continue
            out[identifier] = res
        return out


async def _invoke(call: Callable[[PlaybackEndpoint], Awaitable[Any]], spk: PlaybackEndpoint) -> Any:
    # Synchronous errors (raised before the awaitable exists) stay per-target too.
    return await call(spk)


def _reraise_if_fatal(err: BaseException) -> None:
    if not isinstance(err, Exception):
        raise err


def _fmt(err: BaseException) -> str:
    return "%s: %s" % (type(err).__name__, str(err) or "(no message)")


def unknown_commands(action_list: Mapping[str, Any]) -> Iterable[str]:
    return [k for k in action_list if k not in RESERVED_KEYS and k not in COMMANDS]
