from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from soboss.commands.processor import CommandProcessor
from soboss.core.events import EventBus
from soboss.integrations.ping import ReachabilityProbe
from soboss.integrations.playback import PlaybackEndpoint, PlaybackRegistry


class FakeSpeaker(PlaybackEndpoint):
    def __init__(
        self,
        identifier: str,
        *,
        volume: int = 30,
        room_name: Optional[str] = None,
        fail_on: Sequence[str] = (),
        join_result: bool = True,
    ) -> None:
        self.identifier = identifier
        self.room_name = room_name or identifier.title()
        self.volume = volume
        self.fail_on = set(fail_on)
        self.join_result = join_result
        self.calls: List[tuple] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise RuntimeError("%s failed on %s" % (name, self.identifier))

    async def get_volume(self) -> int:
        self._record("get_volume")
        return self.volume

    async def set_volume(self, volume: int, channel: str = "Master") -> None:
        self._record("set_volume", volume, channel)
        self.volume = volume

    async def play(self) -> bool:
        self._record("play")
        return True

    async def pause(self) -> bool:
        self._record("pause")
        return True

    async def play_spdif(self) -> bool:
        self._record("play_spdif")
        return True

    async def join_group(self, room_name: str) -> bool:
        self._record("join_group", room_name)
        return self.join_result

    async def leave_group(self) -> None:
        self._record("leave_group")


class ScriptedProbe(ReachabilityProbe):
    """Returns queued results in order; repeats the last one when exhausted."""

    def __init__(self, results: Sequence[Any] = (True,)) -> None:
        self.results = list(results)
        self.calls: List[tuple] = []

    async def check(self, host: str, timeout_ms: int) -> bool:
        self.calls.append((host, timeout_ms))
        res = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(res, BaseException):
            raise res
        return res


def make_registry(*speakers: FakeSpeaker) -> PlaybackRegistry:
    reg = PlaybackRegistry()
    for s in speakers:
        reg.register(s)
    return reg


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def processed() -> List[Dict[str, Any]]:
    return []


@pytest.fixture
def recording_factory(processed: List[Dict[str, Any]]):
    """Processor factory that records the action lists it runs instead of touching speakers."""

    class _Recorder:
        def __init__(self, action_list: Dict[str, Any]) -> None:
            self.action_list = action_list

        async def process(self) -> None:
            if self.action_list.get("explode"):
                raise RuntimeError("boom")
            processed.append(self.action_list)

    def factory(action_list: Dict[str, Any]) -> CommandProcessor:
        return _Recorder(dict(action_list))  # type: ignore[return-value]

    return factory
