from __future__ import annotations

from typing import Dict, List, Optional


class PlaybackEndpoint:
    """
    A controllable speaker. Implementations talk to real hardware; every
    call may block on the network and may raise.
    """

    identifier: str = ""
    room_name: Optional[str] = None

    async def get_volume(self) -> int:
        raise NotImplementedError

    async def set_volume(self, volume: int, channel: str = "Master") -> None:
        raise NotImplementedError

    async def play(self) -> bool:
        raise NotImplementedError

    async def pause(self) -> bool:
        raise NotImplementedError

    async def play_spdif(self) -> bool:
        raise NotImplementedError

    async def join_group(self, room_name: str) -> bool:
        raise NotImplementedError

    async def leave_group(self) -> None:
        raise NotImplementedError


class PlaybackRegistry:
    """
    Speakers by configured identifier. Filled by discovery; read by command
    processing.
    """

    def __init__(self) -> None:
        self._speakers: Dict[str, PlaybackEndpoint] = {}

    def get(self, identifier: str) -> Optional[PlaybackEndpoint]:
        if not identifier:
            return None
        return self._speakers.get(identifier)

    def register(self, speaker: PlaybackEndpoint) -> bool:
        """Returns True when the identifier was not known before."""
        is_new = speaker.identifier not in self._speakers
        self._speakers[speaker.identifier] = speaker
        return is_new

    def identifiers(self) -> List[str]:
        return list(self._speakers)
