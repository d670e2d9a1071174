from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Tuple

from soboss.core.logging import get_logger

AVAILABILITY_CHANGE = "device.availability_change"


@dataclass(frozen=True)
class Event:
    topic: str
    payload: Any
    key: Optional[Hashable] = None


@dataclass(frozen=True)
class AvailabilityChange:
    device: Any
    available: bool


Handler = Callable[[Event], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    topic: str
    handler: Handler
    key: Optional[Hashable] = None
    seq: int = field(default=0, compare=False)


class EventBus:
    """
    In-process pub/sub owned by the application root.

    Handlers run one after another, in registration order, on the publisher's
    task. A handler that raises is logged and skipped; the publisher and the
    remaining handlers never see the exception.

    Subscribing with a ``key`` narrows delivery to events published with the
    same key (e.g. a device subscribing to its own availability changes).
    """

    def __init__(self) -> None:
        self._subs: Dict[str, List[Subscription]] = {}
        self._keyed: Dict[Tuple[str, Hashable], List[Subscription]] = {}
        self._seq = itertools.count()
        self._log = get_logger(component="event_bus")

    def subscribe(self, topic: str, handler: Handler, *, key: Optional[Hashable] = None) -> Subscription:
        sub = Subscription(topic=topic, handler=handler, key=key, seq=next(self._seq))
        if key is None:
            self._subs.setdefault(topic, []).append(sub)
        else:
            self._keyed.setdefault((topic, key), []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub.key is None:
            bucket = self._subs.get(sub.topic, [])
        else:
            bucket = self._keyed.get((sub.topic, sub.key), [])
        for i, existing in enumerate(bucket):
            if existing.seq == sub.seq:
                del bucket[i]
                break
        if sub.key is not None and not bucket:
            self._keyed.pop((sub.topic, sub.key), None)

    async def publish(self, topic: str, payload: Any, *, key: Optional[Hashable] = None) -> None:
        event = Event(topic=topic, payload=payload, key=key)
        handlers = list(self._subs.get(topic, []))
        if key is not None:
            handlers.extend(self._keyed.get((topic, key), []))
            handlers.sort(key=lambda s: s.seq)
        for sub in handlers:
            try:
                await sub.handler(event)
            except Exception:
                self._log.exception("subscriber_failed", topic=topic, handler=_handler_name(sub.handler))

    def subscriber_count(self, topic: str) -> int:
        n = len(self._subs.get(topic, []))
        n += sum(len(v) for (t, _), v in self._keyed.items() if t == topic)
        return n


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
