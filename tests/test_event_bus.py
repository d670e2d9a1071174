import pytest

from soboss.core.events import EventBus


@pytest.mark.asyncio
async def test_event_bus_publish_subscribe() -> None:
    bus = EventBus()
    seen = []

    async def handler(evt):
        seen.append((evt.topic, evt.payload))

    bus.subscribe("x", handler)
    await bus.publish("x", {"a": 1})
    assert seen == [("x", {"a": 1})]


@pytest.mark.asyncio
async def test_handlers_run_in_registration_order() -> None:
    bus = EventBus()
    order = []

    def make(n):
        async def handler(evt):
            order.append(n)

        return handler

    for n in range(4):
        bus.subscribe("x", make(n))
    await bus.publish("x", None)
    assert order == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_failing_handler_does_not_reach_publisher_or_siblings() -> None:
    bus = EventBus()
    seen = []

    async def bad(evt):
        raise RuntimeError("nope")

    async def good(evt):
        seen.append(evt.payload)

    bus.subscribe("x", bad)
    bus.subscribe("x", good)
    await bus.publish("x", 42)
    assert seen == [42]


@pytest.mark.asyncio
async def test_keyed_subscription_only_sees_its_key() -> None:
    bus = EventBus()
    a_seen, b_seen, all_seen = [], [], []
    a, b = object(), object()

    async def on_a(evt):
        a_seen.append(evt.payload)

    async def on_b(evt):
        b_seen.append(evt.payload)

    async def on_all(evt):
        all_seen.append(evt.payload)

    bus.subscribe("x", on_a, key=a)
    bus.subscribe("x", on_all)
    bus.subscribe("x", on_b, key=b)

    await bus.publish("x", "for-a", key=a)
    await bus.publish("x", "for-b", key=b)

    assert a_seen == ["for-a"]
    assert b_seen == ["for-b"]
    assert all_seen == ["for-a", "for-b"]


@pytest.mark.asyncio
async def test_keyed_and_global_handlers_keep_registration_order() -> None:
    bus = EventBus()
    order = []
    key = object()

    async def first(evt):
        order.append("keyed")

    async def second(evt):
        order.append("global")

    bus.subscribe("x", first, key=key)
    bus.subscribe("x", second)
    await bus.publish("x", None, key=key)
    assert order == ["keyed", "global"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen = []
    key = object()

    async def handler(evt):
        seen.append(evt.payload)

    sub = bus.subscribe("x", handler, key=key)
    assert bus.subscriber_count("x") == 1
    bus.unsubscribe(sub)
    await bus.publish("x", 1, key=key)
    assert seen == []
    assert bus.subscriber_count("x") == 0


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_noop() -> None:
    bus = EventBus()
    await bus.publish("nobody", {"x": 1})
