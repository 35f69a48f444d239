"""Tests for the in-process user event bus."""
import asyncio

import pytest

from ovpn_sync.events import EventBus, UserChanged, UserEventKind


@pytest.mark.asyncio
async def test_publish_dispatches_to_subscribers():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event)

    bus.subscribe(UserChanged, handler)
    event = UserChanged("u1", UserEventKind.CREATED)
    tasks = bus.publish(event)
    await asyncio.gather(*tasks)

    assert received == [event]


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_noop():
    assert EventBus().publish(UserChanged("u1", UserEventKind.UPDATED)) == []


@pytest.mark.asyncio
async def test_failing_handler_does_not_affect_others(caplog):
    bus = EventBus()
    received = []

    async def broken(event):
        raise RuntimeError("handler bug")

    async def working(event):
        received.append(event.user_id)

    bus.subscribe(UserChanged, broken)
    bus.subscribe(UserChanged, working)
    await bus.emit(UserChanged("u1", UserEventKind.DELETED))
    await bus.drain()

    assert received == ["u1"]
    assert "handler bug" in caplog.text


@pytest.mark.asyncio
async def test_drain_waits_for_pending_handlers():
    bus = EventBus()
    done = []

    async def slow(event):
        await asyncio.sleep(0.05)
        done.append(event.kind)

    bus.subscribe(UserChanged, slow)
    bus.publish(UserChanged("u1", UserEventKind.VERIFIED))
    await bus.drain()

    assert done == [UserEventKind.VERIFIED]
