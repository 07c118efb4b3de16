"""
Tests for the local event bus.
"""
import logging

import pytest

from sermas_app.emitter import EventEmitter, SermasChannel


def test_channel_names_are_stable():
    assert [c.value for c in SermasChannel] == [
        "session",
        "tool",
        "ui.interaction",
        "agent.changed",
        "sermas.ready",
    ]


@pytest.mark.asyncio
async def test_emit_reaches_sync_and_async_handlers(emitter):
    received = []

    def sync_handler(event):
        received.append(("sync", event))

    async def async_handler(event):
        received.append(("async", event))

    emitter.on(SermasChannel.TOOL, sync_handler)
    emitter.on(SermasChannel.TOOL, async_handler)

    payload = {"name": "search"}
    count = await emitter.emit(SermasChannel.TOOL, payload)

    assert count == 2
    assert received == [("sync", payload), ("async", payload)]
    assert received[0][1] is payload


@pytest.mark.asyncio
async def test_string_channel_names_are_accepted(emitter):
    received = []
    emitter.on("ui.interaction", received.append)

    await emitter.emit(SermasChannel.UI_INTERACTION, {"x": 1})

    assert received == [{"x": 1}]


def test_unknown_channel_is_rejected(emitter):
    with pytest.raises(ValueError, match="Unknown channel"):
        emitter.on("sessions", lambda event: None)


@pytest.mark.asyncio
async def test_unsubscribe(emitter):
    received = []
    unsubscribe = emitter.on(SermasChannel.SESSION, received.append)
    assert emitter.listener_count(SermasChannel.SESSION) == 1

    unsubscribe()
    await emitter.emit(SermasChannel.SESSION, {"operation": "created"})

    assert received == []
    assert emitter.listener_count(SermasChannel.SESSION) == 0
    assert emitter.off(SermasChannel.SESSION, received.append) is False


@pytest.mark.asyncio
async def test_decorator_registration(emitter):
    received = []

    @emitter.on_channel(SermasChannel.AGENT_CHANGED)
    async def handle(event):
        received.append(event)

    await emitter.emit(SermasChannel.AGENT_CHANGED, {"operation": "updated"})

    assert received == [{"operation": "updated"}]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others(emitter, caplog):
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    emitter.on(SermasChannel.SESSION, broken)
    emitter.on(SermasChannel.SESSION, received.append)

    with caplog.at_level(logging.ERROR, logger="sermas_app.emitter"):
        await emitter.emit(SermasChannel.SESSION, "event")

    assert received == ["event"]
    assert "handler bug" in caplog.text


@pytest.mark.asyncio
async def test_no_replay_for_late_listeners(emitter):
    await emitter.emit(SermasChannel.TOOL, {"name": "early"})

    received = []
    emitter.on(SermasChannel.TOOL, received.append)
    await emitter.emit(SermasChannel.TOOL, {"name": "late"})

    assert received == [{"name": "late"}]


@pytest.mark.asyncio
async def test_ready_has_no_payload(emitter):
    received = []
    emitter.on(SermasChannel.READY, received.append)

    await emitter.emit(SermasChannel.READY)

    assert received == [None]


@pytest.mark.asyncio
async def test_emit_without_listeners():
    assert await EventEmitter().emit(SermasChannel.TOOL, {}) == 0
