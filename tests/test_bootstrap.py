"""
Tests for AuthBootstrap: fixed-interval retry and single readiness event.
"""
import asyncio
import logging

import pytest
from unittest.mock import AsyncMock

from sermas_app.bootstrap import AuthBootstrap, ConnectionState
from sermas_app.emitter import SermasChannel


def make_bootstrap(client, emitter, sleep, on_ready=None, retry_interval=1.0):
    return AuthBootstrap(
        client=client,
        client_id="client-1",
        client_secret="secret-1",
        emitter=emitter,
        on_ready=on_ready,
        retry_interval=retry_interval,
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_retries_until_success_and_signals_ready_once(fake_client, emitter, fake_sleep):
    """Two failures then success: two 1s retries, one readiness event."""
    fake_client.load_token.side_effect = [
        ConnectionError("refused"),
        ConnectionError("refused"),
        None,
    ]
    ready = []
    emitter.on(SermasChannel.READY, ready.append)

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)
    await bootstrap.start()

    assert bootstrap.state is ConnectionState.READY
    assert bootstrap.attempts == 3
    assert fake_sleep.delays == [1.0, 1.0]
    assert fake_sleep.elapsed >= 2.0
    assert ready == [None]
    fake_client.load_token.assert_called_with("client-1", "secret-1")


@pytest.mark.asyncio
async def test_success_on_first_attempt_has_no_delay(fake_client, emitter, fake_sleep):
    ready = []
    emitter.on(SermasChannel.READY, ready.append)

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)
    await bootstrap.start()

    assert fake_sleep.delays == []
    assert bootstrap.attempts == 1
    assert ready == [None]


@pytest.mark.asyncio
async def test_delay_does_not_grow(fake_client, emitter, fake_sleep):
    fake_client.load_token.side_effect = [RuntimeError("bad")] * 6 + [None]

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)
    await bootstrap.start()

    assert fake_sleep.delays == [1.0] * 6


@pytest.mark.asyncio
async def test_on_ready_runs_after_ready_event(fake_client, emitter, fake_sleep):
    """Subscriptions start only after readiness was announced."""
    fake_client.load_token.side_effect = [RuntimeError("bad"), None]
    order = []
    emitter.on(SermasChannel.READY, lambda _: order.append("ready"))

    async def on_ready():
        order.append("register")

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep, on_ready=on_ready)
    await bootstrap.start()

    assert order == ["ready", "register"]


@pytest.mark.asyncio
async def test_on_ready_not_called_while_failing(fake_client, emitter):
    fake_client.load_token.side_effect = RuntimeError("invalid credentials")
    on_ready = AsyncMock()

    bootstrap = make_bootstrap(fake_client, emitter, asyncio.sleep, on_ready=on_ready, retry_interval=0.01)
    bootstrap.start()
    await asyncio.sleep(0.05)

    assert bootstrap.state is ConnectionState.BOOTSTRAPPING
    assert bootstrap.attempts >= 2
    on_ready.assert_not_called()

    await bootstrap.cancel()


@pytest.mark.asyncio
async def test_start_is_non_blocking(fake_client, emitter, fake_sleep):
    gate = asyncio.Event()

    async def slow_token(client_id, client_secret):
        await gate.wait()

    fake_client.load_token.side_effect = slow_token

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)
    assert bootstrap.state is ConnectionState.UNINITIALIZED

    task = bootstrap.start()
    await asyncio.sleep(0)

    assert not task.done()
    assert bootstrap.state is ConnectionState.BOOTSTRAPPING
    assert not bootstrap.is_ready

    gate.set()
    await task
    assert bootstrap.is_ready


@pytest.mark.asyncio
async def test_start_twice_does_not_fire_ready_twice(fake_client, emitter, fake_sleep):
    ready = []
    emitter.on(SermasChannel.READY, ready.append)

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)
    first = bootstrap.start()
    second = bootstrap.start()
    assert first is second
    await first

    third = bootstrap.start()
    assert third is first
    await asyncio.sleep(0)

    assert ready == [None]
    assert fake_client.load_token.call_count == 1


@pytest.mark.asyncio
async def test_cancel_stops_retry_loop(fake_client, emitter):
    fake_client.load_token.side_effect = RuntimeError("invalid credentials")

    bootstrap = make_bootstrap(fake_client, emitter, asyncio.sleep, retry_interval=0.01)
    bootstrap.start()
    await asyncio.sleep(0.05)
    await bootstrap.cancel()

    attempts = bootstrap.attempts
    await asyncio.sleep(0.05)

    assert bootstrap.attempts == attempts
    assert bootstrap.state is ConnectionState.BOOTSTRAPPING


@pytest.mark.asyncio
async def test_failures_are_logged_not_raised(fake_client, emitter, fake_sleep, caplog):
    fake_client.load_token.side_effect = [RuntimeError("401 Unauthorized"), None]

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)
    with caplog.at_level(logging.ERROR, logger="sermas_app.bootstrap"):
        await bootstrap.start()

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "Failed to load token" in errors[0].getMessage()


@pytest.mark.asyncio
async def test_failing_ready_handler_is_contained(fake_client, emitter, fake_sleep, caplog):
    async def on_ready():
        raise RuntimeError("boom")

    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep, on_ready=on_ready)
    with caplog.at_level(logging.ERROR):
        await bootstrap.start()

    assert bootstrap.is_ready
    assert "Ready handler failed" in caplog.text


@pytest.mark.asyncio
async def test_wait_ready(fake_client, emitter, fake_sleep):
    bootstrap = make_bootstrap(fake_client, emitter, fake_sleep)

    assert await bootstrap.wait_ready(timeout=0.01) is False

    bootstrap.start()
    assert await bootstrap.wait_ready(timeout=1.0) is True
