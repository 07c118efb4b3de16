"""
Shared fixtures for sermas_app tests.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from sermas_app.config import SermasConfig
from sermas_app.emitter import EventEmitter


class FakeSleep:
    """Simulated clock: records requested delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    @property
    def elapsed(self) -> float:
        return sum(self.delays)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeSermasClient:
    """
    In-memory stand-in for SermasApiClient.

    Subscription calls record their callback and hand back a MagicMock
    teardown. Set `fail_subscriptions` to make individual ones raise.
    """

    SUBSCRIPTIONS = (
        "on_user_login",
        "on_session_changed",
        "on_tool_triggered",
        "on_interaction",
        "on_agent_changed",
    )

    def __init__(self):
        self.load_token = AsyncMock(return_value=None)
        self.read_app = AsyncMock(return_value={"appId": "a1", "name": "Demo"})
        self.update_app_tools = AsyncMock(return_value=None)
        self.chat_message = AsyncMock(return_value=None)
        self.set_tools = AsyncMock(return_value=None)
        self.add_tools = AsyncMock(return_value=None)
        self.read_session = AsyncMock(return_value=None)
        self.get_record = AsyncMock(return_value=None)
        self.find_records = AsyncMock(return_value=[])
        self.set_record = AsyncMock(return_value=None)
        self.generate_qr_code = AsyncMock(return_value=None)
        self.publish_ui_content = AsyncMock(return_value=None)
        self.close = AsyncMock(return_value=None)

        self.callbacks: Dict[str, Callable] = {}
        self.teardowns: Dict[str, MagicMock] = {}
        self.fail_subscriptions: Dict[str, Exception] = {}
        self.subscribe_order: List[str] = []
        self.subscribe_gate: Optional[asyncio.Event] = None

        for name in self.SUBSCRIPTIONS:
            setattr(self, name, self._make_subscription(name))

    def _make_subscription(self, name: str):
        async def subscribe(callback):
            self.subscribe_order.append(name)
            if self.subscribe_gate is not None:
                await self.subscribe_gate.wait()
            if name in self.fail_subscriptions:
                raise self.fail_subscriptions[name]
            self.callbacks[name] = callback
            teardown = MagicMock(name=f"teardown_{name}")
            self.teardowns[name] = teardown
            return teardown

        return subscribe

    async def deliver(self, name: str, payload: Any) -> None:
        """Simulate the platform invoking a registered callback."""
        await self.callbacks[name](payload)


@pytest.fixture
def fake_client():
    return FakeSermasClient()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def config():
    return SermasConfig(
        sermas_base_url="http://sermas.test",
        sermas_client_id="client-1",
        sermas_client_secret="secret-1",
        sermas_appid="a1",
        sermas_prefetch_app=False,
    )
