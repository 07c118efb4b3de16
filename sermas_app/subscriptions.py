"""
Registration and bookkeeping of remote event subscriptions.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from .emitter import SermasChannel
from .fanout import EventFanout

logger = logging.getLogger(__name__)

# Detaches a remote listener; may be sync or async
Teardown = Callable[[], Any]


@dataclass(frozen=True)
class Registration:
    """One remote listener to install."""
    name: str
    subscribe: Callable[[Callable[[Any], Awaitable[None]]], Awaitable[Teardown]]
    callback: Callable[[Any], Awaitable[None]]
    channel: Optional[SermasChannel] = None  # None = logged only


@dataclass(frozen=True)
class Subscription:
    """A successfully installed remote listener."""
    name: str
    channel: Optional[SermasChannel]
    teardown: Teardown


class SubscriptionRegistry:
    """
    Installs the fixed set of remote listeners and tracks their teardowns.

    All registrations are issued at once. A failing registration is logged
    and skipped; it is not retried and does not affect the others. The
    resulting subscriptions are kept in declaration order, independent of
    the order in which the platform answered.
    """

    def __init__(self, client: Any, fanout: EventFanout):
        """
        Args:
            client: Platform client exposing the `on_*` subscription calls
            fanout: Builds the forwarding callbacks
        """
        self._client = client
        self._fanout = fanout
        self._subscriptions: List[Subscription] = []

        self.registrations: Tuple[Registration, ...] = (
            Registration(
                name="user-login",
                subscribe=client.on_user_login,
                callback=fanout.log_user_login,
            ),
            Registration(
                name="session-changed",
                subscribe=client.on_session_changed,
                callback=fanout.forwarder(SermasChannel.SESSION),
                channel=SermasChannel.SESSION,
            ),
            Registration(
                name="tool-triggered",
                subscribe=client.on_tool_triggered,
                callback=fanout.forwarder(SermasChannel.TOOL),
                channel=SermasChannel.TOOL,
            ),
            Registration(
                name="ui-interaction",
                subscribe=client.on_interaction,
                callback=fanout.forwarder(SermasChannel.UI_INTERACTION),
                channel=SermasChannel.UI_INTERACTION,
            ),
            Registration(
                name="agent-changed",
                subscribe=client.on_agent_changed,
                callback=fanout.forwarder(SermasChannel.AGENT_CHANGED),
                channel=SermasChannel.AGENT_CHANGED,
            ),
        )

    @property
    def subscriptions(self) -> Tuple[Subscription, ...]:
        """Currently active subscriptions, in declaration order."""
        return tuple(self._subscriptions)

    async def register_all(self) -> int:
        """
        Install every listener concurrently.

        Returns:
            Number of registrations that succeeded
        """
        results = await asyncio.gather(
            *(registration.subscribe(registration.callback) for registration in self.registrations),
            return_exceptions=True,
        )

        succeeded = 0
        for registration, result in zip(self.registrations, results):
            if isinstance(result, BaseException):
                logger.error(f"Subscribe failed for {registration.name}: {result}")
                continue
            self._subscriptions.append(
                Subscription(
                    name=registration.name,
                    channel=registration.channel,
                    teardown=result,
                )
            )
            succeeded += 1

        logger.info(
            f"Sermas initialization completed "
            f"({succeeded}/{len(self.registrations)} subscriptions active)"
        )
        return succeeded

    async def release_all(self) -> None:
        """
        Detach every active listener.

        Each teardown is invoked once. Teardown failures are logged and the
        remaining teardowns still run.
        """
        subscriptions, self._subscriptions = self._subscriptions, []

        for subscription in subscriptions:
            try:
                result = subscription.teardown()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Failed to release {subscription.name}: {e}")

        if subscriptions:
            logger.debug(f"Released {len(subscriptions)} subscriptions")
