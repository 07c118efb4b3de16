"""
Local event bus for the hosting process.

Events received from the platform are re-published here under a closed set
of channel names. Other parts of the process subscribe to these channels
instead of talking to the platform directly.

Usage:
    from sermas_app.emitter import EventEmitter, SermasChannel

    emitter = EventEmitter()

    @emitter.on_channel(SermasChannel.SESSION)
    async def handle_session(event):
        print(f"Session {event.record.session_id} {event.operation}")

    await emitter.emit(SermasChannel.SESSION, event)
"""
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# Handlers may be plain functions or coroutines
ChannelHandler = Callable[[Any], Union[None, Awaitable[None]]]


class SermasChannel(str, Enum):
    """
    Channels of the local event bus.

    Adding a channel requires a matching forwarder in the fanout so that
    every name here is actually fed by the platform.
    """
    SESSION = "session"                  # SessionChangedDto
    TOOL = "tool"                        # DialogueToolTriggeredEventDto
    UI_INTERACTION = "ui.interaction"    # UIInteractionEventDto
    AGENT_CHANGED = "agent.changed"      # AgentChangedDto
    READY = "sermas.ready"               # no payload


def _as_channel(channel: Union[SermasChannel, str]) -> SermasChannel:
    try:
        return SermasChannel(channel)
    except ValueError:
        raise ValueError(
            f"Unknown channel '{channel}'. "
            f"Expected one of: {[c.value for c in SermasChannel]}"
        ) from None


class EventEmitter:
    """
    In-process publish/subscribe bus keyed by `SermasChannel`.

    Delivery is at-most-once and immediate: there is no buffering, and a
    listener attached after an event fired does not receive it.
    """

    def __init__(self):
        self._handlers: Dict[SermasChannel, List[ChannelHandler]] = {
            channel: [] for channel in SermasChannel
        }

    def on(
        self,
        channel: Union[SermasChannel, str],
        handler: ChannelHandler,
    ) -> Callable[[], None]:
        """
        Attach a handler to a channel.

        Args:
            channel: Channel to listen on
            handler: Called with the event payload, sync or async.
                Readiness handlers receive None.

        Returns:
            A callable that detaches the handler again
        """
        key = _as_channel(channel)
        self._handlers[key].append(handler)
        logger.debug(f"Registered handler for channel: {key.value}")

        def unsubscribe() -> None:
            self.off(key, handler)

        return unsubscribe

    def on_channel(self, channel: Union[SermasChannel, str]) -> Callable[[ChannelHandler], ChannelHandler]:
        """
        Decorator form of `on()`.

        Usage:
            @emitter.on_channel(SermasChannel.TOOL)
            async def handle_tool(event):
                ...
        """
        def decorator(func: ChannelHandler) -> ChannelHandler:
            self.on(channel, func)
            return func
        return decorator

    def off(self, channel: Union[SermasChannel, str], handler: ChannelHandler) -> bool:
        """Detach a handler. Returns False if it was not attached."""
        handlers = self._handlers[_as_channel(channel)]
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def listener_count(self, channel: Union[SermasChannel, str]) -> int:
        """Number of handlers attached to a channel."""
        return len(self._handlers[_as_channel(channel)])

    async def emit(self, channel: Union[SermasChannel, str], payload: Optional[Any] = None) -> int:
        """
        Deliver a payload to every handler of a channel.

        Handlers run in registration order. A failing handler is logged and
        does not prevent the remaining handlers from running.

        Args:
            channel: Target channel
            payload: Event payload, passed through unchanged

        Returns:
            Number of handlers invoked
        """
        key = _as_channel(channel)
        # Snapshot so handlers may detach themselves while running
        handlers = list(self._handlers[key])

        if not handlers:
            logger.debug(f"No handlers for channel: {key.value}")
            return 0

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in handler for {key.value}: {e}")
                logger.debug("Handler traceback", exc_info=True)

        return len(handlers)
