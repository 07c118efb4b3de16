"""
Republishes platform events on the local event bus.
"""
import logging
from typing import Any, Awaitable, Callable

from .emitter import EventEmitter, SermasChannel

logger = logging.getLogger(__name__)


def _field(payload: Any, name: str, default: Any = None) -> Any:
    """Read a field from a DTO or a plain mapping."""
    if isinstance(payload, dict):
        return payload.get(name, default)
    return getattr(payload, name, default)


def _describe(channel: SermasChannel, payload: Any) -> str:
    if channel is SermasChannel.SESSION:
        operation = str(_field(payload, "operation", "")).upper()
        record = _field(payload, "record")
        session_id = _field(record, "session_id") or _field(record, "sessionId")
        return f"session changed {operation} sessionId={session_id}"
    if channel is SermasChannel.TOOL:
        return f"Tool triggered: {_field(payload, 'name')}"
    if channel is SermasChannel.AGENT_CHANGED:
        return f"Agent changed: {_field(payload, 'operation')}"
    return f"Forwarding {channel.value}"


class EventFanout:
    """
    Builds the callbacks installed on remote event streams.

    Each callback re-emits the payload it receives, unchanged, on the local
    bus. Nothing is buffered or deduplicated; ordering is whatever order the
    platform client invokes the callbacks in.
    """

    def __init__(self, emitter: EventEmitter):
        self.emitter = emitter

    def forwarder(self, channel: SermasChannel) -> Callable[[Any], Awaitable[None]]:
        """
        Create the remote callback for a channel.

        Args:
            channel: Local channel the payloads are emitted on

        Raises:
            ValueError: For the readiness channel, which is not fed remotely
        """
        channel = SermasChannel(channel)
        if channel is SermasChannel.READY:
            raise ValueError("sermas.ready is emitted by the bootstrap, not forwarded")

        async def forward(payload: Any) -> None:
            if channel is not SermasChannel.UI_INTERACTION:
                logger.debug(_describe(channel, payload))
            await self.emitter.emit(channel, payload)

        return forward

    async def log_user_login(self, event: Any) -> None:
        """Callback for user login notices, which are logged and not forwarded."""
        logger.debug(f"User login: {event}")
