"""
Credential bootstrap for the platform connection.

`AuthBootstrap` acquires an access token before any subscription is made.
Failures are retried forever at a fixed interval; the only way out of the
loop is success or `cancel()`.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .emitter import EventEmitter, SermasChannel

logger = logging.getLogger(__name__)

# Called once after readiness was announced
ReadyHandler = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_RETRY_INTERVAL = 1.0  # seconds


class ConnectionState(str, Enum):
    """Lifecycle of the platform connection. Transitions only move forward."""
    UNINITIALIZED = "uninitialized"
    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"


class AuthBootstrap:
    """
    Acquires credentials and announces readiness exactly once.

    The retry loop runs as a single background task: an attempt is made,
    and only after it settled is the fixed retry delay awaited. Attempts
    never overlap and the delay never grows.

    Usage:
        bootstrap = AuthBootstrap(
            client=client,
            client_id="my-client",
            client_secret="secret",
            emitter=emitter,
            on_ready=registry.register_all,
        )
        bootstrap.start()          # returns immediately
        await bootstrap.wait_ready()
    """

    def __init__(
        self,
        client: Any,
        client_id: str,
        client_secret: str,
        emitter: EventEmitter,
        on_ready: Optional[ReadyHandler] = None,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Args:
            client: Platform client exposing `load_token(client_id, client_secret)`
            client_id: Client identifier, fixed for the lifetime of the bootstrap
            client_secret: Client secret, fixed for the lifetime of the bootstrap
            emitter: Local bus that receives the `sermas.ready` event
            on_ready: Coroutine function run after readiness was emitted
            retry_interval: Delay between a failed attempt and the next one
            sleep: Awaitable sleep used for the retry delay
        """
        self._client = client
        self._client_id = client_id
        self._client_secret = client_secret
        self._emitter = emitter
        self._on_ready = on_ready
        self._retry_interval = retry_interval
        self._sleep = sleep

        self._state = ConnectionState.UNINITIALIZED
        self._task: Optional[asyncio.Task] = None
        self._ready_event = asyncio.Event()
        self.attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    def start(self) -> asyncio.Task:
        """
        Begin bootstrapping in the background.

        Returns the bootstrap task. Calling this again while the bootstrap is
        running, or after it succeeded, returns the same task and never
        causes a second readiness event.
        """
        if self._task is not None and (not self._task.done() or self.is_ready):
            logger.warning("Bootstrap already started")
            return self._task

        self._state = ConnectionState.BOOTSTRAPPING
        self._task = asyncio.create_task(self._run())
        return self._task

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the connection is ready.

        Returns:
            True if ready, False if the timeout expired first
        """
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def cancel(self) -> None:
        """Stop the retry loop, or a ready handler still in progress."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("Bootstrap cancelled")

    async def _attempt(self) -> bool:
        self.attempts += 1
        logger.debug("Loading token")
        try:
            await self._client.load_token(self._client_id, self._client_secret)
        except Exception as e:
            logger.error(f"Failed to load token, retrying: {e}")
            logger.debug("Token failure traceback", exc_info=True)
            return False
        return True

    async def _run(self) -> None:
        logger.debug("Initializing sermas client")

        while not await self._attempt():
            await self._sleep(self._retry_interval)

        self._state = ConnectionState.READY
        self._ready_event.set()
        logger.debug("sermas client ready")
        await self._emitter.emit(SermasChannel.READY)

        if self._on_ready is not None:
            try:
                await self._on_ready()
            except Exception as e:
                logger.error(f"Ready handler failed: {e}")
