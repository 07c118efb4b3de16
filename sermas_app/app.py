"""
SermasApp - connection lifecycle for a SERMAS platform application.

The SermasApp class ties the platform client to the local process:
- Bootstraps credentials, retrying until the platform accepts them
- Registers the platform event subscriptions once ready
- Republishes platform events on a local event bus
- Caches the application descriptor
- Proxies one-shot platform calls, turning failures into absent results

Usage:
    from sermas_app import SermasApp, SermasChannel, SermasConfig

    app = SermasApp(SermasConfig())

    @app.on_channel(SermasChannel.TOOL)
    async def handle_tool(event):
        print(f"Tool {event.name} triggered with {event.values}")

    app.run()
"""
import asyncio
import logging
import signal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .bootstrap import AuthBootstrap, ConnectionState, Sleep
from .cache import AppDescriptorCache
from .client import SermasApiClient
from .config import SermasConfig
from .emitter import ChannelHandler, EventEmitter, SermasChannel
from .errors import NotFoundError
from .fanout import EventFanout
from .models import (
    AppToolsDto,
    DialogueMessageDto,
    DialogueToolsRepositoryOptionsDto,
    PlatformAppDto,
    QrCodeDto,
    SessionDto,
    SessionStorageRecordDto,
    SessionStorageSearchDto,
    UIContentDto,
)
from .subscriptions import Subscription, SubscriptionRegistry

logger = logging.getLogger(__name__)

QR_CODE_VERSION = 5


class SermasApp:
    """
    Session and connection lifecycle manager for one platform application.

    Nothing raised by the platform escapes this class: callers see either a
    value, an absent result, or, while credentials are rejected, readiness
    that has not happened yet.

    Attributes:
        config: Connection settings
        client: Platform client
        emitter: Local event bus
    """

    def __init__(
        self,
        config: Optional[SermasConfig] = None,
        client: Optional[Any] = None,
        emitter: Optional[EventEmitter] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the app. No network activity happens until `start()`.

        Args:
            config: Connection settings (loaded from the environment if omitted)
            client: Platform client (a `SermasApiClient` is built if omitted)
            emitter: Local event bus (a new one is created if omitted)
            sleep: Awaitable sleep used between bootstrap attempts
        """
        self.config = config or SermasConfig()
        self.app_id = self.config.app_id

        self.client = client or SermasApiClient(
            base_url=self.config.base_url,
            app_id=self.app_id,
            timeout=self.config.sermas_request_timeout,
        )
        self.emitter = emitter or EventEmitter()

        self._fanout = EventFanout(self.emitter)
        self._registry = SubscriptionRegistry(self.client, self._fanout)
        self._cache = AppDescriptorCache(
            self.client,
            self.app_id,
            single_flight=self.config.sermas_single_flight_app,
        )
        self._bootstrap = AuthBootstrap(
            client=self.client,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            emitter=self.emitter,
            on_ready=self._registry.register_all,
            retry_interval=self.config.sermas_retry_interval,
            sleep=sleep,
        )

        self._prefetch_task: Optional[asyncio.Task] = None
        self._running = False
        self._stopped = False

    def get_base_url(self) -> str:
        return self.config.base_url

    @property
    def state(self) -> ConnectionState:
        return self._bootstrap.state

    @property
    def subscriptions(self) -> Tuple[Subscription, ...]:
        return self._registry.subscriptions

    @property
    def bootstrap(self) -> AuthBootstrap:
        return self._bootstrap

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    # =========================================================================
    # Local event bus
    # =========================================================================

    def on(self, channel: Union[SermasChannel, str], handler: ChannelHandler) -> Callable[[], None]:
        """Attach a handler to a local channel. Returns the detach callable."""
        return self.emitter.on(channel, handler)

    def on_channel(self, channel: Union[SermasChannel, str]) -> Callable[[ChannelHandler], ChannelHandler]:
        """
        Decorator to attach a handler to a local channel.

        Usage:
            @app.on_channel(SermasChannel.SESSION)
            async def handle_session(event):
                ...
        """
        return self.emitter.on_channel(channel)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> asyncio.Task:
        """
        Start the connection lifecycle without blocking.

        Bootstraps credentials in the background; subscriptions are
        registered once the bootstrap succeeds. When prefetch is enabled the
        application descriptor is fetched in parallel, best effort.

        Returns:
            The bootstrap task
        """
        if self._stopped:
            raise RuntimeError(f"Sermas app {self.app_id} was stopped, create a new instance")
        if not self._running:
            logger.info(f"Starting sermas app {self.app_id} ({self.get_base_url()})")
            self._running = True
            if self.config.sermas_prefetch_app and self._prefetch_task is None:
                self._prefetch_task = asyncio.create_task(self.get_app())
        return self._bootstrap.start()

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until credentials were acquired. False on timeout."""
        return await self._bootstrap.wait_ready(timeout=timeout)

    async def stop(self) -> None:
        """
        Stop gracefully.

        Cancels a pending bootstrap, releases every subscription and closes
        the platform client, also when `start()` was never called. A stopped
        app cannot be started again.
        """
        if self._stopped:
            return
        self._stopped = True

        logger.info(f"Stopping sermas app {self.app_id}")
        self._running = False

        await self._bootstrap.cancel()

        if self._prefetch_task is not None and not self._prefetch_task.done():
            self._prefetch_task.cancel()
            try:
                await self._prefetch_task
            except asyncio.CancelledError:
                pass
        self._prefetch_task = None

        await self._registry.release_all()

        close = getattr(self.client, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Failed to close client: {e}")

        logger.info(f"Sermas app {self.app_id} stopped")

    async def __aenter__(self) -> "SermasApp":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def run(self) -> None:
        """
        Start the app and run until interrupted.

        Usage:
            if __name__ == "__main__":
                app.run()
        """
        async def _run():
            loop = asyncio.get_running_loop()
            stop_event = asyncio.Event()

            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop_event.set)

            try:
                self.start()
                await stop_event.wait()
            finally:
                await self.stop()

        try:
            asyncio.run(_run())
        except KeyboardInterrupt:
            pass

    # =========================================================================
    # Application descriptor
    # =========================================================================

    async def get_app(self) -> Optional[PlatformAppDto]:
        """Return the cached application descriptor, fetching it on first use."""
        return await self._cache.get_descriptor()

    # =========================================================================
    # Proxy calls
    # =========================================================================

    async def send_chat_message(self, message: DialogueMessageDto) -> bool:
        """Send a chat message to the session it belongs to."""
        if not message.session_id:
            logger.error("Failed to send chat message: missing sessionId")
            return False
        try:
            await self.client.chat_message(message.app_id, message.session_id, message)
            return True
        except Exception as e:
            logger.error(f"Failed to send chat message: {e}")
            return False

    async def send_ui_content(self, content: UIContentDto) -> bool:
        try:
            await self.client.publish_ui_content(content)
            return True
        except Exception as e:
            logger.error(f"Failed to send UI content: {e}")
            return False

    async def update_app_tools(self, tools: Sequence[AppToolsDto]) -> bool:
        """Replace the tools declared on the application."""
        try:
            await self.client.update_app_tools(self.app_id, list(tools))
        except Exception as e:
            logger.error(f"Failed to update app tools: {e}")
            return False
        logger.debug("Updated tools")
        return True

    async def set_tools(self, repository_id: str, tools: Sequence[AppToolsDto]) -> bool:
        """Replace the tools of a dialogue repository."""
        try:
            await self.client.set_tools(repository_id, self.app_id, list(tools))
        except Exception as e:
            logger.error(f"Failed to set tools: {e}")
            return False
        logger.debug("Updated tools")
        return True

    async def add_tools(
        self,
        repository_id: str,
        tools: Sequence[AppToolsDto],
        options: Optional[DialogueToolsRepositoryOptionsDto] = None,
    ) -> bool:
        """Add tools to a dialogue repository."""
        try:
            await self.client.add_tools(repository_id, self.app_id, list(tools), options)
        except Exception as e:
            logger.error(f"Failed to add tools: {e}")
            return False
        logger.debug("Updated tools")
        return True

    async def read_session(self, session_id: str) -> Optional[SessionDto]:
        try:
            return await self.client.read_session(session_id)
        except Exception as e:
            logger.error(f"Failed to readSession: {e}")
            return None

    async def get_record(self, storage_id: str) -> Optional[SessionStorageRecordDto]:
        """Fetch a storage record. A missing record is expected and not logged."""
        try:
            return await self.client.get_record(storage_id)
        except NotFoundError:
            return None
        except Exception as e:
            logger.error(f"Failed to getRecord: {e}")
            return None

    async def find_records(
        self,
        query: Union[SessionStorageSearchDto, Dict[str, Any]],
    ) -> Optional[List[SessionStorageRecordDto]]:
        try:
            return await self.client.find_records(query)
        except Exception as e:
            logger.error(f"Failed to findRecords: {e}")
            return None

    async def set_record(self, record: SessionStorageRecordDto) -> Optional[SessionStorageRecordDto]:
        try:
            return await self.client.set_record(record)
        except Exception as e:
            logger.error(f"Failed to setRecord: {e}")
            return None

    async def generate_qr_code(self, data: str) -> Optional[QrCodeDto]:
        try:
            return await self.client.generate_qr_code(data, version=QR_CODE_VERSION)
        except Exception as e:
            logger.error(f"Failed to generate QR code: {e}")
            return None
