"""
Lazy cache for the application descriptor.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class DescriptorState(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"


class AppDescriptorCache:
    """
    Fetches the application descriptor once and keeps it for the process
    lifetime.

    A failed fetch is not cached: the cache stays absent and the next call
    fetches again. By default concurrent callers that arrive before the first
    success each issue their own fetch. With `single_flight=True` they share
    the pending fetch instead.

    Usage:
        cache = AppDescriptorCache(client, app_id="my-app")
        app = await cache.get_descriptor()   # remote fetch
        app = await cache.get_descriptor()   # cached
    """

    def __init__(self, client: Any, app_id: str, single_flight: bool = False):
        """
        Args:
            client: Platform client exposing `read_app(app_id)`
            app_id: Application whose descriptor is cached
            single_flight: Share one in-flight fetch between concurrent callers
        """
        self._client = client
        self.app_id = app_id
        self.single_flight = single_flight

        self._state = DescriptorState.ABSENT
        self._value: Optional[Any] = None
        self._pending: Optional[asyncio.Future] = None
        self.fetch_count = 0

    @property
    def state(self) -> DescriptorState:
        return self._state

    @property
    def value(self) -> Optional[Any]:
        """The cached descriptor, or None while absent."""
        return self._value

    async def get_descriptor(self) -> Optional[Any]:
        """
        Return the descriptor, fetching it if not cached yet.

        Returns:
            The descriptor, or None if the fetch failed
        """
        if self._state is DescriptorState.PRESENT:
            return self._value

        if not self.single_flight:
            return await self._fetch()

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._fetch())
            self._pending.add_done_callback(self._clear_pending)
        # Shield so one cancelled caller does not cancel the shared fetch
        return await asyncio.shield(self._pending)

    def _clear_pending(self, _future: asyncio.Future) -> None:
        self._pending = None

    async def _fetch(self) -> Optional[Any]:
        logger.debug(f"Load app {self.app_id}")
        self.fetch_count += 1
        try:
            descriptor = await self._client.read_app(self.app_id)
        except Exception as e:
            logger.error(f"Failed to load app {self.app_id}: {e}")
            logger.debug("App load traceback", exc_info=True)
            return None

        if descriptor is None:
            logger.warning(f"App {self.app_id} returned no descriptor")
            return None

        # A concurrent fetch may have won already; the first value stays
        if self._state is DescriptorState.ABSENT:
            self._value = descriptor
            self._state = DescriptorState.PRESENT
        return self._value
