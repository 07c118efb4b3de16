"""
HTTP client for the SERMAS platform API.

This module provides the `SermasApiClient` used by `SermasApp` to talk to the
platform:
- HTTP calls for authentication and data access
- Server-Sent Events (SSE) streams for platform event subscriptions

Usage:
    from sermas_app.client import SermasApiClient

    async with SermasApiClient("http://localhost:8080", app_id="my-app") as client:
        await client.load_token("client-id", "client-secret")
        app = await client.read_app("my-app")

        async def on_session(event):
            print(event.operation, event.record.session_id)

        teardown = await client.on_session_changed(on_session)
        ...
        await teardown()
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from .errors import (
    AuthenticationError,
    NotFoundError,
    SermasApiError,
    SubscriptionError,
)
from .models import (
    AccessTokenDto,
    AgentChangedDto,
    AppToolsDto,
    DialogueMessageDto,
    DialogueToolsRepositoryOptionsDto,
    DialogueToolTriggeredEventDto,
    PlatformAppDto,
    QrCodeDto,
    SessionChangedDto,
    SessionDto,
    SessionStorageRecordDto,
    SessionStorageSearchDto,
    UIContentDto,
    UIInteractionEventDto,
    UpdateUserEventDto,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Callback invoked for each event delivered on a stream
EventCallback = Callable[[Any], Awaitable[None]]
# Detaches a remote listener
Teardown = Callable[[], Awaitable[None]]

# Platform event topics, relative to app/{appId}/
TOPIC_USER_LOGIN = "auth/login"
TOPIC_SESSION_CHANGED = "session/session"
TOPIC_AGENT_CHANGED = "session/agent"
TOPIC_TOOL_TRIGGERED = "dialogue/tool/triggered"
TOPIC_UI_INTERACTION = "ui/interaction"


def _body(value: Any) -> Any:
    """Convert DTOs (or lists of DTOs) to JSON-ready payloads."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True, mode="json")
    if isinstance(value, (list, tuple)):
        return [_body(v) for v in value]
    return value


class SermasApiClient:
    """
    Client for the SERMAS platform REST API and event streams.

    Every data call raises on failure:
    - `NotFoundError` for HTTP 404
    - `SermasApiError` for any other non-2xx status
    - `httpx.HTTPError` for transport failures

    Attributes:
        base_url: Base URL of the platform (e.g., "http://localhost:8080")
        app_id: Application the client acts for
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the platform
            app_id: Application identifier used for event topics
            timeout: HTTP request timeout in seconds
            http_client: Pre-built httpx client (mainly for tests)
            reconnect_base_delay: Initial delay before reopening a dropped stream
            reconnect_max_delay: Maximum delay before reopening a dropped stream
        """
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.timeout = timeout
        self._reconnect_base_delay = reconnect_base_delay
        self._reconnect_max_delay = reconnect_max_delay

        self._token: Optional[str] = None
        self._http_client = http_client
        self._streams: List[asyncio.Task] = []

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    # =========================================================================
    # HTTP plumbing
    # =========================================================================

    def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            # Streams are long-lived, so reads never time out
            timeout = httpx.Timeout(
                connect=10.0,
                read=None,
                write=self.timeout,
                pool=None,
            )
            self._http_client = httpx.AsyncClient(timeout=timeout)
        return self._http_client

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        client = self._ensure_http_client()
        url = f"{self.base_url}{path}"

        response = await client.request(
            method,
            url,
            json=_body(json_body) if json_body is not None else None,
            params=params,
            headers=self._headers(),
            timeout=self.timeout,
        )

        if response.status_code == 404:
            raise NotFoundError(url=url)
        if response.status_code >= 400:
            raise SermasApiError(response.status_code, response.text, url=url)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _parse(model: Type[T], data: Any) -> Optional[T]:
        if data is None:
            return None
        return model.model_validate(data)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def load_token(self, client_id: str, client_secret: str) -> AccessTokenDto:
        """
        Exchange client credentials for an access token.

        Args:
            client_id: Platform client identifier
            client_secret: Platform client secret

        Returns:
            The issued token

        Raises:
            AuthenticationError: If the credentials are rejected or the
                platform cannot be reached
        """
        logger.debug(f"Requesting access token for client {client_id}")
        try:
            data = await self._request(
                "POST",
                "/api/platform/token/access_token",
                json_body={
                    "clientId": client_id,
                    "clientSecret": client_secret,
                    "appId": self.app_id,
                },
            )
            token = AccessTokenDto.model_validate(data)
        except SermasApiError as e:
            raise AuthenticationError(f"Token request rejected: {e}") from e
        except (httpx.HTTPError, ValidationError) as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        self._token = token.access_token
        return token

    # =========================================================================
    # Platform
    # =========================================================================

    async def read_app(self, app_id: str) -> PlatformAppDto:
        data = await self._request("GET", f"/api/platform/app/{app_id}")
        return self._parse(PlatformAppDto, data)

    async def update_app_tools(
        self,
        app_id: str,
        tools: Sequence[Union[AppToolsDto, Dict[str, Any]]],
    ) -> Optional[PlatformAppDto]:
        data = await self._request("PUT", f"/api/platform/app/{app_id}/tools", json_body=list(tools))
        return self._parse(PlatformAppDto, data)

    # =========================================================================
    # Dialogue
    # =========================================================================

    async def chat_message(
        self,
        app_id: str,
        session_id: str,
        message: Union[DialogueMessageDto, Dict[str, Any]],
    ) -> None:
        await self._request("POST", f"/api/dialogue/chat/{app_id}/{session_id}", json_body=message)

    async def set_tools(
        self,
        repository_id: str,
        app_id: str,
        tools: Sequence[Union[AppToolsDto, Dict[str, Any]]],
    ) -> None:
        """Replace the tools of a dialogue repository."""
        await self._request(
            "PUT",
            f"/api/dialogue/tools/{repository_id}",
            json_body={
                "repositoryId": repository_id,
                "appId": app_id,
                "tools": _body(list(tools)),
            },
        )

    async def add_tools(
        self,
        repository_id: str,
        app_id: str,
        tools: Sequence[Union[AppToolsDto, Dict[str, Any]]],
        options: Optional[Union[DialogueToolsRepositoryOptionsDto, Dict[str, Any]]] = None,
    ) -> None:
        """Add tools to a dialogue repository, keeping existing ones."""
        body: Dict[str, Any] = {
            "repositoryId": repository_id,
            "appId": app_id,
            "tools": _body(list(tools)),
        }
        if options is not None:
            body["options"] = _body(options)
        await self._request("POST", f"/api/dialogue/tools/{repository_id}", json_body=body)

    # =========================================================================
    # Session
    # =========================================================================

    async def read_session(self, session_id: str) -> SessionDto:
        data = await self._request("GET", f"/api/session/{session_id}")
        return self._parse(SessionDto, data)

    async def get_record(self, storage_id: str) -> SessionStorageRecordDto:
        data = await self._request("GET", f"/api/session/storage/{storage_id}")
        return self._parse(SessionStorageRecordDto, data)

    async def find_records(
        self,
        query: Union[SessionStorageSearchDto, Dict[str, Any]],
    ) -> List[SessionStorageRecordDto]:
        data = await self._request("POST", "/api/session/storage/search", json_body=query)
        return [SessionStorageRecordDto.model_validate(item) for item in data or []]

    async def set_record(
        self,
        record: Union[SessionStorageRecordDto, Dict[str, Any]],
    ) -> SessionStorageRecordDto:
        data = await self._request("POST", "/api/session/storage", json_body=record)
        return self._parse(SessionStorageRecordDto, data)

    # =========================================================================
    # UI
    # =========================================================================

    async def generate_qr_code(self, data: str, version: int = 5) -> QrCodeDto:
        result = await self._request(
            "POST",
            "/api/ui/qrcode",
            json_body={"version": version, "data": data},
        )
        return self._parse(QrCodeDto, result)

    async def publish_ui_content(self, content: Union[UIContentDto, Dict[str, Any]]) -> None:
        await self._request("POST", "/api/ui/content", json_body=content)

    # =========================================================================
    # Event subscriptions
    # =========================================================================

    async def on_user_login(self, callback: EventCallback) -> Teardown:
        return await self._subscribe(TOPIC_USER_LOGIN, UpdateUserEventDto, callback)

    async def on_session_changed(self, callback: EventCallback) -> Teardown:
        return await self._subscribe(TOPIC_SESSION_CHANGED, SessionChangedDto, callback)

    async def on_tool_triggered(self, callback: EventCallback) -> Teardown:
        return await self._subscribe(TOPIC_TOOL_TRIGGERED, DialogueToolTriggeredEventDto, callback)

    async def on_interaction(self, callback: EventCallback) -> Teardown:
        return await self._subscribe(TOPIC_UI_INTERACTION, UIInteractionEventDto, callback)

    async def on_agent_changed(self, callback: EventCallback) -> Teardown:
        return await self._subscribe(TOPIC_AGENT_CHANGED, AgentChangedDto, callback)

    async def _subscribe(
        self,
        topic: str,
        model: Type[BaseModel],
        callback: EventCallback,
    ) -> Teardown:
        """
        Open an event stream and return its teardown.

        Resolves once the platform accepted the stream, so a rejected
        subscription raises here instead of failing in the background.

        Raises:
            SubscriptionError: If the stream could not be opened
        """
        full_topic = f"app/{self.app_id}/{topic}"
        accepted: asyncio.Future = asyncio.get_running_loop().create_future()

        task = asyncio.create_task(self._run_stream(full_topic, model, callback, accepted))
        self._streams.append(task)

        try:
            await accepted
        except (SubscriptionError, asyncio.CancelledError):
            await self._cancel_stream(task)
            raise

        logger.debug(f"Subscribed to {full_topic}")

        async def teardown() -> None:
            await self._cancel_stream(task)
            logger.debug(f"Unsubscribed from {full_topic}")

        return teardown

    async def _cancel_stream(self, task: asyncio.Task) -> None:
        if task in self._streams:
            self._streams.remove(task)
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run_stream(
        self,
        topic: str,
        model: Type[BaseModel],
        callback: EventCallback,
        accepted: asyncio.Future,
    ) -> None:
        """
        Keep one event stream open.

        The first connection failure is reported through `accepted`. Once the
        stream was accepted, drops are retried with exponential backoff; events
        emitted while disconnected are not replayed.
        """
        attempt = 0

        while True:
            try:
                await self._stream_events(topic, model, callback, accepted)
                attempt = 0
            except asyncio.CancelledError:
                if not accepted.done():
                    accepted.set_exception(SubscriptionError(topic, "cancelled"))
                raise
            except Exception as e:
                if not accepted.done():
                    accepted.set_exception(SubscriptionError(topic, str(e) or type(e).__name__))
                    return

                error_msg = str(e).strip()
                if error_msg:
                    logger.warning(f"Stream {topic} connection issue: {error_msg}")
                else:
                    logger.debug(f"Stream {topic} disconnected, reconnecting...")

                delay = min(
                    self._reconnect_base_delay * (2 ** attempt),
                    self._reconnect_max_delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            # Server closed the stream gracefully; reopen it
            await asyncio.sleep(self._reconnect_base_delay)

    async def _stream_events(
        self,
        topic: str,
        model: Type[BaseModel],
        callback: EventCallback,
        accepted: asyncio.Future,
    ) -> None:
        client = self._ensure_http_client()
        url = f"{self.base_url}/api/events/stream"

        async with client.stream(
            "GET",
            url,
            params={"topic": topic},
            headers={**self._headers(), "Accept": "text/event-stream"},
        ) as response:
            if response.status_code != 200:
                raise ConnectionError(f"SSE connection failed: {response.status_code}")

            if not accepted.done():
                accepted.set_result(True)

            event_type = "message"
            data_lines: List[str] = []

            async for line in response.aiter_lines():
                line = line.strip()

                if not line:
                    # Empty line = end of event
                    if data_lines:
                        await self._handle_sse_event(topic, event_type, "\n".join(data_lines), model, callback)
                    event_type = "message"
                    data_lines = []
                    continue

                if line.startswith("event:"):
                    event_type = line[6:].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[5:].strip())
                # Ignore other fields (id, retry, comments)

    async def _handle_sse_event(
        self,
        topic: str,
        event_type: str,
        data: str,
        model: Type[BaseModel],
        callback: EventCallback,
    ) -> None:
        if event_type == "heartbeat":
            logger.debug(f"Received heartbeat on {topic}")
            return
        if event_type != "message":
            logger.debug(f"Unknown SSE event type on {topic}: {event_type}")
            return

        try:
            event = model.model_validate(json.loads(data))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to parse event on {topic}: {e}")
            return

        try:
            await callback(event)
        except Exception as e:
            logger.error(f"Error in callback for {topic}: {e}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Close all open streams and the HTTP client."""
        for task in list(self._streams):
            await self._cancel_stream(task)

        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "SermasApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
