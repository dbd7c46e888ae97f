from __future__ import annotations

import asyncio
import json

import httpx
from loguru import logger
from tenacity import retry

from ai_agent_chat.errors import AuthenticationError, TransportError
from ai_agent_chat.models import ProviderSettings
from ai_agent_chat.providers.common import default_retry_kwargs
from ai_agent_chat.providers.sse import FrameDecoder, StreamEvent
from ai_agent_chat.request_builder import ChatRequest

DEFAULT_BASE_URL = "https://api.openai.com/v1"
_COMPLETIONS_PATH = "/chat/completions"
_END_OF_STREAM = object()


class EventStream:
    """Cancellable, lazily consumed sequence of StreamEvents.

    A producer task reads the response body line by line and hands decoded
    events to the consumer through a bounded queue. ``aclose()`` cancels the
    producer and releases the connection; iteration then simply stops.
    """

    def __init__(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        *,
        max_buffered_events: int = 16,
    ):
        self._response = response
        self._client = client
        self._decoder = FrameDecoder()
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max(1, max_buffered_events))
        self._producer: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped_frames(self) -> int:
        return self._decoder.dropped_frames

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration
        if self._producer is None:
            self._producer = asyncio.create_task(self._produce())

        item = await self._queue.get()
        if item is _END_OF_STREAM:
            await self.aclose()
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            await self.aclose()
            raise item
        return item  # type: ignore[return-value]

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
            try:
                await self._producer
            except asyncio.CancelledError:
                pass
        await self._response.aclose()
        await self._client.aclose()
        if self._decoder.dropped_frames:
            logger.warning(f"Dropped {self._decoder.dropped_frames} malformed stream frame(s)")
        logger.debug("Stream closed")

    async def _produce(self) -> None:
        try:
            async for event in self._decoder.events(self._response.aiter_lines()):
                await self._queue.put(event)
            await self._queue.put(_END_OF_STREAM)
        except httpx.HTTPError as ex:
            logger.warning(f"Stream interrupted: {type(ex).__name__}: {ex}")
            await self._queue.put(TransportError(None, f"Connection interrupted: {type(ex).__name__}"))
        except Exception as ex:
            await self._queue.put(ex)


class ChatCompletionClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        max_buffered_events: int = 16,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport
        self._max_buffered_events = max_buffered_events

    async def open(self, request: ChatRequest, settings: ProviderSettings) -> EventStream:
        if not settings.has_api_key:
            raise AuthenticationError()

        try:
            response, client = await self._send(request, settings.api_key)
        except httpx.HTTPError as ex:
            logger.error(f"Chat completion request failed: {type(ex).__name__}: {ex}")
            raise TransportError(None, f"Could not reach the API ({type(ex).__name__})") from ex

        logger.debug(f"Stream opened: HTTP {response.status_code}")
        return EventStream(response, client, max_buffered_events=self._max_buffered_events)

    @retry(**default_retry_kwargs((httpx.ConnectError, httpx.ConnectTimeout)))
    async def _send(self, request: ChatRequest, api_key: str) -> tuple[httpx.Response, httpx.AsyncClient]:
        client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "Accept": "text/event-stream",
        }
        logger.debug(
            f"API request: POST {self._base_url}{_COMPLETIONS_PATH}, model={request.model}, "
            f"messages={len(request.messages)}"
        )
        try:
            http_request = client.build_request(
                "POST", _COMPLETIONS_PATH, headers=headers, content=json.dumps(request.to_payload())
            )
            response = await client.send(http_request, stream=True)
        except BaseException:
            await client.aclose()
            raise

        if response.is_success:
            return response, client

        try:
            body = await response.aread()
        finally:
            await response.aclose()
            await client.aclose()
        detail = _error_detail(body)
        logger.error(f"API error: HTTP {response.status_code} {detail}")
        error = TransportError(response.status_code)
        if detail:
            error = TransportError(response.status_code, f"{error}: {detail}")
        raise error


def _error_detail(body: bytes) -> str:
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ""
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
        return str(parsed["error"].get("message") or "")
    return ""
