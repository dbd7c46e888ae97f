from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from ai_agent_chat.models import ProviderSettings
from ai_agent_chat.providers.sse import StreamEvent
from ai_agent_chat.request_builder import ChatRequest


@runtime_checkable
class CompletionStream(Protocol):
    def __aiter__(self) -> AsyncIterator[StreamEvent]: ...

    async def aclose(self) -> None:
        """Stop the stream and release the connection. Safe to call twice."""
        ...


@runtime_checkable
class StreamingProvider(Protocol):
    async def open(self, request: ChatRequest, settings: ProviderSettings) -> CompletionStream:
        """Start a streaming completion.

        Raises AuthenticationError before any network call when the key is
        missing, and TransportError for non-2xx responses.
        """
        ...


def create_provider(
    provider_name: str,
    *,
    base_url: str | None = None,
    connect_timeout: float = 10.0,
    read_timeout: float = 60.0,
) -> StreamingProvider:
    """Factory: create a StreamingProvider by name."""
    name = provider_name.strip().lower()
    if name == "openai":
        from ai_agent_chat.providers.openai_stream_client import DEFAULT_BASE_URL, ChatCompletionClient
        return ChatCompletionClient(
            base_url=base_url or DEFAULT_BASE_URL,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'openai'")
