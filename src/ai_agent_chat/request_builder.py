from __future__ import annotations

import base64
import mimetypes
from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from ai_agent_chat.errors import ConfigurationError
from ai_agent_chat.models import Attachment, AttachmentKind, ProviderSettings, Turn

_DEFAULT_IMAGE_MEDIA_TYPE = "image/png"


@dataclass(frozen=True)
class TextPart:
    text: str

    def to_wire(self) -> dict:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    url: str

    def to_wire(self) -> dict:
        return {"type": "image_url", "image_url": {"url": self.url}}


ContentPart = TextPart | ImagePart


@dataclass(frozen=True)
class TextContent:
    text: str

    def to_wire(self) -> str:
        return self.text


@dataclass(frozen=True)
class MultimodalContent:
    parts: tuple[ContentPart, ...] = ()

    def to_wire(self) -> list[dict]:
        return [part.to_wire() for part in self.parts]


MessageContent = TextContent | MultimodalContent


@dataclass(frozen=True)
class ProviderMessage:
    role: str
    content: MessageContent

    def to_wire(self) -> dict:
        return {"role": self.role, "content": self.content.to_wire()}


@dataclass(frozen=True)
class ChatRequest:
    model: str
    messages: tuple[ProviderMessage, ...]
    temperature: float
    max_tokens: int
    stream: bool = True
    web_search: bool = field(default=False)

    def to_payload(self) -> dict:
        payload: dict = {
            "model": self.model,
            "messages": [m.to_wire() for m in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": self.stream,
        }
        if self.web_search:
            payload["web_search_options"] = {}
        return payload


def build_request(history: Sequence[Turn], settings: ProviderSettings) -> ChatRequest:
    """Convert a turn history into a streaming chat-completion request.

    ``history`` must not contain the empty assistant placeholder that is
    waiting for the reply.
    """
    if not settings.has_api_key:
        raise ConfigurationError("OpenAI API key is missing. Please configure it in Settings.")

    messages = tuple(
        ProviderMessage(role=turn.role.value, content=_to_content(turn))
        for turn in history
    )
    logger.debug(
        f"Built request: model={settings.model}, messages={len(messages)}, "
        f"temperature={settings.temperature}, max_tokens={settings.max_tokens}"
    )
    return ChatRequest(
        model=settings.model,
        messages=messages,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        stream=True,
        web_search=settings.web_search_enabled,
    )


def _to_content(turn: Turn) -> MessageContent:
    if not turn.attachments:
        return TextContent(turn.content)

    parts: list[ContentPart] = []
    if turn.content:
        parts.append(TextPart(turn.content))
    for attachment in turn.attachments:
        part = _attachment_part(attachment)
        if part is not None:
            parts.append(part)
    return MultimodalContent(tuple(parts))


def _attachment_part(attachment: Attachment) -> ContentPart | None:
    if attachment.data is None:
        logger.debug(f"Skipping attachment without payload: {attachment.name}")
        return None

    if attachment.kind is AttachmentKind.IMAGE:
        encoded = base64.b64encode(attachment.data).decode("ascii")
        return ImagePart(f"data:{image_media_type(attachment.name)};base64,{encoded}")

    try:
        text = attachment.data.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug(f"Skipping attachment that is not valid UTF-8: {attachment.name}")
        return None
    return TextPart(f"[File: {attachment.name}]\n```\n{text}\n```")


def image_media_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    if guessed and guessed.startswith("image/"):
        return guessed
    return _DEFAULT_IMAGE_MEDIA_TYPE
