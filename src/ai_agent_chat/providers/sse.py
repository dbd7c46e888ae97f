from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from loguru import logger

from ai_agent_chat.errors import StreamDecodeError
from ai_agent_chat.models import Source

DATA_MARKER = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    content_delta: str = ""
    sources: tuple[Source, ...] | None = None
    status: str | None = None
    is_final: bool = False


FINAL_EVENT = StreamEvent(is_final=True)


def decode_frame(frame: str) -> StreamEvent | None:
    """Decode one line of the event stream.

    Returns None for frames that carry nothing to apply (comments, blank
    keep-alive lines, role-only deltas). Raises StreamDecodeError when a data
    frame is not a completion envelope.
    """
    if not frame.startswith(DATA_MARKER):
        return None
    payload = frame[len(DATA_MARKER):]
    if payload.startswith(" "):
        payload = payload[1:]

    if payload == DONE_SENTINEL:
        return FINAL_EVENT

    try:
        envelope = json.loads(payload)
    except json.JSONDecodeError as ex:
        raise StreamDecodeError(frame, str(ex)) from ex

    delta = _first_delta(envelope, frame)
    if delta is None:
        return None

    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        raise StreamDecodeError(frame, "delta content is not a string")
    sources = _sources_from_annotations(delta.get("annotations"), frame)

    if not content and not sources:
        return None
    return StreamEvent(content_delta=content or "", sources=sources)


def _first_delta(envelope: object, frame: str) -> dict | None:
    if not isinstance(envelope, dict):
        raise StreamDecodeError(frame, "envelope is not an object")
    choices = envelope.get("choices")
    if not isinstance(choices, list):
        raise StreamDecodeError(frame, "envelope has no choices")
    if not choices:
        # usage-only chunks arrive with an empty choices list
        return None
    first = choices[0]
    if not isinstance(first, dict) or not isinstance(first.get("delta"), dict):
        raise StreamDecodeError(frame, "choice has no delta")
    return first["delta"]


def _sources_from_annotations(annotations: object, frame: str) -> tuple[Source, ...] | None:
    if not isinstance(annotations, list):
        return None
    sources: list[Source] = []
    for annotation in annotations:
        if not isinstance(annotation, dict) or annotation.get("type") != "url_citation":
            continue
        citation = annotation.get("url_citation") or {}
        if not isinstance(citation, dict):
            raise StreamDecodeError(frame, "url_citation is not an object")
        url = citation.get("url")
        if not url:
            continue
        sources.append(
            Source(
                title=str(citation.get("title") or url),
                url=str(url),
                snippet=str(citation.get("snippet") or ""),
            )
        )
    return tuple(sources) or None


class FrameDecoder:
    """Turns a line stream into StreamEvents, dropping malformed frames."""

    def __init__(self) -> None:
        self.dropped_frames = 0

    async def events(self, lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
        async for line in lines:
            try:
                event = decode_frame(line)
            except StreamDecodeError as ex:
                self.dropped_frames += 1
                logger.debug(f"Dropping stream frame: {ex} ({ex.frame[:200]!r})")
                continue
            if event is None:
                continue
            yield event
            if event.is_final:
                return
