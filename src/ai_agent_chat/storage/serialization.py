from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime, timedelta

from ai_agent_chat.errors import PersistenceError
from ai_agent_chat.models import Attachment, AttachmentKind, Role, Session, Source, Turn


def session_to_dict(session: Session) -> dict:
    return {
        "id": session.id,
        "title": session.title,
        "messages": [turn_to_dict(t) for t in session.turns],
        "createdAt": _format_time(session.created_at),
        "updatedAt": _format_time(session.updated_at),
    }


def turn_to_dict(turn: Turn) -> dict:
    data: dict = {
        "id": turn.id,
        "content": turn.content,
        "role": turn.role.value,
        "timestamp": _format_time(turn.created_at),
        # only a live engine holds a streaming turn; files never do
        "isStreaming": False,
    }
    if turn.attachments is not None:
        data["files"] = [_attachment_to_dict(a) for a in turn.attachments]
    if turn.sources is not None:
        data["sources"] = [
            {"id": s.id, "title": s.title, "url": s.url, "snippet": s.snippet}
            for s in turn.sources
        ]
    if turn.status is not None:
        data["status"] = turn.status
    return data


def _attachment_to_dict(attachment: Attachment) -> dict:
    data: dict = {
        "id": attachment.id,
        "name": attachment.name,
        "type": attachment.kind.value,
        "size": attachment.size,
    }
    if attachment.data is not None:
        data["data"] = base64.b64encode(attachment.data).decode("ascii")
    if attachment.preview is not None:
        data["preview"] = attachment.preview
    return data


def session_from_dict(data: object) -> Session:
    """Rebuild a Session, raising PersistenceError on any schema mismatch."""
    try:
        if not isinstance(data, dict):
            raise TypeError("session entry is not an object")
        turns = [_turn_from_dict(t) for t in _list(data.get("messages", []))]
        return Session(
            id=str(data["id"]),
            title=str(data["title"]),
            turns=turns,
            created_at=_parse_time(data["createdAt"]),
            updated_at=_parse_time(data["updatedAt"]),
        )
    except (KeyError, TypeError, ValueError, OverflowError, binascii.Error) as ex:
        raise PersistenceError(f"Malformed session data: {type(ex).__name__}: {ex}") from ex


def _turn_from_dict(data: object) -> Turn:
    if not isinstance(data, dict):
        raise TypeError("message entry is not an object")
    files = data.get("files")
    sources = data.get("sources")
    return Turn(
        id=str(data["id"]),
        role=Role(data["role"]),
        content=str(data.get("content", "")),
        attachments=None if files is None else [_attachment_from_dict(f) for f in _list(files)],
        sources=None if sources is None else [_source_from_dict(s) for s in _list(sources)],
        # a persisted turn is never the target of a live stream
        is_streaming=False,
        status=data.get("status"),
        created_at=_parse_time(data["timestamp"]),
    )


def _attachment_from_dict(data: object) -> Attachment:
    if not isinstance(data, dict):
        raise TypeError("file entry is not an object")
    raw = data.get("data")
    return Attachment(
        id=str(data["id"]),
        name=str(data["name"]),
        kind=AttachmentKind(data["type"]),
        size=int(data["size"]),
        data=None if raw is None else base64.b64decode(raw, validate=True),
        preview=data.get("preview"),
    )


def _source_from_dict(data: object) -> Source:
    if not isinstance(data, dict):
        raise TypeError("source entry is not an object")
    return Source(
        id=str(data["id"]),
        title=str(data["title"]),
        url=str(data["url"]),
        snippet=str(data.get("snippet", "")),
    )


def _list(value: object) -> list:
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return value


def _format_time(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds")


# Files written by the desktop app store dates as seconds since 2001-01-01 UTC.
_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=UTC)


def _parse_time(value: object) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _REFERENCE_DATE + timedelta(seconds=value)
    if not isinstance(value, str):
        raise TypeError("timestamp is not a string or number")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
