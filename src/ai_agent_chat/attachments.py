from __future__ import annotations

import asyncio
import base64
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from ai_agent_chat.models import Attachment, AttachmentKind


def attachment_from_bytes(name: str, data: bytes) -> Attachment:
    kind = AttachmentKind.from_filename(name)
    preview = base64.b64encode(data).decode("ascii") if kind is AttachmentKind.IMAGE else None
    return Attachment(name=name, kind=kind, size=len(data), data=data, preview=preview)


async def load_attachment(path: str | Path) -> Attachment:
    """Read a file off the event loop and wrap it as an Attachment.

    Raises OSError when the file cannot be read.
    """
    file_path = Path(path).expanduser()
    data = await asyncio.to_thread(file_path.read_bytes)
    attachment = attachment_from_bytes(file_path.name, data)
    logger.debug(f"Loaded attachment {attachment.name} ({attachment.kind.value}, {attachment.size} bytes)")
    return attachment


async def load_attachments(paths: Sequence[str | Path]) -> list[Attachment]:
    attachments: list[Attachment] = []
    for path in paths:
        try:
            attachments.append(await load_attachment(path))
        except OSError as ex:
            logger.warning(f"Error reading file {path}: {ex}")
    return attachments


def upload_prompt(attachments: Sequence[Attachment]) -> str:
    if len(attachments) == 1:
        return f"I've uploaded {attachments[0].name}. Please analyze it."
    return f"I've uploaded {len(attachments)} files. Please analyze them."
