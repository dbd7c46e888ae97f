from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from ai_agent_chat.errors import PersistenceError
from ai_agent_chat.models import Session
from ai_agent_chat.storage.serialization import session_from_dict, session_to_dict

DEFAULT_SESSIONS_FILE = "chat-sessions.json"


def write_atomically(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` so readers see either the old or the new file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class SessionStore:
    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_all(self) -> list[Session]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_bytes())
            if not isinstance(raw, list):
                raise PersistenceError("Session file does not contain a list")
            sessions = [session_from_dict(entry) for entry in raw]
        except OSError as ex:
            logger.warning(f"Could not read sessions from {self._path}: {ex}")
            return []
        except (json.JSONDecodeError, UnicodeDecodeError, PersistenceError) as ex:
            logger.warning(f"Ignoring malformed session file {self._path}: {ex}")
            self._quarantine()
            return []

        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        logger.info(f"Loaded {len(sessions)} session(s) from {self._path}")
        return sessions

    def save_all(self, sessions: Iterable[Session]) -> None:
        snapshot = [session_to_dict(s) for s in sessions]
        try:
            data = json.dumps(snapshot, ensure_ascii=False, indent=2).encode("utf-8")
            write_atomically(self._path, data)
        except (OSError, TypeError, ValueError) as ex:
            raise PersistenceError(f"Could not save sessions to {self._path}: {ex}") from ex
        logger.debug(f"Saved {len(snapshot)} session(s) to {self._path}")

    def import_one(self, data: bytes) -> Session:
        try:
            raw = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as ex:
            raise PersistenceError(f"Imported chat is not valid JSON: {ex}") from ex
        return session_from_dict(raw)

    def export_one(self, session: Session) -> bytes:
        return json.dumps(session_to_dict(session), ensure_ascii=False, indent=2).encode("utf-8")

    def _quarantine(self) -> None:
        target = self._path.with_name(self._path.name + ".corrupt")
        try:
            os.replace(self._path, target)
        except OSError as ex:
            logger.warning(f"Could not move malformed session file aside: {ex}")
            return
        logger.warning(f"Moved malformed session file to {target}")
