from __future__ import annotations

from ai_agent_chat.models import Role, Session


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8, preview_chars: int = 80):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._preview_chars = preview_chars

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_session_list_entry(self, session: Session, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        updated = session.updated_at.isoformat(timespec="minutes").replace("T", " ")
        return (
            f"{self._line_prefix}{marker} {session.title} [{self.short_id(session.id)}] "
            f"(turns={session.turn_count}, updated={updated})"
        )

    def format_loaded_summary_lines(self, session: Session) -> list[str]:
        user_count = sum(1 for t in session.turns if t.role is Role.USER)
        assistant_count = sum(1 for t in session.turns if t.role is Role.ASSISTANT)
        lines = [f"{self._line_prefix}Loaded: {session.title}"]
        lines.append(
            f"{self._line_prefix}- Messages: {session.turn_count} "
            f"(user={user_count}, assistant={assistant_count})"
        )
        last = session.last_turn
        if last is not None and last.content:
            lines.append(f"{self._line_prefix}- Last {last.role.display_name}: {self._preview(last.content)}")
        return lines

    def _preview(self, text: str) -> str:
        text = " ".join(text.split())
        if len(text) <= self._preview_chars:
            return text
        return text[: self._preview_chars - 3] + "..."
