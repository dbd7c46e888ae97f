from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_new: Callable[[], Awaitable[None]],
        on_sessions: Callable[[str], Awaitable[None]],
        on_load: Callable[[str], Awaitable[None]],
        on_delete: Callable[[str], Awaitable[None]],
        on_attach: Callable[[str], Awaitable[None]],
        on_export: Callable[[str], Awaitable[None]],
        on_import: Callable[[str], Awaitable[None]],
        on_model: Callable[[str], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._routes: list[tuple[str, Callable[[str], Awaitable[None]]]] = [
            ("/sessions", on_sessions),
            ("/load", on_load),
            ("/delete", on_delete),
            ("/attach", on_attach),
            ("/export", on_export),
            ("/import", on_import),
            ("/model", on_model),
        ]
        self._on_help = on_help
        self._on_new = on_new
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        if trimmed == "/help":
            await self._on_help()
            return True
        if trimmed == "/new":
            await self._on_new()
            return True

        command, _, argument = trimmed.partition(" ")
        for name, handler in self._routes:
            if command == name:
                await handler(argument.strip())
                return True

        self._on_unknown(trimmed)
        return True
