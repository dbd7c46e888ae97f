from __future__ import annotations

import asyncio
import shlex
from pathlib import Path

from loguru import logger

from ai_agent_chat.attachments import load_attachment, upload_prompt
from ai_agent_chat.commands.router import CommandRouter
from ai_agent_chat.engine import ChatEngine
from ai_agent_chat.errors import PersistenceError
from ai_agent_chat.models import AttachmentKind, ChatModel
from ai_agent_chat.services.session_controller import SessionController
from ai_agent_chat.settings import SettingsManager


class ChatShell:
    _LINE_PREFIX = "assistant> "
    _DEFAULT_LIST_LIMIT = 20

    def __init__(self, engine: ChatEngine, settings: SettingsManager | None = None):
        self._engine = engine
        self._settings = settings
        self._session_controller = SessionController(line_prefix=self._LINE_PREFIX)
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_new=self._on_new,
            on_sessions=self._on_sessions,
            on_load=self._on_load,
            on_delete=self._on_delete,
            on_attach=self._on_attach,
            on_export=self._on_export,
            on_import=self._on_import,
            on_model=self._on_model,
            on_unknown=self._on_unknown,
        )

    async def handle_line(self, line: str) -> None:
        if await self._command_router.try_handle(line):
            return
        if self._engine.send_message(line):
            await self._engine.wait_until_idle()

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Commands:")
        print(f"{self._LINE_PREFIX}  /new                      start a new chat")
        print(f"{self._LINE_PREFIX}  /sessions [limit]         list saved chats")
        print(f"{self._LINE_PREFIX}  /load <id>                switch to a saved chat")
        print(f"{self._LINE_PREFIX}  /delete <id>              delete a saved chat")
        print(f"{self._LINE_PREFIX}  /attach <path> [message]  send a file with an optional message")
        print(f"{self._LINE_PREFIX}  /export <path>            write the current chat as JSON")
        print(f"{self._LINE_PREFIX}  /import <path>            add a chat from a JSON export")
        print(f"{self._LINE_PREFIX}  /model [name]             show or switch the model")
        print(f"{self._LINE_PREFIX}Press Ctrl-C while a reply streams to stop it.")

    async def _on_new(self) -> None:
        self._engine.start_new_chat()
        print(f"{self._LINE_PREFIX}Started a new chat.")

    async def _on_sessions(self, argument: str) -> None:
        limit = self._DEFAULT_LIST_LIMIT
        if argument:
            try:
                limit = max(1, int(argument))
            except ValueError:
                print(f"{self._LINE_PREFIX}Usage: /sessions [limit]")
                return
        sessions = self._engine.sessions[:limit]
        if not sessions:
            print(f"{self._LINE_PREFIX}No saved chats.")
            return
        active_id = self._engine.current_session.id
        for session in sessions:
            print(self._session_controller.format_session_list_entry(session, active_session_id=active_id))

    async def _on_load(self, argument: str) -> None:
        session = self._resolve(argument, usage="/load <id>")
        if session is None:
            return
        self._engine.load_session(session)
        for line in self._session_controller.format_loaded_summary_lines(session):
            print(line)

    async def _on_delete(self, argument: str) -> None:
        session = self._resolve(argument, usage="/delete <id>")
        if session is None:
            return
        self._engine.delete_session(session)
        print(f"{self._LINE_PREFIX}Deleted: {session.title}")

    async def _on_attach(self, argument: str) -> None:
        try:
            parts = shlex.split(argument)
        except ValueError as ex:
            print(f"{self._LINE_PREFIX}Could not parse arguments: {ex}")
            return
        if not parts:
            print(f"{self._LINE_PREFIX}Usage: /attach <path> [message]")
            return
        try:
            attachment = await load_attachment(parts[0])
        except OSError as ex:
            print(f"{self._LINE_PREFIX}Error reading file: {ex}")
            return
        self._warn_if_no_vision(attachment.kind)
        message = " ".join(parts[1:]) or upload_prompt([attachment])
        if self._engine.send_message(message, [attachment]):
            await self._engine.wait_until_idle()

    async def _on_export(self, argument: str) -> None:
        if not argument:
            argument = f"chat-{self._engine.current_session.id}.json"
        path = Path(argument).expanduser()
        try:
            await asyncio.to_thread(path.write_bytes, self._engine.export_current_session())
        except OSError as ex:
            logger.error(f"Error exporting chat: {ex}")
            print(f"{self._LINE_PREFIX}Error exporting chat: {ex}")
            return
        print(f"{self._LINE_PREFIX}Exported to {path}")

    async def _on_import(self, argument: str) -> None:
        if not argument:
            print(f"{self._LINE_PREFIX}Usage: /import <path>")
            return
        try:
            data = await asyncio.to_thread(Path(argument).expanduser().read_bytes)
            session = self._engine.import_session(data)
        except (OSError, PersistenceError) as ex:
            logger.error(f"Error importing chat: {ex}")
            print(f"{self._LINE_PREFIX}Error importing chat: {ex}")
            return
        print(f"{self._LINE_PREFIX}Imported: {session.title} [{self._session_controller.short_id(session.id)}]")

    async def _on_model(self, argument: str) -> None:
        if self._settings is None:
            print(f"{self._LINE_PREFIX}Model settings are not available.")
            return
        current = self._settings.provider_settings.model
        if not argument:
            for model in ChatModel:
                marker = "*" if model.value == current else " "
                print(f"{self._LINE_PREFIX}{marker} {model.value:<14} {model.display_name} - {model.description}")
            return
        try:
            model = ChatModel(argument)
        except ValueError:
            print(f"{self._LINE_PREFIX}Unknown model: {argument}")
            return
        self._settings.update(model=model.value)
        try:
            self._settings.save()
        except OSError as ex:
            logger.warning(f"Could not save preferences: {ex}")
        print(f"{self._LINE_PREFIX}Model: {model.display_name}")

    def _warn_if_no_vision(self, kind: AttachmentKind) -> None:
        if kind is not AttachmentKind.IMAGE or self._settings is None:
            return
        try:
            model = ChatModel(self._settings.provider_settings.model)
        except ValueError:
            return
        if not model.supports_vision:
            print(f"{self._LINE_PREFIX}Note: {model.display_name} does not support images.")

    def _on_unknown(self, command: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown command: {command}. Type /help for commands.")

    def _resolve(self, identifier: str, *, usage: str):
        if not identifier:
            print(f"{self._LINE_PREFIX}Usage: {usage}")
            return None
        try:
            session = self._engine.find_session(identifier)
        except ValueError as ex:
            print(f"{self._LINE_PREFIX}{ex}")
            return None
        if session is None:
            print(f"{self._LINE_PREFIX}Session not found: {identifier}")
        return session
