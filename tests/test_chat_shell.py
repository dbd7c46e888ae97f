import asyncio
import io
import json
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from ai_agent_chat.commands.router import CommandRouter
from ai_agent_chat.engine import ChatEngine, EngineConfig
from ai_agent_chat.models import ProviderSettings, Role, Session, Turn
from ai_agent_chat.providers.sse import FINAL_EVENT, StreamEvent
from ai_agent_chat.secret_store import InMemorySecretStore
from ai_agent_chat.settings import SettingsManager
from ai_agent_chat.shell import ChatShell
from ai_agent_chat.storage import SessionStore

_SETTINGS = ProviderSettings(api_key="sk-test-key-0123456789")


class _ScriptedStream:
    def __init__(self, events: list[StreamEvent]) -> None:
        self._events = iter(events)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamEvent:
        try:
            return next(self._events)
        except StopIteration:
            raise StopAsyncIteration from None

    async def aclose(self) -> None:
        pass


class _EchoProvider:
    """Replies with the last user message prefixed by 'echo: '."""

    def __init__(self) -> None:
        self.requests: list = []

    async def open(self, request, settings):
        self.requests.append(request)
        last = request.messages[-1].content.to_wire()
        if isinstance(last, list):
            last = last[0]["text"]
        return _ScriptedStream([StreamEvent(content_delta=f"echo: {last}"), FINAL_EVENT])


class CommandRouterTests(unittest.TestCase):
    def _router(self, calls: list):
        def record(name):
            async def handler(*args):
                calls.append((name, *args))

            return handler

        return CommandRouter(
            on_help=record("help"),
            on_new=record("new"),
            on_sessions=record("sessions"),
            on_load=record("load"),
            on_delete=record("delete"),
            on_attach=record("attach"),
            on_export=record("export"),
            on_import=record("import"),
            on_model=record("model"),
            on_unknown=lambda command: calls.append(("unknown", command)),
        )

    def test_dispatches_commands_with_arguments(self) -> None:
        calls: list = []
        router = self._router(calls)

        async def scenario():
            results = [
                await router.try_handle("/help"),
                await router.try_handle("/new"),
                await router.try_handle("/sessions 5"),
                await router.try_handle("/load  abc123 "),
                await router.try_handle("/attach notes.txt summarize this"),
                await router.try_handle("/model gpt-4o"),
                await router.try_handle("/bogus"),
                await router.try_handle("hello"),
            ]
            return results

        results = asyncio.run(scenario())

        self.assertEqual([True, True, True, True, True, True, True, False], results)
        self.assertEqual(
            [
                ("help",),
                ("new",),
                ("sessions", "5"),
                ("load", "abc123"),
                ("attach", "notes.txt summarize this"),
                ("model", "gpt-4o"),
                ("unknown", "/bogus"),
            ],
            calls,
        )


class ChatShellTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = Path(tempfile.mkdtemp(prefix="chat-shell-"))
        self._provider = _EchoProvider()
        self._engine = ChatEngine(
            EngineConfig(
                provider=self._provider,
                store=SessionStore(self._tmp_dir / "sessions.json"),
                settings_provider=lambda: _SETTINGS,
            )
        )
        self._shell = ChatShell(self._engine)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _run(self, *lines: str) -> str:
        out = io.StringIO()

        async def scenario():
            for line in lines:
                await self._shell.handle_line(line)

        with redirect_stdout(out):
            asyncio.run(scenario())
        return out.getvalue()

    def test_plain_message_is_sent_and_completed(self) -> None:
        self._run("hello")

        turns = self._engine.current_session.turns
        self.assertEqual(["hello", "echo: hello"], [t.content for t in turns])
        self.assertFalse(turns[-1].is_streaming)
        self.assertFalse(self._engine.is_streaming)

    def test_new_then_sessions_lists_saved_chat(self) -> None:
        output = self._run("first question", "/new", "/sessions")

        self.assertIn("Started a new chat.", output)
        self.assertIn("first question", output)
        self.assertEqual(1, len(self._engine.sessions))
        self.assertEqual([], self._engine.current_session.turns)

    def test_load_by_short_id(self) -> None:
        self._run("remember me", "/new")
        saved = self._engine.sessions[0]

        output = self._run(f"/load {saved.id[:8]}")

        self.assertIs(saved, self._engine.current_session)
        self.assertIn("Loaded: remember me", output)
        self.assertIn("(user=1, assistant=1)", output)

    def test_load_unknown_session(self) -> None:
        output = self._run("/load nope")
        self.assertIn("Session not found: nope", output)

    def test_delete_session(self) -> None:
        self._run("to delete", "/new")
        saved = self._engine.sessions[0]

        output = self._run(f"/delete {saved.id}")

        self.assertIn("Deleted: to delete", output)
        self.assertEqual((), self._engine.sessions)

    def test_attach_sends_file_with_default_prompt(self) -> None:
        path = self._tmp_dir / "notes.txt"
        path.write_text("some notes", encoding="utf-8")

        self._run(f"/attach {path}")

        user_turn = self._engine.current_session.turns[0]
        self.assertEqual("I've uploaded notes.txt. Please analyze it.", user_turn.content)
        self.assertEqual(["notes.txt"], [a.name for a in user_turn.attachments])
        parts = self._provider.requests[0].messages[-1].content.to_wire()
        self.assertIn("[File: notes.txt]", parts[1]["text"])

    def test_attach_missing_file_reports_error(self) -> None:
        output = self._run(f"/attach {self._tmp_dir / 'missing.txt'}")
        self.assertIn("Error reading file", output)
        self.assertEqual([], self._engine.current_session.turns)

    def test_export_and_import(self) -> None:
        export_path = self._tmp_dir / "export.json"
        self._run("exported chat", f"/export {export_path}")
        exported = json.loads(export_path.read_text(encoding="utf-8"))
        self.assertEqual("exported chat", exported["title"])

        output = self._run(f"/import {export_path}")

        self.assertIn("Imported: exported chat", output)
        imported = self._engine.sessions[0]
        self.assertNotEqual(self._engine.current_session.id, imported.id)
        self.assertEqual(["exported chat", "echo: exported chat"], [t.content for t in imported.turns])

    def test_import_invalid_file_reports_error(self) -> None:
        bad = self._tmp_dir / "bad.json"
        bad.write_text("not json", encoding="utf-8")
        output = self._run(f"/import {bad}")
        self.assertIn("Error importing chat", output)

    def test_unknown_command(self) -> None:
        output = self._run("/frobnicate")
        self.assertIn("Unknown command: /frobnicate", output)

    def test_history_is_sent_with_each_request(self) -> None:
        session = Session()
        session.add_turn(Turn(role=Role.USER, content="earlier"))
        session.add_turn(Turn(role=Role.ASSISTANT, content="reply"))
        self._engine.load_session(session)

        self._run("again")

        roles = [m.role for m in self._provider.requests[0].messages]
        self.assertEqual(["user", "assistant", "user"], roles)


class ModelCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = Path(tempfile.mkdtemp(prefix="chat-shell-model-"))
        self._settings = SettingsManager(_SETTINGS, InMemorySecretStore(), self._tmp_dir / "preferences.json")
        self._settings.update(api_key=_SETTINGS.api_key)
        self._provider = _EchoProvider()
        engine = ChatEngine(
            EngineConfig(
                provider=self._provider,
                store=SessionStore(self._tmp_dir / "sessions.json"),
                settings_provider=self._settings.current,
            )
        )
        self._shell = ChatShell(engine, self._settings)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def _run(self, *lines: str) -> str:
        out = io.StringIO()

        async def scenario():
            for line in lines:
                await self._shell.handle_line(line)

        with redirect_stdout(out):
            asyncio.run(scenario())
        return out.getvalue()

    def test_lists_models_and_marks_current(self) -> None:
        output = self._run("/model")
        self.assertIn("* gpt-4o-mini", output)
        self.assertIn("GPT-4 Turbo", output)

    def test_switch_model_applies_to_next_request_and_persists(self) -> None:
        output = self._run("/model gpt-4o", "hi")

        self.assertIn("Model: GPT-4o", output)
        self.assertEqual("gpt-4o", self._provider.requests[0].model)
        prefs = json.loads((self._tmp_dir / "preferences.json").read_text(encoding="utf-8"))
        self.assertEqual("gpt-4o", prefs["model"])

    def test_unknown_model_is_rejected(self) -> None:
        output = self._run("/model gpt-9")
        self.assertIn("Unknown model: gpt-9", output)
        self.assertEqual("gpt-4o-mini", self._settings.provider_settings.model)

    def test_image_on_non_vision_model_prints_note(self) -> None:
        image = self._tmp_dir / "photo.png"
        image.write_bytes(b"\x89PNG")
        self._run("/model gpt-3.5-turbo")

        output = self._run(f"/attach {image}")

        self.assertIn("does not support images", output)


if __name__ == "__main__":
    unittest.main()
