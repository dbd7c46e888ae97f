from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from loguru import logger

from ai_agent_chat.engine_events import EngineEvent, EngineEvents, EngineObserver, EnginePhase, EngineState
from ai_agent_chat.errors import ChatEngineError, PersistenceError
from ai_agent_chat.models import Attachment, ProviderSettings, Role, Session, Turn, new_id
from ai_agent_chat.provider import CompletionStream, StreamingProvider
from ai_agent_chat.providers.sse import StreamEvent
from ai_agent_chat.request_builder import build_request
from ai_agent_chat.storage import SessionStore

ERROR_MESSAGE_PREFIX = "Sorry, I encountered an error: "


@dataclass
class EngineConfig:
    provider: StreamingProvider
    store: SessionStore
    settings_provider: Callable[[], ProviderSettings] = field(default=ProviderSettings)
    save_conversations: bool = True
    auto_generate_title: bool = True


class ChatEngine:
    """Owns the active session and drives the request/stream lifecycle.

    All mutation happens on the event loop thread. A reply is streamed by a
    single background task; each delta is folded into the placeholder turn
    and observers are notified before the next await, so a fold and its
    notification are never interleaved with another fold.
    """

    def __init__(self, config: EngineConfig):
        self._provider = config.provider
        self._store = config.store
        self._settings_provider = config.settings_provider
        self._save_conversations = config.save_conversations
        self._auto_generate_title = config.auto_generate_title
        self._events = EngineEvents()
        self._session = Session()
        self._sessions: list[Session] = self._store.load_all()
        self._phase = EnginePhase.IDLE
        self._streaming_turn_id: str | None = None
        self._stream_task: asyncio.Task | None = None

    # -- read-only views --

    @property
    def current_session(self) -> Session:
        return self._session

    @property
    def sessions(self) -> tuple[Session, ...]:
        return tuple(self._sessions)

    @property
    def phase(self) -> EnginePhase:
        return self._phase

    @property
    def streaming_turn_id(self) -> str | None:
        return self._streaming_turn_id

    @property
    def is_streaming(self) -> bool:
        return self._streaming_turn_id is not None

    @property
    def state(self) -> EngineState:
        return EngineState(
            phase=self._phase,
            session_id=self._session.id,
            streaming_turn_id=self._streaming_turn_id,
            turn_count=self._session.turn_count,
        )

    def subscribe(self, observer: EngineObserver) -> Callable[[], None]:
        return self._events.subscribe(observer)

    # -- messaging --

    def send_message(self, text: str, attachments: Sequence[Attachment] = ()) -> bool:
        """Append a user turn and start streaming the reply.

        Returns False without touching the session when there is nothing to
        send or a reply is already streaming.
        """
        if not text.strip() and not attachments:
            return False
        if self._streaming_turn_id is not None:
            logger.debug("Ignoring send while a reply is streaming")
            return False
        loop = asyncio.get_running_loop()

        session = self._session
        user_turn = Turn(role=Role.USER, content=text, attachments=list(attachments) or None)
        session.add_turn(user_turn, derive_title=self._auto_generate_title)
        self._notify("turn.appended", user_turn.id)

        placeholder = Turn(role=Role.ASSISTANT, is_streaming=True)
        session.add_turn(placeholder, derive_title=False)
        self._streaming_turn_id = placeholder.id
        self._phase = EnginePhase.DISPATCHING
        self._notify("turn.appended", placeholder.id)

        task = loop.create_task(self._stream_reply(session, placeholder))
        task.add_done_callback(self._on_stream_task_done)
        self._stream_task = task
        logger.info(f"Dispatching reply for session {session.id} ({session.turn_count} turns)")
        return True

    def stop_generating(self) -> None:
        """Cancel the in-flight reply and go idle without waiting for the transport."""
        task = self._stream_task
        if task is not None and not task.done():
            task.cancel()
        if self._streaming_turn_id is not None:
            logger.info(f"Stopped generating turn {self._streaming_turn_id}")
            self._finish_stream("cancelled")

    async def wait_until_idle(self) -> None:
        task = self._stream_task
        while task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
            task = self._stream_task

    async def shutdown(self) -> None:
        self.stop_generating()
        await self.wait_until_idle()

    # -- session management --

    def start_new_chat(self) -> None:
        self.stop_generating()
        if self._session.turns:
            self._save_current_session()
        self._session = Session()
        self._notify("session.changed")

    def load_session(self, session: Session) -> None:
        self.stop_generating()
        if self._session.turns:
            self._save_current_session()
        self._session = session
        self._notify("session.changed")

    def delete_session(self, session: Session) -> None:
        was_active = session.id == self._session.id
        if was_active:
            self.stop_generating()
        self._sessions = [s for s in self._sessions if s.id != session.id]
        self._persist()
        self._notify("sessions.changed")
        if was_active:
            self._session = Session()
            self._notify("session.changed")

    def find_session(self, identifier: str) -> Session | None:
        """Look up a stored session by full id or unique id prefix."""
        identifier = identifier.strip()
        if not identifier:
            return None
        matches = [s for s in self._sessions if s.id == identifier]
        if not matches:
            matches = [s for s in self._sessions if s.id.startswith(identifier)]
        if len(matches) > 1:
            raise ValueError(f"Session identifier is ambiguous: {identifier}")
        return matches[0] if matches else None

    def import_session(self, data: bytes) -> Session:
        """Add an exported chat to the session list. Raises PersistenceError on bad input."""
        session = self._store.import_one(data)
        known_ids = {s.id for s in self._sessions} | {self._session.id}
        if session.id in known_ids:
            session.id = new_id()
        self._sessions.insert(0, session)
        self._persist()
        self._notify("sessions.changed")
        logger.info(f"Imported session {session.id} ({session.turn_count} turns)")
        return session

    def export_current_session(self) -> bytes:
        return self._store.export_one(self._session)

    # -- streaming --

    async def _stream_reply(self, session: Session, turn: Turn) -> None:
        stream: CompletionStream | None = None
        outcome = "completed"
        try:
            settings = self._settings_provider()
            history = [t for t in session.turns if t.id != turn.id]
            request = build_request(history, settings)
            stream = await self._provider.open(request, settings)
            if not self._is_target(session, turn):
                return
            self._phase = EnginePhase.STREAMING
            self._notify("stream.started", turn.id)

            async for event in stream:
                if not self._is_target(session, turn):
                    break
                self._fold(session, turn, event)
                if event.is_final:
                    break
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except ChatEngineError as ex:
            outcome = "error"
            logger.error(f"Reply failed: {ex}")
            self._replace_with_error(session, turn, str(ex))
        except Exception as ex:
            outcome = "error"
            logger.exception(f"Unexpected error while streaming: {ex}")
            self._replace_with_error(session, turn, str(ex) or type(ex).__name__)
        finally:
            if stream is not None:
                await stream.aclose()
            if self._is_target(session, turn):
                self._finish_stream(outcome)

    def _fold(self, session: Session, turn: Turn, event: StreamEvent) -> None:
        if not (event.content_delta or event.sources or event.status):
            return
        turn.content += event.content_delta
        if event.sources:
            turn.sources = list(event.sources)
        if event.status:
            turn.status = event.status
        session.touch()
        self._notify("turn.updated", turn.id, delta=event.content_delta)

    def _replace_with_error(self, session: Session, turn: Turn, message: str) -> None:
        if not self._is_target(session, turn):
            return
        turn.content = ERROR_MESSAGE_PREFIX + message
        session.touch()
        self._notify("turn.updated", turn.id, error=message)

    def _finish_stream(self, outcome: str) -> None:
        turn_id = self._streaming_turn_id
        turn = self._session.find_turn(turn_id) if turn_id else None
        if turn is not None:
            turn.is_streaming = False
        self._streaming_turn_id = None
        self._phase = EnginePhase.IDLE
        self._save_current_session()
        self._notify("stream.finished", turn_id, outcome=outcome)

    def _is_target(self, session: Session, turn: Turn) -> bool:
        return self._session is session and self._streaming_turn_id == turn.id

    def _on_stream_task_done(self, task: asyncio.Task) -> None:
        if self._stream_task is task:
            self._stream_task = None

    # -- persistence --

    def _save_current_session(self) -> None:
        session = self._session
        for index, existing in enumerate(self._sessions):
            if existing.id == session.id:
                self._sessions[index] = session
                break
        else:
            if session.turns:
                self._sessions.insert(0, session)
        self._persist()

    def _persist(self) -> None:
        if not self._save_conversations:
            return
        try:
            self._store.save_all(self._sessions)
        except PersistenceError as ex:
            logger.error(f"Failed to save sessions: {ex}")

    def _notify(self, event_type: str, turn_id: str | None = None, **payload) -> None:
        self._events.emit(EngineEvent(type=event_type, state=self.state, turn_id=turn_id, payload=payload))
