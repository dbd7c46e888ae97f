import sys
import threading
from typing import TextIO

from ai_agent_chat.engine_events import EngineEvent, EnginePhase

_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class Spinner:
    """Thread-based spinner that renders on the current line using \\r."""

    def __init__(self, prefix: str = "", label: str = " Thinking...", stream: TextIO | None = None):
        self._prefix = prefix
        self._label = label
        self._out = stream or sys.stdout
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._frame_width = 1 + len(label)

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None or self._stop.is_set():
            return
        self._stop.set()
        self._thread.join()
        self._thread = None
        clear = self._prefix + " " * self._frame_width
        self._out.write("\r" + clear + "\r" + self._prefix)
        self._out.flush()

    def _run(self) -> None:
        i = 0
        try:
            while not self._stop.is_set():
                frame = _SPINNER_FRAMES[i % len(_SPINNER_FRAMES)] + self._label
                self._out.write("\r" + self._prefix + frame)
                self._out.flush()
                self._stop.wait(0.08)
                i += 1
        except (UnicodeEncodeError, OSError):
            pass  # Terminal doesn't support these characters; fail silently


class ConsoleRenderer:
    """Engine observer that prints the streaming reply as it is folded in."""

    LINE_PREFIX = "assistant> "

    def __init__(self, stream: TextIO | None = None, *, spinner: bool = True):
        self._out = stream or sys.stdout
        self._spinner = Spinner(prefix=self.LINE_PREFIX, stream=self._out) if spinner else None
        self._printed_prefix = False

    def __call__(self, event: EngineEvent) -> None:
        if event.type == "turn.appended" and event.state.phase is EnginePhase.DISPATCHING:
            self._begin_reply()
        elif event.type == "turn.updated":
            self._end_spinner()
            if "error" in event.payload:
                self._write(f"[error] {event.payload['error']}")
            else:
                self._write(event.payload.get("delta", ""))
        elif event.type == "stream.finished":
            self._end_spinner()
            if event.payload.get("outcome") == "cancelled":
                self._write(" [stopped]")
            self._out.write("\n")
            self._out.flush()

    def _begin_reply(self) -> None:
        self._printed_prefix = False
        if self._spinner is not None:
            self._spinner.start()
            self._printed_prefix = True

    def _end_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()

    def _write(self, text: str) -> None:
        if not self._printed_prefix:
            self._out.write(self.LINE_PREFIX)
            self._printed_prefix = True
        self._out.write(text)
        self._out.flush()
