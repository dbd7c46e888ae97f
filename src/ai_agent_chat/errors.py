from __future__ import annotations

from http import HTTPStatus


class ChatEngineError(Exception):
    """Base class for errors the engine knows how to turn into a visible message."""


class ConfigurationError(ChatEngineError):
    pass


class AuthenticationError(ConfigurationError):
    def __init__(self, message: str = "OpenAI API key is missing. Please configure it in Settings."):
        super().__init__(message)


class TransportError(ChatEngineError):
    def __init__(self, status_code: int | None, message: str | None = None):
        self.status_code = status_code
        if message is None:
            message = _describe_status(status_code)
        super().__init__(message)


class StreamDecodeError(ChatEngineError):
    def __init__(self, frame: str, reason: str):
        self.frame = frame
        super().__init__(f"Could not decode stream frame: {reason}")


class PersistenceError(ChatEngineError):
    pass


def _describe_status(status_code: int | None) -> str:
    if status_code is None:
        return "API error: connection failed"
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return f"API error: HTTP {status_code}"
    return f"API error: HTTP {status_code} ({phrase})"
