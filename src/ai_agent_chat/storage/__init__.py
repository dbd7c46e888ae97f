from ai_agent_chat.storage.serialization import session_from_dict, session_to_dict
from ai_agent_chat.storage.session_store import DEFAULT_SESSIONS_FILE, SessionStore, write_atomically

__all__ = [
    "DEFAULT_SESSIONS_FILE",
    "SessionStore",
    "session_from_dict",
    "session_to_dict",
    "write_atomically",
]
