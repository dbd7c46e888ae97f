from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePath
from uuid import uuid4

DEFAULT_SESSION_TITLE = "New Chat"
TITLE_MAX_CHARS = 50

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0
MIN_MAX_TOKENS = 1
MAX_MAX_TOKENS = 16_384


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid4())


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @property
    def display_name(self) -> str:
        return {"user": "You", "assistant": "AI", "system": "System"}[self.value]


class AttachmentKind(str, Enum):
    IMAGE = "image"
    CODE = "code"
    TEXT = "text"
    OTHER = "other"

    @classmethod
    def from_filename(cls, filename: str) -> AttachmentKind:
        extension = PurePath(filename).suffix.lower().lstrip(".")
        if extension in _IMAGE_EXTENSIONS:
            return cls.IMAGE
        if extension in _CODE_EXTENSIONS:
            return cls.CODE
        if extension in _TEXT_EXTENSIONS:
            return cls.TEXT
        return cls.OTHER


_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "bmp", "tiff"}
_CODE_EXTENSIONS = {"swift", "js", "ts", "py", "java", "cpp", "c", "h", "m", "json", "xml", "html", "css"}
_TEXT_EXTENSIONS = {"txt", "md", "rtf", "doc", "docx", "pdf"}


class ChatModel(str, Enum):
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4_TURBO = "gpt-4-turbo"
    GPT_35_TURBO = "gpt-3.5-turbo"

    @property
    def display_name(self) -> str:
        return _MODEL_INFO[self][0]

    @property
    def description(self) -> str:
        return _MODEL_INFO[self][1]

    @property
    def supports_vision(self) -> bool:
        return self in (ChatModel.GPT_4O, ChatModel.GPT_4_TURBO)


_MODEL_INFO = {
    ChatModel.GPT_4O: ("GPT-4o", "Most capable model, supports vision"),
    ChatModel.GPT_4O_MINI: ("GPT-4o Mini", "Faster and more affordable"),
    ChatModel.GPT_4_TURBO: ("GPT-4 Turbo", "High-performance model"),
    ChatModel.GPT_35_TURBO: ("GPT-3.5 Turbo", "Fast and reliable"),
}


@dataclass(frozen=True)
class Source:
    title: str
    url: str
    snippet: str = ""
    id: str = field(default_factory=new_id)


@dataclass
class Attachment:
    name: str
    kind: AttachmentKind
    size: int
    data: bytes | None = None
    preview: str | None = None
    id: str = field(default_factory=new_id)


@dataclass
class Turn:
    role: Role
    content: str = ""
    attachments: list[Attachment] | None = None
    sources: list[Source] | None = None
    is_streaming: bool = False
    status: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Session:
    title: str = DEFAULT_SESSION_TITLE
    turns: list[Turn] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.updated_at is None or self.updated_at < self.created_at:
            self.updated_at = self.created_at

    def add_turn(self, turn: Turn, *, derive_title: bool = True) -> None:
        self.turns.append(turn)
        self.touch()
        if derive_title and self.title == DEFAULT_SESSION_TITLE and turn.role is Role.USER and turn.content:
            self.title = derive_session_title(turn.content)

    def touch(self) -> None:
        now = utc_now()
        self.updated_at = now if now > self.created_at else self.created_at

    @property
    def last_turn(self) -> Turn | None:
        return self.turns[-1] if self.turns else None

    @property
    def turn_count(self) -> int:
        return len(self.turns)

    def find_turn(self, turn_id: str) -> Turn | None:
        for turn in reversed(self.turns):
            if turn.id == turn_id:
                return turn
        return None


def derive_session_title(text: str) -> str:
    if len(text) <= TITLE_MAX_CHARS:
        return text
    return text[:TITLE_MAX_CHARS] + "..."


@dataclass(frozen=True)
class ProviderSettings:
    api_key: str = field(default="", repr=False)
    model: str = ChatModel.GPT_4O_MINI.value
    temperature: float = 0.7
    max_tokens: int = 4000
    web_search_enabled: bool = False

    def __post_init__(self) -> None:
        # frozen, so clamp through object.__setattr__
        temperature = min(MAX_TEMPERATURE, max(MIN_TEMPERATURE, float(self.temperature)))
        max_tokens = min(MAX_MAX_TOKENS, max(MIN_MAX_TOKENS, int(self.max_tokens)))
        object.__setattr__(self, "temperature", temperature)
        object.__setattr__(self, "max_tokens", max_tokens)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())
