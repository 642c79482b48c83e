import base64
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessagePurpose(str, Enum):
    NORMAL = "normal"
    THINKING = "thinking"
    RESPONSE_PREVIEW = "response_preview"
    RESPONSE = "response"

    @property
    def is_placeholder(self) -> bool:
        return self in (MessagePurpose.THINKING, MessagePurpose.RESPONSE_PREVIEW)


@dataclass
class Attachment:
    data: str  # base64 payload without the data-URL prefix
    name: str = ""
    mime: str = "image/png"
    id: str = field(default_factory=new_id)

    @property
    def data_url(self) -> str:
        return f"data:{self.mime};base64,{self.data}"

    @classmethod
    def from_bytes(cls, raw: bytes, name: str = "", mime: str = "image/png") -> "Attachment":
        return cls(data=base64.b64encode(raw).decode("ascii"), name=name, mime=mime)

    @classmethod
    def from_data_url(cls, data_url: str, name: str = "") -> Optional["Attachment"]:
        if not data_url.startswith("data:") or "," not in data_url:
            return None
        header, payload = data_url.split(",", 1)
        mime = header[len("data:"):].split(";", 1)[0] or "application/octet-stream"
        return cls(data=payload, name=name, mime=mime)


STAT_COUNT_FIELDS = ("prompt_eval_count", "eval_count")
STAT_DURATION_FIELDS = (
    "total_duration",
    "load_duration",
    "prompt_eval_duration",
    "eval_duration",
)


@dataclass(frozen=True)
class Stats:
    """Terminal statistics of one generation (durations in nanoseconds)."""
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None
    prompt_eval_duration: Optional[int] = None
    eval_count: Optional[int] = None
    eval_duration: Optional[int] = None
    done_reason: Optional[str] = None
    context_length: Optional[int] = None
    model: Optional[str] = None

    @classmethod
    def from_frame(cls, frame: dict) -> Optional["Stats"]:
        values = {}
        for key in STAT_DURATION_FIELDS + STAT_COUNT_FIELDS:
            value = frame.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                values[key] = value
        if isinstance(frame.get("done_reason"), str):
            values["done_reason"] = frame["done_reason"]
        if isinstance(frame.get("context"), list):
            values["context_length"] = len(frame["context"])
        if not values:
            return None
        if isinstance(frame.get("model"), str):
            values["model"] = frame["model"]
        return cls(**values)

    @property
    def tokens_per_second(self) -> Optional[float]:
        if not self.eval_count or not self.eval_duration:
            return None
        return self.eval_count / (self.eval_duration / 1e9)


@dataclass
class Message:
    role: str
    content: str = ""
    thinking: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    purpose: MessagePurpose = MessagePurpose.NORMAL
    pending: bool = False
    error: Optional[str] = None
    collapsed: bool = False
    stats: Optional[Stats] = None
    related_thinking_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["purpose"] = self.purpose.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        attachment_names = {f.name for f in fields(Attachment)}
        values["attachments"] = [
            Attachment(**{k: v for k, v in a.items() if k in attachment_names})
            for a in data.get("attachments") or []
            if a.get("data")
        ]
        try:
            values["purpose"] = MessagePurpose(data.get("purpose") or "normal")
        except ValueError:
            values["purpose"] = MessagePurpose.NORMAL
        if data.get("stats"):
            stat_names = {f.name for f in fields(Stats)}
            values["stats"] = Stats(**{k: v for k, v in data["stats"].items() if k in stat_names})
        return cls(**values)


@dataclass
class GenerationParams:
    temperature: Optional[float] = 0.7
    top_k: Optional[int] = 40
    top_p: Optional[float] = 0.9
    repeat_penalty: Optional[float] = 1.1
    mirostat: Optional[int] = 0
    seed: Optional[int] = None
    show_thinking: bool = True

    @classmethod
    def from_dict(cls, data: dict | None) -> "GenerationParams":
        known = {f.name for f in fields(cls)}
        # older snapshots store "" for an empty field
        values = {
            k: (None if v == "" else v)
            for k, v in (data or {}).items()
            if k in known
        }
        if values.get("show_thinking") is None:
            values.pop("show_thinking", None)
        return cls(**values)


@dataclass
class Conversation:
    title: str = "New chat"
    model: str = ""
    params: GenerationParams = field(default_factory=GenerationParams)
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def touch(self):
        self.updated_at = utc_now()

    def find_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def index_of(self, message_id: str) -> int:
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i
        return -1

    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "model": self.model,
            "params": asdict(self.params),
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        conv = cls(
            title=data.get("title") or "New chat",
            model=data.get("model") or "",
            params=GenerationParams.from_dict(data.get("params")),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
        )
        for key in ("id", "created_at", "updated_at"):
            if data.get(key):
                setattr(conv, key, data[key])
        return conv


@dataclass
class AppState:
    """Everything that survives a reload. Turn state is never part of it."""
    server_url: str = ""
    default_model: str = ""
    active_chat_id: Optional[str] = None
    chats: list[Conversation] = field(default_factory=list)

    def active_chat(self) -> Optional[Conversation]:
        for chat in self.chats:
            if chat.id == self.active_chat_id:
                return chat
        return None

    def ensure_chat(self) -> Conversation:
        """Guarantee at least one chat exists and one is active."""
        if not self.chats:
            chat = Conversation(model=self.default_model)
            self.chats.append(chat)
            self.active_chat_id = chat.id
        if self.active_chat() is None:
            self.active_chat_id = self.chats[0].id
        return self.active_chat()

    def to_dict(self) -> dict:
        return {
            "server_url": self.server_url,
            "default_model": self.default_model,
            "active_chat_id": self.active_chat_id,
            "chats": [c.to_dict() for c in self.chats],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppState":
        state = cls(
            server_url=data.get("server_url") or "",
            default_model=data.get("default_model") or "",
            active_chat_id=data.get("active_chat_id"),
            chats=[Conversation.from_dict(c) for c in data.get("chats") or []],
        )
        # a snapshot taken mid-stream must not come back as a live turn
        for chat in state.chats:
            for message in chat.messages:
                message.pending = False
        return state
