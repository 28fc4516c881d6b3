"""Chat domain models shared by the server DAL and the relay client."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class TranslationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (TranslationStatus.COMPLETED, TranslationStatus.ERROR)

    def can_become(self, other: "TranslationStatus") -> bool:
        """Return True if moving from this status to `other` is allowed.

        `completed` and `error` never change again; `processing` can only
        move forward to a terminal status.
        """
        if self.terminal:
            return False
        if self is TranslationStatus.PROCESSING:
            return other.terminal
        return other is not TranslationStatus.PENDING


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


SENDER_HOST = "host"
SENDER_USER = "user"


def normalize_sender(sender: Optional[str]) -> str:
    """Map the accepted sender spellings onto `host` or `user`."""
    value = (sender or SENDER_USER).strip().lower()
    if value == SENDER_HOST:
        return SENDER_HOST
    if value in (SENDER_USER, "guest"):
        return SENDER_USER
    raise ValueError(f"Unsupported sender role: {sender!r}")


@dataclass
class HostInfo:
    """Public profile of the QR-code owner."""

    id: str
    name: str
    title: Optional[str] = None
    url: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def default(cls, host_id: str) -> "HostInfo":
        return cls(
            id=host_id,
            name="Customer Service",
            title="Online Support",
            url="chat.example.com",
            avatar_url=f"https://api.dicebear.com/7.x/micah/svg?seed={host_id}",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatSession:
    """A conversation between one host and one guest."""

    id: str
    host_id: Optional[str]
    user_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    status: str = "active"
    user_language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatSession":
        return cls(
            id=str(data["id"]),
            host_id=data.get("host_id"),
            user_id=data.get("user_id"),
            created_at=float(data.get("created_at") or 0.0),
            updated_at=float(data.get("updated_at") or 0.0),
            status=data.get("status") or "active",
            user_language=data.get("user_language"),
        )


@dataclass
class ChatMessage:
    """A single chat line plus its translation state.

    Attributes:
        id: Store-assigned, monotonically increasing identifier.
        session_id: Parent session identifier.
        content: Original text as typed by the sender.
        sender: `host` or `user`.
        created_at: Unix timestamp (seconds, float) of creation.
        original_language: Language tag of `content` (`auto` if unknown).
        target_language: Language the message should be translated into.
        translated_content: Translation once available.
        translation_status: One of TranslationStatus, None when no
            translation was requested.
    """

    id: int
    session_id: str
    content: str
    sender: str = SENDER_USER
    created_at: float = field(default_factory=time.time)
    original_language: Optional[str] = None
    target_language: Optional[str] = None
    translated_content: Optional[str] = None
    translation_status: Optional[TranslationStatus] = None

    @property
    def is_host(self) -> bool:
        return self.sender == SENDER_HOST

    @property
    def sort_key(self):
        return (self.created_at, self.id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["translation_status"] = self.translation_status.value if self.translation_status else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        status = data.get("translation_status")
        return cls(
            id=int(data["id"]),
            session_id=str(data["session_id"]),
            content=data.get("content") or "",
            sender=normalize_sender(data.get("sender")),
            created_at=float(data.get("created_at") or 0.0),
            original_language=data.get("original_language"),
            target_language=data.get("target_language"),
            translated_content=data.get("translated_content"),
            translation_status=TranslationStatus(status) if status else None,
        )
