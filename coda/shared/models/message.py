"""Message models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Attachment:
    file_path: str
    file_name: str = ""
    mime_type: str = "text/plain"


@dataclass
class Message:
    session_id: str
    role: MessageRole
    content: str
    id: str = field(default_factory=_gen_id)
    created_at: datetime = field(default_factory=_utcnow)
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def text_content(self) -> str:
        return (self.content or "").strip()
