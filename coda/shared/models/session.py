"""Session state and the aggregate statistics derived from its messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid

from coda.shared.models.message import Message, MessageRole


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_SESSION_TITLE = "New Session"


@dataclass(frozen=True)
class SessionStats:
    """Aggregates owned by the store of record.

    Only stores build these (via ``from_messages``); callers re-fetch the
    session instead of patching counts after a change.
    """

    message_count: int = 0
    user_message_count: int = 0
    assistant_message_count: int = 0
    last_message_at: datetime | None = None

    @classmethod
    def from_messages(cls, messages: list[Message]) -> SessionStats:
        if not messages:
            return cls()
        return cls(
            message_count=len(messages),
            user_message_count=sum(
                1 for m in messages if m.role == MessageRole.USER
            ),
            assistant_message_count=sum(
                1 for m in messages if m.role == MessageRole.ASSISTANT
            ),
            last_message_at=max(m.created_at for m in messages),
        )


@dataclass
class Session:
    """A conversation thread. Messages are referenced by session id."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = DEFAULT_SESSION_TITLE
    created_at: datetime = field(default_factory=_utcnow)
    stats: SessionStats = field(default_factory=SessionStats)

    @property
    def message_count(self) -> int:
        return self.stats.message_count
