"""Message and session store contracts, plus an in-memory implementation.

The stores are the record of truth for session statistics: callers get a
fresh ``Session`` from ``SessionStore.get`` after any change instead of
adjusting counts themselves.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from coda.engine.errors import MessageNotFoundError, SessionNotFoundError
from coda.shared.models.message import Attachment, Message, MessageRole
from coda.shared.models.session import DEFAULT_SESSION_TITLE, Session, SessionStats

_ONE_MICROSECOND = timedelta(microseconds=1)


class MessageStore(Protocol):
    def list(self, session_id: str) -> list[Message]:
        """Messages of a session ordered by creation."""
        ...

    def create(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        attachments: Iterable[Attachment] = (),
    ) -> Message:
        ...

    def delete_from_id(self, session_id: str, message_id: str) -> None:
        """Delete ``message_id`` and every later message of the session."""
        ...


class SessionStore(Protocol):
    def create(self, title: str = DEFAULT_SESSION_TITLE) -> Session:
        ...

    def get(self, session_id: str) -> Session:
        ...

    def list(self) -> list[Session]:
        ...

    def rename(self, session_id: str, title: str) -> Session:
        ...

    def delete(self, session_id: str) -> bool:
        ...


def next_message_timestamp(messages: list[Message]) -> datetime:
    """Creation time for a new message, strictly after the last one."""
    now = datetime.now(timezone.utc)
    if messages and now <= messages[-1].created_at:
        return messages[-1].created_at + _ONE_MICROSECOND
    return now


def suffix_start(messages: list[Message], message_id: str) -> int | None:
    """Index of ``message_id`` in a creation-ordered list, or None."""
    for idx, msg in enumerate(messages):
        if msg.id == message_id:
            return idx
    return None


class InMemoryConversationStore:
    """Message + session store held in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._messages: dict[str, list[Message]] = {}

    # ── sessions ────────────────────────────────────────────────────

    def _with_stats(self, session: Session) -> Session:
        msgs = self._messages.get(session.id, [])
        return Session(
            id=session.id,
            title=session.title,
            created_at=session.created_at,
            stats=SessionStats.from_messages(msgs),
        )

    def create(self, title: str = DEFAULT_SESSION_TITLE) -> Session:
        session = Session(title=title)
        with self._lock:
            self._sessions[session.id] = session
            self._messages[session.id] = []
            return self._with_stats(session)

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return self._with_stats(session)

    def list(self) -> list[Session]:
        with self._lock:
            sessions = [self._with_stats(s) for s in self._sessions.values()]
        sessions.sort(
            key=lambda s: s.stats.last_message_at or s.created_at,
            reverse=True,
        )
        return sessions

    def rename(self, session_id: str, title: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.title = title
            return self._with_stats(session)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            self._messages.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    # ── messages ────────────────────────────────────────────────────

    def list_messages(self, session_id: str) -> list[Message]:
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            return list(self._messages[session_id])

    def create_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        attachments: Iterable[Attachment] = (),
    ) -> Message:
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            msgs = self._messages[session_id]
            msg = Message(
                session_id=session_id,
                role=role,
                content=content,
                created_at=next_message_timestamp(msgs),
                attachments=list(attachments),
            )
            msgs.append(msg)
            return msg

    def delete_from_id(self, session_id: str, message_id: str) -> None:
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            msgs = self._messages[session_id]
            start = suffix_start(msgs, message_id)
            if start is None:
                raise MessageNotFoundError(session_id, message_id)
            del msgs[start:]

    def message_store(self) -> MessageStore:
        """View of this store satisfying the MessageStore contract."""
        return MessageStoreView(self)


class MessageStoreView:
    """Adapts a conversation store's ``*_message(s)`` methods to MessageStore."""

    def __init__(self, backend) -> None:
        self._backend = backend

    def list(self, session_id: str) -> list[Message]:
        return self._backend.list_messages(session_id)

    def create(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        attachments: Iterable[Attachment] = (),
    ) -> Message:
        return self._backend.create_message(session_id, role, content, attachments)

    def delete_from_id(self, session_id: str, message_id: str) -> None:
        self._backend.delete_from_id(session_id, message_id)
