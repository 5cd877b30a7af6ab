"""Session persistence: sessions and their messages as JSON files.

Storage layout:
    ~/.coda/sessions/{session_id}.json

Each file holds the session header and its messages in creation order.
Writes go through a temp file + ``os.replace`` so a crash never leaves a
half-written session behind; a suffix delete is therefore atomic.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from coda.engine.errors import MessageNotFoundError, SessionNotFoundError
from coda.shared.models.message import Attachment, Message, MessageRole
from coda.shared.models.session import DEFAULT_SESSION_TITLE, Session, SessionStats
from coda.shared.services.durable_write import atomic_write_json, durable_unlink
from coda.shared.services.stores import (
    MessageStore,
    MessageStoreView,
    next_message_timestamp,
    suffix_start,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"
BASE_DIR = Path.home() / ".coda" / "sessions"


class JsonConversationStore:
    """Message + session store backed by one JSON file per session."""

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self._dir = Path(base_dir).expanduser() if base_dir is not None else BASE_DIR
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, session_id: str) -> Path:
        return self._dir / f"{session_id}.json"

    def _read(self, session_id: str) -> dict:
        path = self._path(session_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise SessionNotFoundError(session_id) from None

    def _write(self, data: dict) -> None:
        data["saved_at"] = datetime.now(timezone.utc).isoformat()
        path = self._path(data["session_id"])
        atomic_write_json(path, data)
        logger.debug("Session written to %s", path)

    # ── sessions ────────────────────────────────────────────────────

    def create(self, title: str = DEFAULT_SESSION_TITLE) -> Session:
        session = Session(title=title)
        with self._lock:
            self._write({
                "version": FORMAT_VERSION,
                "session_id": session.id,
                "title": session.title,
                "created_at": session.created_at.isoformat(),
                "messages": [],
            })
        logger.info("Session created: %s", session.id)
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            data = self._read(session_id)
        return _dict_to_session(data)

    def list(self) -> list[Session]:
        sessions = []
        for path in self._dir.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                sessions.append(_dict_to_session(data))
            except (OSError, json.JSONDecodeError, KeyError, ValueError) as exc:
                logger.warning("Skipping unreadable session file %s: %s", path, exc)
        sessions.sort(
            key=lambda s: s.stats.last_message_at or s.created_at,
            reverse=True,
        )
        return sessions

    def rename(self, session_id: str, title: str) -> Session:
        with self._lock:
            data = self._read(session_id)
            data["title"] = title
            self._write(data)
        return _dict_to_session(data)

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        with self._lock:
            removed = durable_unlink(path)
        if removed:
            logger.info("Session deleted: %s", session_id)
        return removed

    # ── messages ────────────────────────────────────────────────────

    def list_messages(self, session_id: str) -> list[Message]:
        with self._lock:
            data = self._read(session_id)
        return [_dict_to_message(m) for m in data.get("messages", [])]

    def create_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        attachments: Iterable[Attachment] = (),
    ) -> Message:
        with self._lock:
            data = self._read(session_id)
            existing = [_dict_to_message(m) for m in data.get("messages", [])]
            msg = Message(
                session_id=session_id,
                role=role,
                content=content,
                created_at=next_message_timestamp(existing),
                attachments=list(attachments),
            )
            data.setdefault("messages", []).append(_message_to_dict(msg))
            self._write(data)
        return msg

    def delete_from_id(self, session_id: str, message_id: str) -> None:
        with self._lock:
            data = self._read(session_id)
            msgs = [_dict_to_message(m) for m in data.get("messages", [])]
            start = suffix_start(msgs, message_id)
            if start is None:
                raise MessageNotFoundError(session_id, message_id)
            removed = len(msgs) - start
            data["messages"] = data["messages"][:start]
            self._write(data)
        logger.info(
            "Deleted %d message(s) from session %s starting at %s",
            removed, session_id, message_id,
        )

    def message_store(self) -> MessageStore:
        """View of this store satisfying the MessageStore contract."""
        return MessageStoreView(self)


def _ensure_aware(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (assume UTC if naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _message_to_dict(msg: Message) -> dict:
    return {
        "id": msg.id,
        "session_id": msg.session_id,
        "role": msg.role.value,
        "content": msg.content,
        "created_at": msg.created_at.isoformat(),
        "attachments": [
            {
                "file_path": a.file_path,
                "file_name": a.file_name,
                "mime_type": a.mime_type,
            }
            for a in msg.attachments
        ],
    }


def _dict_to_message(data: dict) -> Message:
    return Message(
        session_id=data["session_id"],
        role=MessageRole(data["role"]),
        content=data["content"],
        id=data["id"],
        created_at=_ensure_aware(datetime.fromisoformat(data["created_at"])),
        attachments=[
            Attachment(
                file_path=a["file_path"],
                file_name=a.get("file_name", ""),
                mime_type=a.get("mime_type", "text/plain"),
            )
            for a in data.get("attachments", [])
        ],
    )


def _dict_to_session(data: dict) -> Session:
    messages = [_dict_to_message(m) for m in data.get("messages", [])]
    return Session(
        id=data["session_id"],
        title=data.get("title") or DEFAULT_SESSION_TITLE,
        created_at=_ensure_aware(datetime.fromisoformat(data["created_at"])),
        stats=SessionStats.from_messages(messages),
    )


def build_store(config):
    """Create the conversation store selected by ``config.storage``."""
    from coda.shared.services.stores import InMemoryConversationStore

    if config.storage == "memory":
        return InMemoryConversationStore()
    return JsonConversationStore(config.resolve_sessions_dir())
