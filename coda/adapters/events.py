"""Events published by the conversation controller.

Each event is a small dataclass consumed by the TUI's event loop.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from coda.shared.models.session import Session


@dataclass
class ConversationEvent:
    """Base event."""
    event_type: str = ""


@dataclass
class SessionSelected(ConversationEvent):
    event_type: str = "session_selected"
    session: Session | None = None


@dataclass
class SessionCleared(ConversationEvent):
    event_type: str = "session_cleared"


@dataclass
class SessionUpdated(ConversationEvent):
    """A session's derived state changed (e.g. after a rewind)."""
    event_type: str = "session_updated"
    session: Session | None = None


@dataclass
class MessagesRefreshed(ConversationEvent):
    """The message list of a session must be reloaded from the store."""
    event_type: str = "messages_refreshed"
    session_id: str = ""


@dataclass
class AgentRunStarted(ConversationEvent):
    event_type: str = "agent_run_started"
    session_id: str = ""
    microagents: list[str] = field(default_factory=list)


@dataclass
class AgentRunFinished(ConversationEvent):
    event_type: str = "agent_run_finished"
    session_id: str = ""
    cancelled: bool = False
    error: str | None = None


@dataclass
class ErrorReported(ConversationEvent):
    event_type: str = "error_reported"
    message: str = ""
    severity: str = "error"
