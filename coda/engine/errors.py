"""Exception hierarchy for coda.

One exception per failure mode. Lookups never raise; loads fail fast;
rewinds always tell the caller what went wrong.
"""
from __future__ import annotations

from pathlib import Path


class CodaError(Exception):
    """Base exception for all coda errors."""


class TriggerSyntaxError(CodaError):
    """A trigger expression in microagent metadata is malformed."""
    def __init__(self, reason: str, location: str = "triggers"):
        self.reason = reason
        self.location = location
        super().__init__(f"Invalid trigger expression at {location}: {reason}")


class MicroagentLoadError(CodaError):
    """A microagent file could not be read or parsed.

    Raised during registry construction; the registry is not usable.
    """
    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to load microagent {self.path}: {reason}")


class SessionNotFoundError(CodaError):
    """Requested session does not exist in the store."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class MessageNotFoundError(CodaError):
    """Requested message does not belong to the session."""
    def __init__(self, session_id: str, message_id: str):
        self.session_id = session_id
        self.message_id = message_id
        super().__init__(
            f"Message {message_id} not found in session {session_id}"
        )


class AgentBusyError(CodaError):
    """The agent is generating for this session; the request was refused."""
    def __init__(self, session_id: str, action: str = "continue"):
        self.session_id = session_id
        self.action = action
        super().__init__(
            f"Agent is busy in session {session_id}; cannot {action} now"
        )


class RewindError(CodaError):
    """Truncating a session failed.

    ``stage`` is one of ``validate``, ``delete``, ``refetch``,
    ``propagate``. Whatever the store committed before the failure stays
    committed.
    """
    def __init__(
        self,
        session_id: str,
        message_id: str,
        reason: str,
        *,
        stage: str = "delete",
        cancelled: bool = False,
    ):
        self.session_id = session_id
        self.message_id = message_id
        self.reason = reason
        self.stage = stage
        self.cancelled = cancelled
        super().__init__(
            f"Cannot rewind session {session_id} to {message_id} "
            f"({stage}): {reason}"
        )


class RewindInProgressError(RewindError):
    """Another rewind is already running for this session."""
    def __init__(self, session_id: str, message_id: str):
        super().__init__(
            session_id,
            message_id,
            "another rewind is already in progress",
            stage="validate",
        )
