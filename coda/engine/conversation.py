"""Conversation controller: the chat page logic without the widgets.

Owns the current session and wires prompt sending (with microagent
context), custom commands, rewind and cancellation to the stores, the
agent and the rewind coordinator. Every state change is published on the
EventBus for the TUI to render.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from coda.adapters.event_bus import EventBus
from coda.adapters.events import (
    AgentRunFinished,
    AgentRunStarted,
    ConversationEvent,
    MessagesRefreshed,
    SessionCleared,
    SessionSelected,
    SessionUpdated,
)
from coda.shared.commands import substitute_args
from coda.shared.models.message import Attachment, Message, MessageRole
from coda.shared.models.session import DEFAULT_SESSION_TITLE, Session
from coda.shared.services.stores import MessageStore, SessionStore

from .agent import AgentResult, AgentRunner, DemoAgent
from .config import CodaConfig
from .errors import AgentBusyError, RewindError
from .microagents import MicroagentRegistry, render_context
from .rewind import SessionRewindCoordinator

logger = logging.getLogger(__name__)


class ConversationController:
    """Drives one conversation at a time."""

    def __init__(
        self,
        *,
        messages: MessageStore,
        sessions: SessionStore,
        agent: AgentRunner,
        registry: MicroagentRegistry,
        coordinator: SessionRewindCoordinator,
        bus: EventBus | None = None,
    ) -> None:
        self._messages = messages
        self._sessions = sessions
        self._agent = agent
        self._registry = registry
        self._coordinator = coordinator
        self._bus = bus
        self._session: Session | None = None
        self._coordinator.add_listener(self._on_session_rewound)

    @classmethod
    def from_config(
        cls,
        config: CodaConfig,
        store,
        *,
        bus: EventBus | None = None,
        registry: MicroagentRegistry | None = None,
    ) -> ConversationController:
        """Wire the default collaborators for ``config``.

        ``store`` is a conversation store (see ``persistence.build_store``).
        Raises MicroagentLoadError if the microagent directory is invalid.
        """
        messages = store.message_store()
        agent = DemoAgent(messages, reply_delay=config.demo_reply_delay)
        if registry is None:
            registry = MicroagentRegistry.for_config(config)
        coordinator = SessionRewindCoordinator(
            messages,
            store,
            agent=agent,
            timeout_seconds=config.rewind_timeout_seconds,
        )
        return cls(
            messages=messages,
            sessions=store,
            agent=agent,
            registry=registry,
            coordinator=coordinator,
            bus=bus,
        )

    # ── state ───────────────────────────────────────────────────────

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def registry(self) -> MicroagentRegistry:
        return self._registry

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def is_busy(self) -> bool:
        return self._session is not None and self._agent.is_busy(self._session.id)

    def list_messages(self) -> list[Message]:
        if self._session is None:
            return []
        return self._messages.list(self._session.id)

    def rewind_candidates(self) -> list[Message]:
        """User prompts with visible text, oldest first."""
        return [
            m for m in self.list_messages()
            if m.role == MessageRole.USER and m.text_content
        ]

    async def _publish(self, event: ConversationEvent) -> None:
        if self._bus is not None:
            await self._bus.emit(event)

    # ── session lifecycle ───────────────────────────────────────────

    async def select_session(self, session_id: str) -> Session:
        """Make a stored session current. Raises SessionNotFoundError."""
        self._session = self._sessions.get(session_id)
        await self._publish(SessionSelected(session=self._session))
        return self._session

    async def new_session(self) -> None:
        """Forget the current session; the next prompt starts a new one."""
        self._session = None
        await self._publish(SessionCleared())

    def cancel(self) -> None:
        """Interrupt the agent's generation for the current session."""
        if self._session is not None:
            self._agent.cancel(self._session.id)

    # ── prompts ─────────────────────────────────────────────────────

    async def send_message(
        self,
        text: str,
        attachments: Iterable[Attachment] = (),
    ) -> AgentResult:
        """Run the agent on ``text`` with matching microagents as context."""
        if self.is_busy:
            raise AgentBusyError(self._session.id, "send a message")

        if self._session is None:
            self._session = self._sessions.create(DEFAULT_SESSION_TITLE)
            await self._publish(SessionSelected(session=self._session))

        session_id = self._session.id
        matched = self._registry.find(text)
        if matched:
            logger.info(
                "Prompt in session %s matched microagents: %s",
                session_id, ", ".join(m.name for m in matched),
            )
        await self._publish(AgentRunStarted(
            session_id=session_id,
            microagents=[m.name for m in matched],
        ))

        try:
            result = await self._agent.run(
                session_id, text, attachments, context=render_context(matched),
            )
        except Exception as exc:
            logger.exception("Agent run failed for session %s", session_id)
            await self._publish(AgentRunFinished(session_id=session_id, error=str(exc)))
            await self._publish(MessagesRefreshed(session_id=session_id))
            raise

        self._session = self._sessions.get(session_id)
        await self._publish(SessionUpdated(session=self._session))
        await self._publish(MessagesRefreshed(session_id=session_id))
        await self._publish(AgentRunFinished(
            session_id=session_id, cancelled=result.cancelled,
        ))
        return result

    async def run_custom_command(
        self,
        content: str,
        args: dict[str, str] | None = None,
    ) -> AgentResult:
        """Fill ``$NAME`` placeholders in ``content`` and send it."""
        if self.is_busy:
            raise AgentBusyError(self._session.id, "run a command")
        return await self.send_message(substitute_args(content, args))

    # ── rewind ──────────────────────────────────────────────────────

    async def rewind(self, message_id: str) -> Session:
        """Drop ``message_id`` and everything after it from the session."""
        if self._session is None:
            raise RewindError("", message_id, "no active session", stage="validate")
        session_id = self._session.id
        candidate_ids = {m.id for m in self.rewind_candidates()}
        if message_id not in candidate_ids:
            raise RewindError(
                session_id, message_id,
                "only the user's own prompts can be rewound to",
                stage="validate",
            )
        try:
            return await self._coordinator.rewind_to(session_id, message_id)
        except RewindError as exc:
            if exc.stage != "validate":
                await self._resync(session_id)
            raise

    async def _resync(self, session_id: str) -> None:
        """Reload the current session after a rewind that may have deleted."""
        try:
            session = self._sessions.get(session_id)
        except Exception:
            logger.exception(
                "Could not reload session %s after a failed rewind", session_id,
            )
            self._session = None
            await self._publish(SessionCleared())
            return
        self._session = session
        await self._publish(SessionUpdated(session=session))
        await self._publish(MessagesRefreshed(session_id=session_id))

    async def _on_session_rewound(self, session: Session) -> None:
        if self._session is not None and self._session.id == session.id:
            self._session = session
        await self._publish(SessionUpdated(session=session))
        await self._publish(MessagesRefreshed(session_id=session.id))
