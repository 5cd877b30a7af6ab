"""Session rewind: truncate a conversation at an earlier message.

``rewind_to`` deletes the target message and everything created after it,
re-fetches the session so its statistics come from the store, and hands
the refreshed session to every listener. The three steps run in order
and never interleave with another rewind of the same session.

Nothing is rolled back here: if the store committed a delete and the
re-fetch then fails, the caller gets a RewindError and the delete stays.
A store call that times out or is cancelled keeps running in its worker
thread; the session stays marked as rewinding until that call returns.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TypeVar

from coda.shared.models.session import Session
from coda.shared.services.stores import MessageStore, SessionStore

from .agent import AgentRunner
from .errors import AgentBusyError, RewindError, RewindInProgressError

logger = logging.getLogger(__name__)

# Signature: async def listener(session: Session) -> None
SessionListener = Callable[[Session], Awaitable[None]]

T = TypeVar("T")

_STILL_RUNNING = "the store call may still complete"


class SessionRewindCoordinator:
    """Truncates sessions and keeps their derived state consistent."""

    def __init__(
        self,
        messages: MessageStore,
        sessions: SessionStore,
        *,
        agent: AgentRunner | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._messages = messages
        self._sessions = sessions
        self._agent = agent
        self._timeout = timeout_seconds if timeout_seconds > 0 else None
        self._listeners: list[SessionListener] = []
        self._in_flight: set[str] = set()
        # Store calls abandoned on timeout or cancellation, by session.
        self._abandoned: dict[str, asyncio.Future] = {}
        self._late_notices: set[asyncio.Future] = set()
        self._guard = asyncio.Lock()

    def add_listener(self, listener: SessionListener) -> None:
        """Register a callback that receives the refreshed session."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def is_rewinding(self, session_id: str) -> bool:
        return session_id in self._in_flight

    async def rewind_to(self, session_id: str, message_id: str) -> Session:
        """Delete ``message_id`` and every later message of the session.

        Returns the session re-fetched from the store. Raises
        AgentBusyError while the agent is generating for the session,
        RewindInProgressError if a rewind of it is already running, and
        RewindError for any store failure, timeout or cancellation.
        """
        if self._agent is not None and self._agent.is_busy(session_id):
            raise AgentBusyError(session_id, "rewind")

        async with self._guard:
            if session_id in self._in_flight:
                raise RewindInProgressError(session_id, message_id)
            self._in_flight.add(session_id)

        try:
            return await self._rewind(session_id, message_id)
        finally:
            abandoned = self._abandoned.pop(session_id, None)
            if abandoned is not None and not abandoned.done():
                abandoned.add_done_callback(partial(self._release, session_id))
            else:
                self._in_flight.discard(session_id)

    def _release(self, session_id: str, future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.warning(
                "Abandoned rewind step for session %s failed: %s",
                session_id, future.exception(),
            )
        else:
            logger.info("Abandoned rewind step for session %s finished", session_id)
        self._in_flight.discard(session_id)
        task = asyncio.ensure_future(self._notify_late(session_id))
        self._late_notices.add(task)
        task.add_done_callback(self._late_notices.discard)

    async def _notify_late(self, session_id: str) -> None:
        """Hand listeners the session as it is after an abandoned step landed."""
        try:
            session = await asyncio.to_thread(self._sessions.get, session_id)
            for listener in list(self._listeners):
                await listener(session)
        except Exception:
            logger.exception(
                "Could not refresh listeners after abandoned rewind of %s",
                session_id,
            )

    async def _rewind(self, session_id: str, message_id: str) -> Session:
        logger.info("Rewinding session %s to message %s", session_id, message_id)

        messages = await self._call(
            "validate", session_id, message_id,
            self._messages.list, session_id,
        )
        if not any(m.id == message_id for m in messages):
            raise RewindError(
                session_id, message_id,
                "message does not belong to the session",
                stage="validate",
            )

        await self._call(
            "delete", session_id, message_id,
            self._messages.delete_from_id, session_id, message_id,
        )
        session = await self._call(
            "refetch", session_id, message_id,
            self._sessions.get, session_id,
        )

        for listener in list(self._listeners):
            try:
                await listener(session)
            except Exception as exc:
                logger.exception(
                    "Rewind listener failed for session %s", session_id,
                )
                raise RewindError(
                    session_id, message_id, str(exc), stage="propagate",
                ) from exc

        logger.info(
            "Rewound session %s: %d message(s) remain",
            session_id, session.stats.message_count,
        )
        return session

    async def _call(
        self,
        stage: str,
        session_id: str,
        message_id: str,
        func: Callable[..., T],
        *args,
    ) -> T:
        """Run a blocking store call under the rewind timeout.

        The worker thread cannot be interrupted. On timeout or cancellation
        its future is recorded so ``rewind_to`` keeps the session in flight
        until the call has returned.
        """
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.wait_for(
                asyncio.shield(future), timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            self._abandoned[session_id] = future
            logger.error(
                "Rewind %s step timed out after %ss for session %s",
                stage, self._timeout, session_id,
            )
            raise RewindError(
                session_id, message_id,
                f"timed out after {self._timeout}s; {_STILL_RUNNING}",
                stage=stage, cancelled=True,
            ) from exc
        except asyncio.CancelledError as exc:
            self._abandoned[session_id] = future
            logger.warning("Rewind %s step cancelled for session %s", stage, session_id)
            raise RewindError(
                session_id, message_id, f"cancelled; {_STILL_RUNNING}",
                stage=stage, cancelled=True,
            ) from exc
        except Exception as exc:
            logger.error(
                "Rewind %s step failed for session %s: %s",
                stage, session_id, exc,
            )
            raise RewindError(
                session_id, message_id, str(exc), stage=stage,
            ) from exc
