"""Agent execution surface.

The generation loop itself lives outside this package; ``AgentRunner``
is the contract the rest of coda relies on. ``DemoAgent`` satisfies it
with canned replies so the client runs without a model backend.
"""
from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from coda.shared.models.message import Attachment, Message, MessageRole
from coda.shared.services.stores import MessageStore

from .errors import AgentBusyError

logger = logging.getLogger(__name__)

_MICROAGENT_TAG = re.compile(r'<microagent name="([^"]+)">')


@dataclass
class AgentResult:
    session_id: str
    user_message: Message
    reply: Message | None = None
    cancelled: bool = False


class AgentRunner(Protocol):
    async def run(
        self,
        session_id: str,
        text: str,
        attachments: Iterable[Attachment] = (),
        context: str = "",
    ) -> AgentResult:
        ...

    def is_busy(self, session_id: str) -> bool:
        ...

    def cancel(self, session_id: str) -> None:
        ...


class DemoAgent:
    """Simulated agent: records the prompt, waits, answers with a summary.

    ``context`` is the rendered microagent block injected before the run;
    the reply reports which microagents were active.
    """

    def __init__(self, messages: MessageStore, reply_delay: float = 0.2) -> None:
        self._messages = messages
        self._reply_delay = reply_delay
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancel_requested: set[str] = set()

    def is_busy(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def cancel(self, session_id: str) -> None:
        task = self._tasks.get(session_id)
        if task is not None and not task.done():
            logger.info("Cancelling generation for session %s", session_id)
            self._cancel_requested.add(session_id)
            task.cancel()

    async def run(
        self,
        session_id: str,
        text: str,
        attachments: Iterable[Attachment] = (),
        context: str = "",
    ) -> AgentResult:
        if self.is_busy(session_id):
            raise AgentBusyError(session_id, "start a new run")

        user_msg = self._messages.create(
            session_id, MessageRole.USER, text, attachments,
        )
        result = AgentResult(session_id=session_id, user_message=user_msg)
        task = asyncio.create_task(self._generate(session_id, text, context))
        self._tasks[session_id] = task
        try:
            result.reply = await task
        except asyncio.CancelledError:
            # Only a cancel() for this session is reported as a result;
            # cancellation of the caller propagates.
            if session_id not in self._cancel_requested:
                raise
            result.cancelled = True
            logger.info("Generation cancelled for session %s", session_id)
        finally:
            if self._tasks.get(session_id) is task:
                del self._tasks[session_id]
                self._cancel_requested.discard(session_id)
        return result

    async def _generate(self, session_id: str, text: str, context: str) -> Message:
        if self._reply_delay > 0:
            await asyncio.sleep(self._reply_delay)
        reply = _demo_reply(text, context)
        return self._messages.create(session_id, MessageRole.ASSISTANT, reply)


def _demo_reply(text: str, context: str) -> str:
    first_line = text.strip().splitlines()[0] if text.strip() else ""
    if len(first_line) > 60:
        first_line = f"{first_line[:57]}..."
    lines = [f"(demo) You said: {first_line}"]
    names = _MICROAGENT_TAG.findall(context)
    if names:
        lines.append(f"Active microagents: {', '.join(names)}")
    return "\n".join(lines)
