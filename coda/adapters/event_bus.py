"""Async event bus bridging the conversation controller to the TUI.

The controller publishes events as it works; the chat screen drains
them in a worker and refreshes its widgets.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from coda.adapters.events import ConversationEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue of ConversationEvents."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._queue: asyncio.Queue[ConversationEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: ConversationEvent) -> None:
        """Queue an event; waits (up to 30s) when the queue is full."""
        if self._closed:
            return
        try:
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    def pending(self) -> list[ConversationEvent]:
        """Drain and return everything queued right now."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    async def consume(self) -> AsyncIterator[ConversationEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.5
                )
                yield event
            except asyncio.TimeoutError:
                continue

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True
