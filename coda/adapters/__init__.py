"""Adapters package - Bridge between the conversation controller and the TUI.

Holds the event bus and the event types the controller publishes.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "ConversationEvent",
]

from coda.adapters.event_bus import EventBus
from coda.adapters.events import ConversationEvent
