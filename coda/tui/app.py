"""coda TUI Textual application class."""

from __future__ import annotations

from textual.app import App

from coda.adapters.event_bus import EventBus
from coda.engine.conversation import ConversationController
from coda.shared.commands import CustomCommand
from coda.tui.screens.chat import ChatScreen


class CodaApp(App):
    """Terminal chat client for a coding agent."""

    TITLE = "coda"
    SUB_TITLE = "Coding Agent"

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        controller: ConversationController,
        bus: EventBus,
        custom_commands: dict[str, CustomCommand] | None = None,
        resume_session_id: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.controller = controller
        self.bus = bus
        self.custom_commands = custom_commands or {}
        self.resume_session_id = resume_session_id

    async def on_mount(self) -> None:
        if self.resume_session_id:
            await self.controller.select_session(self.resume_session_id)
        self.push_screen(ChatScreen(self.controller, self.bus, self.custom_commands))

    async def action_quit(self) -> None:
        self.controller.cancel()
        self.bus.close()
        await super().action_quit()
