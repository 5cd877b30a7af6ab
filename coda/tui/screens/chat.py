"""Chat screen with the conversation pane, prompt input and status line.

Renders whatever the ConversationController publishes; all state lives
in the controller and the stores.
"""

from __future__ import annotations

import logging

from rich.markup import escape
from textual import work
from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.screen import Screen
from textual.widgets import Footer, Header, Input, Static

from coda.adapters.event_bus import EventBus
from coda.adapters.events import (
    AgentRunFinished,
    AgentRunStarted,
    ConversationEvent,
    ErrorReported,
    MessagesRefreshed,
    SessionCleared,
    SessionSelected,
    SessionUpdated,
)
from coda.engine.conversation import ConversationController
from coda.engine.errors import CodaError
from coda.shared.commands import (
    COMMAND_HELP,
    CustomCommand,
    parse_command,
    parse_command_args,
)
from coda.shared.models.message import Message, MessageRole
from coda.tui.screens.rewind import RewindScreen

logger = logging.getLogger(__name__)

_ROLE_STYLE = {
    MessageRole.USER: ("You", "bold cyan"),
    MessageRole.ASSISTANT: ("Agent", "bold green"),
    MessageRole.SYSTEM: ("System", "dim"),
}


class MessageLine(Static):
    """One rendered message."""

    def __init__(self, message: Message, **kwargs) -> None:
        label, style = _ROLE_STYLE[message.role]
        super().__init__(
            f"[{style}]{label}:[/{style}] {escape(message.content)}",
            markup=True,
            classes=f"message message-{message.role.value}",
            **kwargs,
        )
        self.message = message


class ChatScreen(Screen):
    """Single-pane chat workspace."""

    BINDINGS = [
        ("ctrl+r", "rewind", "Rewind"),
        ("ctrl+n", "new_session", "New Session"),
        ("escape", "cancel_generation", "Cancel"),
    ]

    CSS = """
    #conversation {
        height: 1fr;
        padding: 0 1;
    }
    #conversation .message {
        margin-bottom: 1;
    }
    #status-bar {
        height: 1;
        padding: 0 1;
        background: $panel;
    }
    """

    def __init__(
        self,
        controller: ConversationController,
        bus: EventBus,
        custom_commands: dict[str, CustomCommand] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.controller = controller
        self.bus = bus
        self.custom_commands = custom_commands or {}

    def compose(self) -> ComposeResult:
        yield Header()
        yield VerticalScroll(id="conversation")
        yield Input(placeholder="Ask the agent… (/help for commands)", id="prompt-input")
        yield Static("", id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self._consume_events()
        self.render_messages()
        self.query_one("#prompt-input", Input).focus()

    # ── rendering ───────────────────────────────────────────────────

    def render_messages(self) -> None:
        conv = self.query_one("#conversation", VerticalScroll)
        conv.remove_children()
        lines = [MessageLine(m) for m in self.controller.list_messages()]
        if lines:
            conv.mount(*lines)
            conv.scroll_end(animate=False)
        self._update_status()

    def _update_status(self, note: str = "") -> None:
        session = self.controller.session
        if session is None:
            text = "[dim]No session — type a prompt to start one[/dim]"
        else:
            text = (
                f"[bold]{escape(session.title)}[/bold] · "
                f"{session.stats.message_count} messages"
            )
        if self.controller.is_busy:
            text += " · [yellow]generating…[/yellow]"
        if note:
            text += f" · {note}"
        self.query_one("#status-bar", Static).update(text)

    def _write_system(self, text: str) -> None:
        conv = self.query_one("#conversation", VerticalScroll)
        conv.mount(Static(text, markup=True, classes="message message-system"))
        conv.scroll_end(animate=False)

    @work(group="events", name="events")
    async def _consume_events(self) -> None:
        async for event in self.bus.consume():
            self.handle_event(event)

    def handle_event(self, event: ConversationEvent) -> None:
        if isinstance(event, (MessagesRefreshed, SessionSelected, SessionCleared)):
            self.render_messages()
        elif isinstance(event, SessionUpdated):
            self._update_status()
        elif isinstance(event, AgentRunStarted):
            note = ""
            if event.microagents:
                note = f"microagents: {escape(', '.join(event.microagents))}"
            self._update_status(note)
        elif isinstance(event, AgentRunFinished):
            if event.error:
                self.notify(event.error, title="Agent error", severity="error")
            elif event.cancelled:
                self.notify("Generation cancelled", severity="warning")
            self._update_status()
        elif isinstance(event, ErrorReported):
            self.notify(event.message, severity=event.severity)

    # ── input ───────────────────────────────────────────────────────

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "prompt-input":
            return
        text = event.value
        if not text.strip():
            return
        event.input.value = ""

        command = parse_command(text)
        if command is not None:
            self.handle_command(command.name, command.args)
            return
        self._send(text)

    def handle_command(self, name: str, args: list[str]) -> None:
        if name == "new":
            self.action_new_session()
        elif name == "rewind":
            self.action_rewind()
        elif name == "sessions":
            sessions = self.controller.sessions.list()
            if not sessions:
                self._write_system("[dim]No saved sessions.[/dim]")
            for s in sessions:
                self._write_system(
                    f"[dim]{s.id}[/dim] {escape(s.title)} "
                    f"({s.stats.message_count} messages)"
                )
        elif name == "microagents":
            registry = self.controller.registry
            if not len(registry):
                self._write_system("[dim]No microagents loaded.[/dim]")
            for agent in registry:
                triggers = ", ".join(agent.triggers.shapes()) or "never"
                self._write_system(f"[bold]{escape(agent.name)}[/bold] [dim]({triggers})[/dim]")
        elif name == "run":
            self._run_custom(args)
        elif name == "help":
            for cmd, desc in COMMAND_HELP.items():
                self._write_system(f"[bold]/{cmd}[/bold] — {escape(desc)}")
        else:
            self.notify(f"Unknown command: /{name}", severity="warning")

    def _run_custom(self, args: list[str]) -> None:
        if not args:
            names = ", ".join(sorted(self.custom_commands)) or "none"
            self._write_system(f"[dim]Custom commands: {escape(names)}[/dim]")
            return
        command = self.custom_commands.get(args[0])
        if command is None:
            self.notify(f"No custom command named '{args[0]}'", severity="warning")
            return
        try:
            values = parse_command_args(args[1:])
        except ValueError as exc:
            self.notify(str(exc), severity="error")
            return
        self._send_custom(command.content, values)

    @work(group="agent-run", name="agent-run")
    async def _send(self, text: str) -> None:
        try:
            await self.controller.send_message(text)
        except CodaError as exc:
            self.notify(str(exc), severity="warning")

    @work(group="agent-run", name="agent-run")
    async def _send_custom(self, content: str, values: dict[str, str]) -> None:
        try:
            await self.controller.run_custom_command(content, values)
        except CodaError as exc:
            self.notify(str(exc), severity="warning")

    # ── actions ─────────────────────────────────────────────────────

    def action_rewind(self) -> None:
        if self.controller.session is None:
            return
        if self.controller.is_busy:
            self.notify("Agent is busy, please wait before rewinding", severity="warning")
            return

        def _on_pick(message_id: str | None) -> None:
            if message_id:
                self._rewind(message_id)

        self.app.push_screen(
            RewindScreen(self.controller.rewind_candidates()),
            callback=_on_pick,
        )

    @work(name="rewind")
    async def _rewind(self, message_id: str) -> None:
        try:
            session = await self.controller.rewind(message_id)
        except CodaError as exc:
            logger.error("Rewind failed: %s", exc)
            self.notify(str(exc), title="Rewind failed", severity="error")
            return
        self.notify(f"Rewound to {session.stats.message_count} message(s)")

    def action_new_session(self) -> None:
        self._new_session()

    @work(name="new-session")
    async def _new_session(self) -> None:
        await self.controller.new_session()

    def action_cancel_generation(self) -> None:
        if self.controller.is_busy:
            self.controller.cancel()
        else:
            self.set_focus(None)
