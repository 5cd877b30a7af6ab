"""Rewind picker for choosing an earlier prompt to rewind the session to.

Lists the user's own prompts, oldest first. Dismisses with the chosen
message id, or None when cancelled.
"""
from __future__ import annotations

from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Static

from coda.shared.models.message import Message

_PREVIEW_CHARS = 72


def _preview(text: str) -> str:
    line = " ".join(text.split())
    if len(line) > _PREVIEW_CHARS:
        return f"{line[:_PREVIEW_CHARS - 1]}…"
    return line


class RewindScreen(ModalScreen[str | None]):
    """Modal list of rewind targets."""

    BINDINGS = [
        ("escape", "cancel", "Cancel"),
    ]

    CSS = """
    RewindScreen {
        align: center middle;
    }
    RewindScreen > Vertical {
        width: 84;
        height: auto;
        max-height: 30;
        background: $surface;
        border: thick $accent;
        padding: 1 2;
    }
    RewindScreen Label {
        width: 100%;
        text-align: center;
        margin-bottom: 1;
    }
    RewindScreen #rewind-list {
        height: auto;
        max-height: 20;
    }
    RewindScreen .rewind-item {
        width: 100%;
    }
    RewindScreen Button:focus {
        border: tall $accent;
    }
    """

    def __init__(self, messages: list[Message], **kwargs) -> None:
        super().__init__(**kwargs)
        self._messages = messages

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label("Rewind session to before…")
            if not self._messages:
                yield Static("[dim]No messages found[/dim]", markup=True)
            with VerticalScroll(id="rewind-list"):
                for idx, msg in enumerate(self._messages):
                    yield Button(
                        escape(_preview(msg.text_content)),
                        id=f"rewind-item-{idx}",
                        classes="rewind-item",
                    )
            yield Static(
                "[dim]enter: rewind here · esc: cancel[/dim]",
                markup=True,
            )

    def on_mount(self) -> None:
        if self._messages:
            self.query_one("#rewind-item-0", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn_id = event.button.id or ""
        if not btn_id.startswith("rewind-item-"):
            return
        try:
            idx = int(btn_id.rsplit("-", 1)[-1])
        except ValueError:
            self.dismiss(None)
            return
        if 0 <= idx < len(self._messages):
            self.dismiss(self._messages[idx].id)
            return
        self.dismiss(None)

    def key_up(self) -> None:
        self._move_focus(-1)

    def key_down(self) -> None:
        self._move_focus(1)

    def _move_focus(self, direction: int) -> None:
        if not self._messages:
            return
        focused_id = getattr(self.focused, "id", None) or ""
        try:
            current = int(focused_id.rsplit("-", 1)[-1])
        except ValueError:
            current = 0
        new_idx = (current + direction) % len(self._messages)
        self.query_one(f"#rewind-item-{new_idx}", Button).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)
