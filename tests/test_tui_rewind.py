"""Pilot tests for the chat screen's rewind flow."""
from __future__ import annotations

from tempfile import TemporaryDirectory

import pytest
from textual.app import App

from coda.adapters.event_bus import EventBus
from coda.engine.config import CodaConfig
from coda.engine.conversation import ConversationController
from coda.shared.models.message import MessageRole
from coda.shared.services.stores import InMemoryConversationStore
from coda.tui.app import CodaApp
from coda.tui.screens.chat import ChatScreen, MessageLine
from coda.tui.screens.rewind import RewindScreen, _preview


def _make_app(tmpdir: str):
    store = InMemoryConversationStore()
    session = store.create("tui")
    for role, text in [
        (MessageRole.USER, "first prompt"),
        (MessageRole.ASSISTANT, "first reply"),
        (MessageRole.USER, "second prompt"),
        (MessageRole.ASSISTANT, "second reply"),
    ]:
        store.create_message(session.id, role, text)

    bus = EventBus()
    config = CodaConfig(working_dir=tmpdir, storage="memory", demo_reply_delay=0)
    controller = ConversationController.from_config(config, store, bus=bus)
    app = CodaApp(controller, bus, resume_session_id=session.id)
    return app, store, session


async def _wait_until(pilot, condition, attempts: int = 40) -> bool:
    for _ in range(attempts):
        if condition():
            return True
        await pilot.pause(0.05)
    return condition()


@pytest.mark.asyncio
async def test_ctrl_r_picks_prompt_and_rewinds():
    with TemporaryDirectory() as tmpdir:
        app, store, session = _make_app(tmpdir)
        async with app.run_test(size=(120, 40)) as pilot:
            await pilot.pause()
            assert isinstance(app.screen, ChatScreen)
            assert await _wait_until(
                pilot, lambda: len(app.screen.query(MessageLine)) == 4
            )

            await pilot.press("ctrl+r")
            await pilot.pause()
            assert isinstance(app.screen, RewindScreen)
            assert len(app.screen.query(".rewind-item")) == 2

            app.screen.query_one("#rewind-item-1").focus()
            await pilot.pause()
            await pilot.press("enter")

            assert await _wait_until(
                pilot, lambda: len(store.list_messages(session.id)) == 2
            )
            assert [m.content for m in store.list_messages(session.id)] == [
                "first prompt",
                "first reply",
            ]
            assert isinstance(app.screen, ChatScreen)
            assert await _wait_until(
                pilot, lambda: len(app.screen.query(MessageLine)) == 2
            )
            assert app.controller.session.stats.message_count == 2


@pytest.mark.asyncio
async def test_escape_closes_picker_without_changes():
    with TemporaryDirectory() as tmpdir:
        app, store, session = _make_app(tmpdir)
        async with app.run_test(size=(120, 40)) as pilot:
            await pilot.pause()

            await pilot.press("ctrl+r")
            await pilot.pause()
            assert isinstance(app.screen, RewindScreen)

            await pilot.press("escape")
            await pilot.pause()
            assert isinstance(app.screen, ChatScreen)
            assert len(store.list_messages(session.id)) == 4


@pytest.mark.asyncio
async def test_picker_shows_placeholder_when_empty():
    screen = RewindScreen([])

    class _Host(App):
        def on_mount(self) -> None:
            self.push_screen(screen)

    app = _Host()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.pause()
        assert app.screen is screen
        assert len(screen.query(".rewind-item")) == 0
        await pilot.press("down")
        await pilot.press("escape")
        await pilot.pause()
        assert app.screen is not screen


def test_preview_collapses_whitespace_and_truncates():
    assert _preview("  fix\n  the   build ") == "fix the build"
    long = _preview("x" * 200)
    assert len(long) == 72
    assert long.endswith("…")
