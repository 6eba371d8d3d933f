"""
Unit tests for the menu state machine.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from menus import InvalidTransition, MenuController, next_state, render_menu
from models import Action, CallbackPayload, FormatType, MenuResult, MenuState, Session
from sessions import SessionStore


def _session():
    return Session(
        chat_id=1,
        original_url="https://youtube.com/watch?v=test",
        title="Song X",
        clean_title="Song X",
        platform="youtube",
        duration=200,
        progress_message_id=10,
    )


def _make_controller():
    bot = SimpleNamespace(edit_message_text=AsyncMock())
    store = SessionStore()
    store.create("abc", _session())
    return MenuController(bot, store), bot, store


def _payloads(keyboard):
    return [CallbackPayload.parse(row[0].callback_data) for row in keyboard.inline_keyboard]


class TestTransitions:
    """Pure state transitions."""

    @pytest.mark.parametrize(
        "current,action,expected",
        [
            (MenuState.AWAITING_TOP_CHOICE, Action.AUDIO_MENU, MenuState.AUDIO_MENU),
            (MenuState.AWAITING_TOP_CHOICE, Action.VIDEO_MENU, MenuState.VIDEO_MENU),
            (MenuState.AUDIO_MENU, Action.MAIN_MENU, MenuState.AWAITING_TOP_CHOICE),
            (MenuState.VIDEO_MENU, Action.MAIN_MENU, MenuState.AWAITING_TOP_CHOICE),
            (MenuState.AUDIO_MENU, Action.AUDIO_MENU, MenuState.AUDIO_MENU),
            (MenuState.AWAITING_TOP_CHOICE, Action.CANCEL, MenuState.CANCELLED),
            (MenuState.VIDEO_MENU, Action.CANCEL, MenuState.CANCELLED),
        ],
    )
    def test_next_state(self, current, action, expected):
        assert next_state(current, action) == expected

    def test_cancelled_is_terminal(self):
        with pytest.raises(InvalidTransition):
            next_state(MenuState.CANCELLED, Action.MAIN_MENU)

    def test_format_selection_is_not_a_menu_transition(self):
        with pytest.raises(InvalidTransition):
            next_state(MenuState.AUDIO_MENU, Action.SELECT)


class TestRendering:
    """Keyboards bound to the session."""

    def test_top_menu(self):
        text, keyboard = render_menu(MenuState.AWAITING_TOP_CHOICE, _session(), "abc")
        assert "Song X" in text
        assert "3:20" in text
        actions = [payload.action for payload in _payloads(keyboard)]
        assert actions == [Action.VIDEO_MENU, Action.AUDIO_MENU, Action.CANCEL]

    def test_audio_menu(self):
        _, keyboard = render_menu(MenuState.AUDIO_MENU, _session(), "abc")
        payloads = _payloads(keyboard)
        assert [payload.format_type for payload in payloads[:3]] == [
            FormatType.AUDIO_128,
            FormatType.AUDIO_192,
            FormatType.AUDIO_320,
        ]
        assert [payload.action for payload in payloads[3:]] == [Action.MAIN_MENU, Action.CANCEL]
        assert all(payload.session_key == "abc" for payload in payloads)

    def test_video_menu(self):
        _, keyboard = render_menu(MenuState.VIDEO_MENU, _session(), "abc")
        formats = [payload.format_type for payload in _payloads(keyboard)[:3]]
        assert formats == [FormatType.VIDEO_480, FormatType.VIDEO_720, FormatType.VIDEO_BEST]

    def test_title_is_escaped(self):
        session = _session()
        session.title = "<script>"
        text, _ = render_menu(MenuState.AUDIO_MENU, session, "abc")
        assert "<script>" not in text


class TestController:
    """Menus edited in place on the session message."""

    def test_navigate_edits_the_same_message(self):
        controller, bot, store = _make_controller()

        assert asyncio.run(controller.navigate("abc", Action.AUDIO_MENU)) == MenuResult.RENDERED
        assert asyncio.run(controller.navigate("abc", Action.AUDIO_MENU)) == MenuResult.RENDERED

        assert bot.edit_message_text.await_count == 2
        assert {call.kwargs["message_id"] for call in bot.edit_message_text.await_args_list} == {10}
        assert store.get("abc").menu_state == MenuState.AUDIO_MENU

    def test_rerender_ignores_not_modified(self):
        controller, bot, _ = _make_controller()
        bot.edit_message_text.side_effect = Exception("Bad Request: message is not modified")

        assert asyncio.run(controller.navigate("abc", Action.MAIN_MENU)) == MenuResult.RENDERED

    def test_cancel_removes_session(self):
        controller, bot, store = _make_controller()

        assert asyncio.run(controller.navigate("abc", Action.CANCEL)) == MenuResult.CANCELLED
        assert store.get("abc") is None
        assert "Operation canceled" in bot.edit_message_text.await_args.kwargs["text"]

    def test_missing_session_is_expired(self):
        controller, bot, store = _make_controller()
        store.delete("abc")

        assert asyncio.run(controller.navigate("abc", Action.VIDEO_MENU)) == MenuResult.EXPIRED
        assert asyncio.run(controller.cancel("abc")) == MenuResult.EXPIRED
        bot.edit_message_text.assert_not_awaited()
