"""
Format selection menus bound to a session.
"""

import logging
from typing import Any, List, Optional, Tuple

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from errors import is_not_modified_error
from models import Action, CallbackPayload, FormatType, MenuResult, MenuState, Session
from sessions import SessionStore
from ui import EMOJI, bold, escape, format_duration, italic

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    Action.MAIN_MENU: MenuState.AWAITING_TOP_CHOICE,
    Action.AUDIO_MENU: MenuState.AUDIO_MENU,
    Action.VIDEO_MENU: MenuState.VIDEO_MENU,
    Action.CANCEL: MenuState.CANCELLED,
}

AUDIO_CHOICES: Tuple[Tuple[FormatType, str], ...] = (
    (FormatType.AUDIO_128, "MP3 (128kbps - Small)"),
    (FormatType.AUDIO_192, "MP3 (192kbps - Balanced)"),
    (FormatType.AUDIO_320, "MP3 (320kbps - Best Quality)"),
)

VIDEO_CHOICES: Tuple[Tuple[FormatType, str], ...] = (
    (FormatType.VIDEO_480, "480p (Smaller Size)"),
    (FormatType.VIDEO_720, "720p (Recommended)"),
    (FormatType.VIDEO_BEST, "Best Available"),
)


class InvalidTransition(ValueError):
    """Action is not a menu transition from the current state."""


def next_state(current: MenuState, action: Action) -> MenuState:
    """Menu state after ``action``; format selection is not a menu transition."""
    if current is MenuState.CANCELLED:
        raise InvalidTransition("Menu is already cancelled")
    if action not in _TRANSITIONS:
        raise InvalidTransition(f"{action.value} is not a menu action")
    return _TRANSITIONS[action]


def _button(
    text: str, action: Action, session_key: str, format_type: Optional[FormatType] = None
) -> List[InlineKeyboardButton]:
    payload = CallbackPayload(action=action, session_key=session_key, format_type=format_type)
    return [InlineKeyboardButton(text=text, callback_data=payload.pack())]


def back_and_cancel_rows(session_key: str) -> List[List[InlineKeyboardButton]]:
    return [
        _button(f"{EMOJI['OPTIONS']} Back to Main Menu", Action.MAIN_MENU, session_key),
        _button(f"{EMOJI['CANCEL']} Cancel", Action.CANCEL, session_key),
    ]


def back_and_cancel_keyboard(session_key: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=back_and_cancel_rows(session_key))


def cancel_download_keyboard(session_key: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[_button(f"{EMOJI['CANCEL']} Cancel download", Action.CANCEL, session_key)]
    )


def render_menu(state: MenuState, session: Session, session_key: str) -> Tuple[str, InlineKeyboardMarkup]:
    """Text and keyboard for one menu state."""
    title = escape(session.title)
    platform = escape(session.platform)

    if state is MenuState.AWAITING_TOP_CHOICE:
        text = f"{EMOJI['LINK']} {bold('Media Detected:')} {platform}\n\n{bold('Title:')} {title}\n"
        if session.duration:
            text += f"{bold('Duration:')} {format_duration(session.duration)}\n"
        text += f"\n{EMOJI['OPTIONS']} {bold('Choose download option:')}"
        rows = [
            _button(f"{EMOJI['VIDEO']} Video Options", Action.VIDEO_MENU, session_key),
            _button(f"{EMOJI['AUDIO']} Audio Options", Action.AUDIO_MENU, session_key),
            _button(f"{EMOJI['CANCEL']} Cancel", Action.CANCEL, session_key),
        ]
    elif state is MenuState.AUDIO_MENU:
        text = (
            f"{EMOJI['AUDIO']} {bold('Audio Quality Options:')}\n\n"
            f"{bold('Title:')} {title}\n"
            f"{bold('Source:')} {platform}\n\n"
            f"{italic('Select your preferred audio quality:')}"
        )
        rows = [
            _button(f"{EMOJI['AUDIO']} {label}", Action.SELECT, session_key, fmt)
            for fmt, label in AUDIO_CHOICES
        ]
        rows.extend(back_and_cancel_rows(session_key))
    elif state is MenuState.VIDEO_MENU:
        text = (
            f"{EMOJI['VIDEO']} {bold('Video Quality Options:')}\n\n"
            f"{bold('Title:')} {title}\n"
            f"{bold('Source:')} {platform}\n\n"
            f"{italic('Select your preferred video quality:')}"
        )
        rows = [
            _button(f"{EMOJI['VIDEO']} {label}", Action.SELECT, session_key, fmt)
            for fmt, label in VIDEO_CHOICES
        ]
        rows.extend(back_and_cancel_rows(session_key))
    else:
        raise InvalidTransition("Cancelled menu has no choices")

    return text, InlineKeyboardMarkup(inline_keyboard=rows)


CANCELLED_TEXT = (
    f"{EMOJI['INFO']} {bold('Operation canceled')}\n\n"
    f"{italic('Send me another link if you want to download something.')}"
)


class MenuController:
    """Renders menus in place on the session's message."""

    def __init__(self, bot: Any, store: SessionStore):
        self.bot = bot
        self.store = store

    async def show_top_menu(self, session_key: str) -> MenuResult:
        session = self.store.get(session_key)
        if session is None:
            return MenuResult.EXPIRED
        return await self._render(session_key, session, MenuState.AWAITING_TOP_CHOICE)

    async def navigate(self, session_key: str, action: Action) -> MenuResult:
        session = self.store.get(session_key)
        if session is None:
            return MenuResult.EXPIRED

        state = next_state(session.menu_state, action)
        if state is MenuState.CANCELLED:
            return await self.cancel(session_key)
        return await self._render(session_key, session, state)

    async def cancel(self, session_key: str) -> MenuResult:
        session = self.store.get(session_key)
        if session is None:
            return MenuResult.EXPIRED

        self.store.delete(session_key)
        if session.progress_message_id is not None:
            await self._edit(session.chat_id, session.progress_message_id, CANCELLED_TEXT, None)
        return MenuResult.CANCELLED

    async def _render(self, session_key: str, session: Session, state: MenuState) -> MenuResult:
        text, keyboard = render_menu(state, session, session_key)
        self.store.update(session_key, menu_state=state)
        await self._edit(session.chat_id, session.progress_message_id, text, keyboard)
        return MenuResult.RENDERED

    async def _edit(self, chat_id: int, message_id: int, text: str, keyboard: Any) -> None:
        try:
            await self.bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=keyboard,
            )
        except Exception as error:
            if not is_not_modified_error(error):
                raise
            logger.debug("Menu for chat %s unchanged", chat_id)
