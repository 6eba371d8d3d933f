"""
Telegram handlers: commands, links and inline button presses.
"""

import logging
from typing import Any

from aiogram import Dispatcher, F
from aiogram.filters import Command
from aiogram.types import CallbackQuery, ErrorEvent, LinkPreviewOptions, Message

from errors import error_manager
from managers import DownloadManager
from menus import MenuController
from models import Action, CallbackPayload, CancelResult, MenuResult, Session, StartResult
from probes import MetadataProber
from sessions import SessionStore
from ui import EMOJI, WELCOME_TEXT, bold, italic
from utils import sanitize_user_input, validate_url_input

logger = logging.getLogger(__name__)

_MENU_ACTIONS = {Action.MAIN_MENU, Action.AUDIO_MENU, Action.VIDEO_MENU}
NO_PREVIEW = LinkPreviewOptions(is_disabled=True)


class BotHandlers:
    """Registers bot commands and the URL-driven download flow."""

    def __init__(
        self,
        dp: Dispatcher,
        bot: Any,
        store: SessionStore,
        download_manager: DownloadManager,
        menus: MenuController,
        prober: MetadataProber,
    ):
        self.dp = dp
        self.bot = bot
        self.store = store
        self.download_manager = download_manager
        self.menus = menus
        self.prober = prober
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.dp.message.register(self.handle_start, Command(commands=["start", "help"]))
        self.dp.message.register(self.handle_cancel, Command(commands=["cancel"]))
        self.dp.message.register(self.handle_url_message, F.text)
        self.dp.message.register(self.handle_other_message)
        self.dp.callback_query.register(self.handle_callback)
        self.dp.errors.register(self.handle_error)

    async def handle_start(self, message: Message) -> None:
        await message.answer(WELCOME_TEXT, link_preview_options=NO_PREVIEW)

    async def handle_other_message(self, message: Message) -> None:
        if message.chat.type == "private":
            await message.answer(WELCOME_TEXT, link_preview_options=NO_PREVIEW)

    async def handle_cancel(self, message: Message) -> None:
        await self.download_manager.cancel_chat(message.chat.id)

    async def handle_url_message(self, message: Message) -> None:
        text = sanitize_user_input(message.text or "")
        if not text or text.startswith("/"):
            return

        valid, error = validate_url_input(text)
        if not valid:
            await message.answer(error_manager.invalid_url(error), link_preview_options=NO_PREVIEW)
            return

        chat_id = message.chat.id
        session_key = None
        try:
            status_msg = await message.answer(
                f"{EMOJI['CLOCK']} {bold('Checking link...')}\n\n"
                f"{italic('Please wait while I analyze the media')}"
            )

            info = await self.prober.probe(text)
            session_key = self.store.new_key()
            self.store.create(
                session_key,
                Session(
                    chat_id=chat_id,
                    original_url=text,
                    title=info.title,
                    clean_title=info.clean_title,
                    platform=info.platform,
                    duration=info.duration,
                    thumbnail=info.thumbnail,
                    progress_message_id=status_msg.message_id,
                ),
            )
            await self.menus.show_top_menu(session_key)
        except Exception as error:
            logger.exception("Error processing URL %s", text)
            if session_key is not None:
                self.store.delete(session_key)
            await message.answer(error_manager.url_processing(error), link_preview_options=NO_PREVIEW)

    async def handle_callback(self, callback: CallbackQuery) -> None:
        try:
            payload = CallbackPayload.parse(callback.data or "")
        except ValueError as error:
            logger.warning("Rejected callback data %r: %s", callback.data, error)
            await callback.answer("Unknown action.", show_alert=True)
            return

        session_key = payload.session_key
        session = self.store.get(session_key)
        if session is None:
            await callback.answer(error_manager.session_expired(), show_alert=True)
            return

        try:
            await callback.answer()

            if payload.action is Action.CANCEL:
                if session.download_process is not None:
                    result = await self.download_manager.cancel(session_key)
                    if result is CancelResult.EXPIRED:
                        await self._notify_expired(session.chat_id)
                elif await self.menus.cancel(session_key) is MenuResult.EXPIRED:
                    await self._notify_expired(session.chat_id)
                return

            if session.download_process is not None:
                await self.bot.send_message(
                    chat_id=session.chat_id,
                    text=f"{EMOJI['CLOCK']} {bold('Download already in progress')}",
                )
                return

            if payload.action in _MENU_ACTIONS:
                if await self.menus.navigate(session_key, payload.action) is MenuResult.EXPIRED:
                    await self._notify_expired(session.chat_id)
                return

            result = await self.download_manager.start_download(session_key, payload.format_type)
            if result is StartResult.EXPIRED:
                # The session existed when the press arrived; it was cancelled while starting.
                logger.info("Session %s cancelled before its download started", session_key)
            elif result is StartResult.ALREADY_RUNNING:
                await self.bot.send_message(
                    chat_id=session.chat_id,
                    text=f"{EMOJI['CLOCK']} {bold('Download already in progress')}",
                )
        except Exception as error:
            logger.exception("Callback error for session %s", session_key)
            current = self.store.get(session_key)
            if current is not None and current.download_process is not None:
                current.download_process.terminate()
            self.store.delete(session_key)
            await self.bot.send_message(chat_id=session.chat_id, text=error_manager.generic(error))

    async def _notify_expired(self, chat_id: int) -> None:
        await self.bot.send_message(
            chat_id=chat_id,
            text=f"{EMOJI['WARNING']} {bold(error_manager.session_expired())}",
        )

    async def handle_error(self, event: ErrorEvent) -> bool:
        logger.error("Unhandled error while processing update", exc_info=event.exception)
        return True
