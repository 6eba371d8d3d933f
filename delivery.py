"""
Upload of finished downloads and removal of their artifacts.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Optional

from aiogram.enums import ChatAction
from aiogram.types import FSInputFile

from errors import error_manager
from models import MediaKind, Session
from sessions import SessionStore
from ui import EMOJI, bold, escape
from utils import bytes_to_mb

logger = logging.getLogger(__name__)


def cleanup_download_dir(path: Optional[Path]) -> None:
    """Remove a session download directory; safe to call repeatedly."""
    if not path:
        return
    try:
        if os.path.isdir(path):
            shutil.rmtree(path)
        elif os.path.exists(path):
            os.remove(path)
    except OSError as error:
        logger.error("Error cleaning up %s: %s", path, error)


def completion_caption(title: str, quality: str, size_bytes: int) -> str:
    return (
        f"{EMOJI['SUCCESS']} {bold('Download Complete!')}\n\n"
        f"{bold('Title:')} {escape(title)}\n"
        f"{bold('Quality:')} {escape(quality)}\n"
        f"{bold('Size:')} {bytes_to_mb(size_bytes)}MB"
    )


class DeliveryService:
    """Sends the finished file and always removes it afterwards."""

    def __init__(self, bot: Any, store: SessionStore):
        self.bot = bot
        self.store = store

    async def deliver(
        self,
        session_key: str,
        session: Session,
        kind: MediaKind,
        file_path: Path,
        size_bytes: int,
    ) -> bool:
        chat_id = session.chat_id
        try:
            action = ChatAction.UPLOAD_VOICE if kind is MediaKind.AUDIO else ChatAction.UPLOAD_VIDEO
            await self.bot.send_chat_action(chat_id=chat_id, action=action)

            caption = completion_caption(session.title, session.quality or "", size_bytes)
            if kind is MediaKind.AUDIO:
                await self.bot.send_audio(
                    chat_id=chat_id,
                    audio=FSInputFile(file_path, filename=f"{session.clean_title}{file_path.suffix}"),
                    title=session.clean_title,
                    performer=session.platform,
                    duration=session.duration or None,
                    caption=caption,
                )
            else:
                await self.bot.send_video(
                    chat_id=chat_id,
                    video=FSInputFile(file_path, filename=f"{session.clean_title}{file_path.suffix}"),
                    caption=caption,
                    supports_streaming=True,
                )
            logger.info("Session %s delivered %s (%s bytes)", session_key, file_path.name, size_bytes)

            if session.progress_message_id is not None:
                try:
                    await self.bot.delete_message(chat_id=chat_id, message_id=session.progress_message_id)
                except Exception as error:
                    logger.error("Error deleting progress message: %s", error)
            return True
        except Exception as error:
            logger.exception("Upload failed for session %s", session_key)
            try:
                await self.bot.send_message(chat_id=chat_id, text=error_manager.generic(error))
            except Exception:
                logger.debug("Upload failure notice not sent", exc_info=True)
            return False
        finally:
            cleanup_download_dir(file_path.parent)
            self.store.delete(session_key)
