"""
Entry point for the media downloader Telegram bot.
"""

import asyncio
import logging
import sys
from typing import Any, Dict

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from config import DOWNLOAD_FOLDER, LOG_FORMAT, LOG_LEVEL, require_bot_token
from delivery import DeliveryService
from errors import setup_logging
from handlers import BotHandlers
from managers import DownloadManager
from menus import MenuController
from probes import MetadataProber, SizeEstimator
from progress import ProgressReporter
from sessions import SessionStore


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    logging.getLogger(__name__).error(
        "Unhandled exception in event loop: %s",
        context.get("message"),
        exc_info=context.get("exception"),
    )


async def main() -> None:
    logger = setup_logging(level=LOG_LEVEL, format_string=LOG_FORMAT)
    logger.info("Starting downloader bot")
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    bot = None
    download_manager = None
    try:
        bot = Bot(token=require_bot_token(), default=DefaultBotProperties(parse_mode="HTML"))
        dispatcher = Dispatcher(storage=MemoryStorage())
        DOWNLOAD_FOLDER.mkdir(parents=True, exist_ok=True)

        store = SessionStore()
        download_manager = DownloadManager(
            bot=bot,
            store=store,
            reporter=ProgressReporter(bot=bot, store=store),
            delivery=DeliveryService(bot=bot, store=store),
            estimator=SizeEstimator(),
        )
        BotHandlers(
            dp=dispatcher,
            bot=bot,
            store=store,
            download_manager=download_manager,
            menus=MenuController(bot=bot, store=store),
            prober=MetadataProber(),
        )

        await dispatcher.start_polling(bot)
    except Exception:
        logging.getLogger(__name__).exception("Fatal startup/runtime error")
        sys.exit(1)
    finally:
        if download_manager is not None:
            logging.getLogger(__name__).info(
                "Stopping %s active downloads", download_manager.get_active_downloads_count()
            )
            await download_manager.stop()
        if bot is not None:
            await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
