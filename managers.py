"""
Download supervisor: one yt-dlp process per session, watched to a terminal outcome.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Set

import aiofiles.os

from config import DOWNLOAD_FOLDER, MAX_FILE_SIZE, YT_DLP_PATH
from delivery import DeliveryService, cleanup_download_dir
from errors import DownloadError, error_manager, is_not_modified_error
from menus import back_and_cancel_keyboard, cancel_download_keyboard
from models import (
    FORMAT_SPECS,
    CancelResult,
    DownloadOutcome,
    FormatSpec,
    FormatType,
    StartResult,
)
from probes import SizeEstimator
from progress import ProgressReporter, parse_progress_line
from sessions import SessionStore
from ui import EMOJI, bold, escape, italic
from utils import bytes_to_mb

logger = logging.getLogger(__name__)

STREAM_LIMIT = 1024 * 1024


def build_download_command(
    format_type: FormatType,
    url: str,
    destination: Path,
    executable: str = YT_DLP_PATH,
) -> List[str]:
    """yt-dlp argv for one format tag; the output lands exactly at ``destination``."""
    spec = FORMAT_SPECS[format_type]
    # yt-dlp treats "%" in -o as a template field.
    stem = str(destination.with_suffix("")).replace("%", "%%")
    return [
        executable,
        *spec.ytdlp_args,
        "--no-warnings",
        "--no-playlist",
        "--newline",
        "--output",
        f"{stem}.%(ext)s",
        url,
    ]


def destination_for(download_folder: Path, session_key: str, clean_title: str, spec: FormatSpec) -> Path:
    """One directory per session keeps equal titles from colliding."""
    return Path(download_folder) / session_key / f"{clean_title}.{spec.extension}"


class DownloadProcess:
    """Owned handle of a running yt-dlp process; ``terminate`` is the only way to stop it."""

    def __init__(self, process: Any):
        self._process = process
        self.terminated = False

    @property
    def pid(self) -> Optional[int]:
        return getattr(self._process, "pid", None)

    @property
    def stdout(self) -> Any:
        return self._process.stdout

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    def terminate(self) -> bool:
        """Kill immediately; returns False if the process had already exited."""
        if self._process.returncode is not None:
            return False
        self.terminated = True
        try:
            self._process.kill()
        except ProcessLookupError:
            return False
        return True

    async def wait(self) -> int:
        return await self._process.wait()


class DownloadManager:
    """Starts, supervises and cancels downloads."""

    def __init__(
        self,
        bot: Any,
        store: SessionStore,
        reporter: ProgressReporter,
        delivery: DeliveryService,
        estimator: Optional[SizeEstimator] = None,
        executable: str = YT_DLP_PATH,
        download_folder: Path = DOWNLOAD_FOLDER,
        max_file_size: int = MAX_FILE_SIZE,
    ):
        self.bot = bot
        self.store = store
        self.reporter = reporter
        self.delivery = delivery
        self.estimator = estimator or SizeEstimator(executable=executable)
        self.executable = executable
        self.download_folder = Path(download_folder)
        self.max_file_size = max_file_size

        self._starting: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def max_file_size_mb(self) -> int:
        return self.max_file_size // (1024 * 1024)

    async def start_download(self, session_key: str, format_type: FormatType) -> StartResult:
        """Gate on the size estimate, spawn yt-dlp and hand it to a supervision task."""
        session = self.store.get(session_key)
        if session is None:
            return StartResult.EXPIRED
        if session.download_process is not None or session_key in self._starting:
            logger.error("Session %s already owns a download process", session_key)
            return StartResult.ALREADY_RUNNING

        self._starting.add(session_key)
        try:
            return await self._start(session_key, format_type)
        finally:
            self._starting.discard(session_key)

    async def _start(self, session_key: str, format_type: FormatType) -> StartResult:
        spec = FORMAT_SPECS[format_type]
        session = self.store.update(session_key, format_type=format_type, quality=spec.quality)

        estimate = await self.estimator.estimate(session.original_url, format_type)
        session = self.store.get(session_key)
        if session is None:
            return StartResult.EXPIRED
        session = self.store.update(
            session_key, estimated_size=estimate.size_bytes if estimate.estimated else None
        )

        if estimate.estimated and estimate.size_bytes > self.max_file_size:
            logger.warning(
                "Session %s rejected before download: %s bytes estimated", session_key, estimate.size_bytes
            )
            await self._edit(
                session.chat_id,
                session.progress_message_id,
                error_manager.too_large(
                    session.title, estimated_mb=estimate.size_mb, max_size_mb=self.max_file_size_mb
                ),
                reply_markup=back_and_cancel_keyboard(session_key),
            )
            return StartResult.TOO_LARGE

        destination = destination_for(self.download_folder, session_key, session.clean_title, spec)
        command = build_download_command(format_type, session.original_url, destination, self.executable)

        text = (
            f"{EMOJI['DOWNLOAD']} {bold('Starting Download...')}\n\n"
            f"{bold('Title:')} {escape(session.title)}\n"
            f"{bold('Quality:')} {spec.quality}\n"
        )
        if estimate.estimated:
            text += f"{bold('Estimated Size:')} {estimate.size_mb}MB\n"
        text += italic("This may take a few moments...")
        await self._edit(
            session.chat_id,
            session.progress_message_id,
            text,
            reply_markup=cancel_download_keyboard(session_key),
        )

        try:
            await aiofiles.os.makedirs(destination.parent, exist_ok=True)
            process = await self._spawn(command)
        except OSError as error:
            logger.exception("Download process error for session %s", session_key)
            cleanup_download_dir(destination.parent)
            self.store.delete(session_key)
            await self._send(session.chat_id, error_manager.spawn_error(error))
            return StartResult.FAILED

        handle = DownloadProcess(process)
        if self.store.get(session_key) is None:
            # Cancelled or expired while spawning.
            handle.terminate()
            await handle.wait()
            cleanup_download_dir(destination.parent)
            return StartResult.EXPIRED

        self.store.update(session_key, download_process=handle, supervised=True)
        logger.info("Session %s: download started (pid=%s, %s)", session_key, handle.pid, format_type.value)

        task = asyncio.create_task(self._supervise(session_key, handle, destination, spec))
        self._tasks[session_key] = task
        task.add_done_callback(lambda _: self._tasks.pop(session_key, None))
        return StartResult.STARTED

    async def _spawn(self, command: List[str]) -> Any:
        return await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            limit=STREAM_LIMIT,
        )

    async def _supervise(
        self,
        session_key: str,
        handle: DownloadProcess,
        destination: Path,
        spec: FormatSpec,
    ) -> DownloadOutcome:
        session = self.store.get(session_key)
        if session is None:
            handle.terminate()
            await handle.wait()
            cleanup_download_dir(destination.parent)
            return DownloadOutcome.CANCELLED

        chat_id = session.chat_id
        message_id = session.progress_message_id
        title = session.title
        platform = session.platform

        try:
            output_tail = await self._read_output(session_key, handle, chat_id, message_id, title, platform)
            code = await handle.wait()

            if self.store.get(session_key) is None or handle.terminated:
                logger.info("Session %s: download cancelled", session_key)
                return DownloadOutcome.CANCELLED
            self.store.update(session_key, download_process=None)

            if code != 0:
                logger.error("yt-dlp output for session %s: %s", session_key, " | ".join(output_tail))
                raise DownloadError(f"Download failed with code {code}")
            if not await aiofiles.os.path.exists(destination):
                raise DownloadError("File not found after download")
            size = await aiofiles.os.path.getsize(destination)
            if size == 0:
                raise DownloadError("Downloaded file is empty")

            if size > self.max_file_size:
                session = self.store.get(session_key)
                estimated = session.estimated_size if session else None
                logger.warning("Session %s: downloaded file too large (%s bytes)", session_key, size)
                await self._edit(
                    chat_id,
                    message_id,
                    error_manager.too_large(
                        title,
                        size_mb=bytes_to_mb(size),
                        estimated_mb=bytes_to_mb(estimated) if estimated is not None else None,
                        max_size_mb=self.max_file_size_mb,
                    ),
                )
                return DownloadOutcome.TOO_LARGE

            await self.reporter.finish(session_key, chat_id, message_id, title, platform)
            session = self.store.get(session_key)
            if session is None:
                return DownloadOutcome.CANCELLED
            delivered = await self.delivery.deliver(session_key, session, spec.kind, destination, size)
            return DownloadOutcome.SUCCESS if delivered else DownloadOutcome.FAILED
        except DownloadError as error:
            logger.error("Download failed for session %s: %s", session_key, error)
            await self._edit(chat_id, message_id, error_manager.to_user_message(error, title))
            return DownloadOutcome.FAILED
        except asyncio.CancelledError:
            handle.terminate()
            raise
        except Exception as error:
            logger.exception("Unexpected supervisor error for session %s", session_key)
            await self._send(chat_id, error_manager.generic(error))
            return DownloadOutcome.FAILED
        finally:
            cleanup_download_dir(destination.parent)
            self.store.delete(session_key)

    async def _read_output(
        self,
        session_key: str,
        handle: DownloadProcess,
        chat_id: int,
        message_id: int,
        title: str,
        platform: str,
    ) -> Deque[str]:
        """Forward progress lines to the reporter; keep the last other lines for diagnostics."""
        tail: Deque[str] = deque(maxlen=5)
        if handle.stdout is None:
            return tail

        async for raw_line in handle.stdout:
            line = raw_line.decode("utf-8", errors="ignore").strip()
            percent = parse_progress_line(line)
            if percent is None:
                if line:
                    tail.append(line)
                continue
            await self.reporter.report(session_key, chat_id, message_id, percent, title, platform)
        return tail

    async def cancel(self, session_key: str) -> CancelResult:
        """Kill the session's process right away and drop the session."""
        session = self.store.get(session_key)
        if session is None:
            return CancelResult.EXPIRED

        handle = session.download_process
        if handle is None:
            return CancelResult.NO_ACTIVE_DOWNLOAD

        handle.terminate()
        self.store.delete(session_key)
        logger.info("Session %s: download cancelled by user", session_key)
        await self._send(session.chat_id, f"{EMOJI['CANCEL']} {bold('Download canceled!')}")
        return CancelResult.CANCELLED

    async def cancel_chat(self, chat_id: int) -> CancelResult:
        """Cancel every running download of a chat (the /cancel command)."""
        cancelled = False
        for session_key in self.store.find_by_chat(chat_id):
            session = self.store.get(session_key)
            if session is None or session.download_process is None:
                continue
            if await self.cancel(session_key) is CancelResult.CANCELLED:
                cancelled = True

        if cancelled:
            return CancelResult.CANCELLED
        await self._send(chat_id, f"{EMOJI['INFO']} {bold('No active download to cancel')}")
        return CancelResult.NO_ACTIVE_DOWNLOAD

    def get_active_downloads_count(self) -> int:
        return len(self._tasks)

    async def stop(self) -> None:
        """Terminate running downloads and wait for their cleanup."""
        for session_key in list(self._tasks):
            session = self.store.get(session_key)
            if session is not None and session.download_process is not None:
                session.download_process.terminate()

        tasks = list(self._tasks.values())
        for result in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error("Download task stop failed: %s", result)

    async def _edit(self, chat_id: int, message_id: Optional[int], text: str, reply_markup: Any = None) -> None:
        if message_id is None:
            await self._send(chat_id, text)
            return
        try:
            await self.bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=reply_markup,
            )
        except Exception as error:
            if is_not_modified_error(error):
                return
            logger.warning("Message edit failed for chat %s: %s", chat_id, error)

    async def _send(self, chat_id: int, text: str) -> None:
        try:
            await self.bot.send_message(chat_id=chat_id, text=text)
        except Exception:
            logger.error("Message send failed for chat %s", chat_id, exc_info=True)
