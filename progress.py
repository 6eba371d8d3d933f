"""
Rate-limited progress notifications.
"""

import logging
import time
from typing import Any, Callable, Optional

from config import MIN_PROGRESS_CHANGE, PROGRESS_LINE_RE, PROGRESS_UPDATE_INTERVAL_MS
from errors import is_not_modified_error
from sessions import SessionStore
from ui import EMOJI, bold, escape, italic, progress_bar

logger = logging.getLogger(__name__)


def parse_progress_line(line: str) -> Optional[int]:
    """Percentage from a ``[download]  NN.N%`` line, rounded."""
    match = PROGRESS_LINE_RE.search(line)
    if not match:
        return None
    return int(round(float(match.group(1))))


def clamp_percent(percent: float) -> int:
    return max(0, min(100, int(round(percent))))


def render_progress(percent: int, title: str = "", platform: str = "") -> str:
    text = (
        f"{EMOJI['PROGRESS']} {bold('Download Progress')}\n\n"
        f"{progress_bar(percent)}\n\n"
        f"{EMOJI['INFO']} {italic(escape(title or 'Processing'))}\n"
    )
    if platform:
        text += f"{EMOJI['GLOBE']} Source: {escape(platform)}\n"
    return text


class ProgressReporter:
    """
    Turns raw percentages into message edits.

    An edit is emitted only when the reading moved forward by at least
    ``min_delta`` points since the last emitted value and at least
    ``interval_ms`` passed since the last emission. Readings at or below the
    last emitted value are dropped, the bar never goes back. ``finish`` emits
    100% once per session regardless of the gate.

    Throttle state lives in the session record and is written only here.
    """

    def __init__(
        self,
        bot: Any,
        store: SessionStore,
        interval_ms: int = PROGRESS_UPDATE_INTERVAL_MS,
        min_delta: int = MIN_PROGRESS_CHANGE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bot = bot
        self.store = store
        self.interval = interval_ms / 1000.0
        self.min_delta = min_delta
        self._clock = clock

    def should_emit(self, percent: int, last_progress: int, last_update_time: Optional[float], now: float) -> bool:
        if percent - last_progress < self.min_delta:
            return False
        if last_update_time is not None and now - last_update_time < self.interval:
            return False
        return True

    async def report(
        self,
        session_key: str,
        chat_id: int,
        message_id: int,
        percent: float,
        title: str = "",
        platform: str = "",
    ) -> bool:
        """Emit a progress edit if the gate allows it; returns True when emitted."""
        session = self.store.get(session_key)
        if session is None or session.progress_finalized:
            return False

        percent = clamp_percent(percent)
        now = self._clock()
        if not self.should_emit(percent, session.last_progress, session.last_update_time, now):
            return False
        return await self._emit(session_key, chat_id, message_id, percent, title, platform, now)

    async def finish(
        self,
        session_key: str,
        chat_id: int,
        message_id: int,
        title: str = "",
        platform: str = "",
    ) -> bool:
        """Force the final 100% edit unless 100% was already shown."""
        session = self.store.get(session_key)
        if session is None or session.progress_finalized:
            return False

        self.store.update(session_key, progress_finalized=True)
        if session.last_progress >= 100:
            return False
        return await self._emit(session_key, chat_id, message_id, 100, title, platform, self._clock())

    async def _emit(
        self,
        session_key: str,
        chat_id: int,
        message_id: int,
        percent: int,
        title: str,
        platform: str,
        now: float,
    ) -> bool:
        # Reserve the slot before awaiting so interleaved readings see it.
        self.store.update(session_key, last_progress=percent, last_update_time=now)
        try:
            await self.bot.edit_message_text(
                text=render_progress(percent, title, platform),
                chat_id=chat_id,
                message_id=message_id,
            )
        except Exception as error:
            if is_not_modified_error(error):
                logger.debug("Progress for session %s already at %s%%", session_key, percent)
            else:
                logger.warning("Progress update failed for session %s: %s", session_key, error)
        return True
