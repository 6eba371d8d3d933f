"""
In-memory session store.
"""

import dataclasses
import logging
import secrets
import time
from typing import Any, Callable, Dict, List, Optional

from config import SESSION_TTL_SECONDS
from models import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Maps session keys to Session records.

    The store is the only shared mutable state of the bot. Callers must not
    hold on to a record across an ``await``: re-fetch with ``get`` after every
    suspension point, the session may have been deleted in the meantime.
    """

    def __init__(
        self,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._sessions: Dict[str, Session] = {}
        self._last_activity: Dict[str, float] = {}
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def new_key() -> str:
        return secrets.token_hex(8)

    def create(self, key: str, record: Session) -> None:
        self._cleanup_expired()
        if key in self._sessions:
            raise KeyError(f"Session {key} already exists")
        self._sessions[key] = record
        self._last_activity[key] = self._clock()
        logger.info("Session %s created for chat %s", key, record.chat_id)

    def get(self, key: str) -> Optional[Session]:
        self._cleanup_expired()
        record = self._sessions.get(key)
        if record is None:
            return None
        return dataclasses.replace(record)

    def update(self, key: str, **changes: Any) -> Optional[Session]:
        """Apply partial changes; returns the new record or None if absent."""
        record = self._sessions.get(key)
        if record is None:
            return None
        updated = dataclasses.replace(record, **changes)
        self._sessions[key] = updated
        self._last_activity[key] = self._clock()
        return dataclasses.replace(updated)

    def delete(self, key: str) -> bool:
        removed = self._sessions.pop(key, None)
        self._last_activity.pop(key, None)
        if removed is not None:
            logger.info("Session %s removed", key)
        return removed is not None

    def find_by_chat(self, chat_id: int) -> List[str]:
        return [key for key, record in self._sessions.items() if record.chat_id == chat_id]

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _cleanup_expired(self) -> None:
        """Drop sessions idle for longer than the TTL; supervised ones are never swept."""
        if self.ttl_seconds <= 0:
            return
        now = self._clock()
        expired = [
            key
            for key, record in self._sessions.items()
            if record.download_process is None
            and not record.supervised
            and now - self._last_activity.get(key, record.created_at) > self.ttl_seconds
        ]
        for key in expired:
            self.delete(key)
            logger.info("Session %s expired", key)
