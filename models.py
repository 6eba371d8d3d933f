"""
Data models for the downloader bot.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class MediaKind(Enum):
    """Supported output modes."""

    VIDEO = "video"
    AUDIO = "audio"


class FormatType(Enum):
    """Quality/bitrate choices offered to the user."""

    AUDIO_128 = "audio_128"
    AUDIO_192 = "audio_192"
    AUDIO_320 = "audio_320"
    VIDEO_480 = "video_480"
    VIDEO_720 = "video_720"
    VIDEO_BEST = "video_best"


@dataclass(frozen=True)
class FormatSpec:
    """Extraction parameters bound to one format tag."""

    kind: MediaKind
    quality: str
    extension: str
    ytdlp_args: Tuple[str, ...]
    estimate_selector: str


FORMAT_SPECS: Dict[FormatType, FormatSpec] = {
    FormatType.AUDIO_128: FormatSpec(
        kind=MediaKind.AUDIO,
        quality="128kbps",
        extension="mp3",
        ytdlp_args=("-x", "--audio-format", "mp3", "--audio-quality", "128K", "--embed-thumbnail"),
        estimate_selector="bestaudio",
    ),
    FormatType.AUDIO_192: FormatSpec(
        kind=MediaKind.AUDIO,
        quality="192kbps",
        extension="mp3",
        ytdlp_args=("-x", "--audio-format", "mp3", "--audio-quality", "192K", "--embed-thumbnail"),
        estimate_selector="bestaudio",
    ),
    FormatType.AUDIO_320: FormatSpec(
        kind=MediaKind.AUDIO,
        quality="320kbps",
        extension="mp3",
        ytdlp_args=("-x", "--audio-format", "mp3", "--audio-quality", "320K", "--embed-thumbnail"),
        estimate_selector="bestaudio",
    ),
    FormatType.VIDEO_480: FormatSpec(
        kind=MediaKind.VIDEO,
        quality="480p",
        extension="mp4",
        ytdlp_args=("-f", "best[height<=480][ext=mp4]", "--merge-output-format", "mp4"),
        estimate_selector="best[height<=480][ext=mp4]/best[ext=mp4]",
    ),
    FormatType.VIDEO_720: FormatSpec(
        kind=MediaKind.VIDEO,
        quality="720p",
        extension="mp4",
        ytdlp_args=("-f", "best[height<=720][ext=mp4]", "--merge-output-format", "mp4"),
        estimate_selector="best[height<=720][ext=mp4]/best[ext=mp4]",
    ),
    FormatType.VIDEO_BEST: FormatSpec(
        kind=MediaKind.VIDEO,
        quality="Best Quality",
        extension="mp4",
        ytdlp_args=(
            "-f",
            "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]",
            "--merge-output-format",
            "mp4",
        ),
        estimate_selector="best[ext=mp4]",
    ),
}


class Action(Enum):
    """Inline button actions."""

    MAIN_MENU = "main_menu"
    AUDIO_MENU = "audio_menu"
    VIDEO_MENU = "video_menu"
    SELECT = "select"
    CANCEL = "cancel"


class MenuState(Enum):
    """Which set of choices is currently rendered for a session."""

    AWAITING_TOP_CHOICE = "awaiting_top_choice"
    AUDIO_MENU = "audio_menu"
    VIDEO_MENU = "video_menu"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CallbackPayload:
    """
    Button payload: action kind, optional format tag and session key.

    Packed as ``action:format:session`` to fit Telegram's 64-byte limit.
    """

    action: Action
    session_key: str
    format_type: Optional[FormatType] = None

    def pack(self) -> str:
        fmt = self.format_type.value if self.format_type else ""
        return f"{self.action.value}:{fmt}:{self.session_key}"

    @classmethod
    def parse(cls, data: str) -> "CallbackPayload":
        parts = (data or "").split(":", 2)
        if len(parts) != 3:
            raise ValueError(f"Malformed callback data: {data!r}")

        raw_action, raw_format, session_key = parts
        try:
            action = Action(raw_action)
        except ValueError:
            raise ValueError(f"Unknown action: {raw_action!r}") from None
        if not session_key:
            raise ValueError("Callback data has no session key")

        format_type = None
        if action is Action.SELECT:
            try:
                format_type = FormatType(raw_format)
            except ValueError:
                raise ValueError(f"Unknown format: {raw_format!r}") from None
        elif raw_format:
            raise ValueError(f"Action {action.value} takes no format")

        return cls(action=action, session_key=session_key, format_type=format_type)


@dataclass
class MediaInfo:
    """Metadata returned by the extraction tool."""

    title: str
    clean_title: str
    platform: str
    original_filename: str
    duration: int = 0
    thumbnail: Optional[str] = None
    ext: str = "mp4"


@dataclass
class SizeEstimate:
    """Pre-flight transfer size estimate."""

    estimated: bool
    size_bytes: Optional[int] = None
    error: Optional[str] = None

    @property
    def size_mb(self) -> Optional[str]:
        if self.size_bytes is None:
            return None
        return f"{self.size_bytes / (1024 * 1024):.2f}"


@dataclass
class Session:
    """State of one user interaction with one media URL."""

    chat_id: int
    original_url: str
    title: str
    clean_title: str
    platform: str
    duration: int = 0
    thumbnail: Optional[str] = None
    menu_state: MenuState = MenuState.AWAITING_TOP_CHOICE
    format_type: Optional[FormatType] = None
    quality: Optional[str] = None
    progress_message_id: Optional[int] = None
    download_process: Optional[Any] = None
    supervised: bool = False
    last_progress: int = 0
    last_update_time: Optional[float] = None
    progress_finalized: bool = False
    estimated_size: Optional[int] = None
    created_at: float = field(default_factory=time.time)


class StartResult(Enum):
    """Outcome of a format selection."""

    STARTED = "started"
    EXPIRED = "expired"
    TOO_LARGE = "too_large"
    ALREADY_RUNNING = "already_running"
    FAILED = "failed"


class DownloadOutcome(Enum):
    """Terminal state of a supervised download."""

    SUCCESS = "success"
    FAILED = "failed"
    TOO_LARGE = "too_large"
    CANCELLED = "cancelled"


class CancelResult(Enum):
    """Outcome of a cancel request."""

    CANCELLED = "cancelled"
    NO_ACTIVE_DOWNLOAD = "no_active_download"
    EXPIRED = "expired"


class MenuResult(Enum):
    """Outcome of a menu action."""

    RENDERED = "rendered"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
