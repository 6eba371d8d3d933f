"""
Configuration for the media downloader bot.
"""

import os
import re
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR: Path = Path(__file__).resolve().parent


def require_bot_token() -> str:
    """Return bot token or raise if it is not configured."""
    token = os.getenv("BOT_TOKEN", "").strip()
    if not token:
        raise RuntimeError("Missing BOT_TOKEN environment variable")
    return token


def _default_ytdlp_path() -> str:
    if sys.platform == "win32":
        return str(BASE_DIR / "tools" / "yt-dlp.exe")
    return "yt-dlp"


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

DOWNLOAD_FOLDER: Path = Path(os.getenv("DOWNLOAD_FOLDER", "").strip() or BASE_DIR / "downloads")
YT_DLP_PATH: str = os.getenv("YT_DLP_PATH", "").strip() or _default_ytdlp_path()

MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "50"))  # Telegram bot upload limit
MAX_FILE_SIZE: int = MAX_FILE_SIZE_MB * 1024 * 1024

PROGRESS_UPDATE_INTERVAL_MS: int = int(os.getenv("PROGRESS_UPDATE_INTERVAL_MS", "3000"))
MIN_PROGRESS_CHANGE: int = int(os.getenv("MIN_PROGRESS_CHANGE", "5"))

PROBE_TIMEOUT_SECONDS: float = float(os.getenv("PROBE_TIMEOUT_SECONDS", "60"))
HEAD_TIMEOUT_SECONDS: float = float(os.getenv("HEAD_TIMEOUT_SECONDS", "15"))
SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "3600"))

PROGRESS_LINE_RE: re.Pattern[str] = re.compile(r"\[download\]\s+(\d+(?:\.\d+)?)%")

DEFAULT_EXTENSION: str = "mp4"
