"""
HTML formatting primitives and reusable message fragments.
"""

import html

from config import MAX_FILE_SIZE_MB

EMOJI = {
    "WAVE": "👋",
    "MUSIC": "🎵",
    "VIDEO": "🎬",
    "DOWNLOAD": "⏬",
    "UPLOAD": "📤",
    "SUCCESS": "✅",
    "ERROR": "❌",
    "WARNING": "⚠️",
    "OPTIONS": "⚙️",
    "LINK": "🔗",
    "CLOCK": "⏳",
    "PROGRESS": "📊",
    "INFO": "ℹ️",
    "GLOBE": "🌐",
    "AUDIO": "🎧",
    "CANCEL": "❌",
}


def bold(text: str) -> str:
    return f"<b>{text}</b>"


def italic(text: str) -> str:
    return f"<i>{text}</i>"


def code(text: str) -> str:
    return f"<code>{text}</code>"


def link(text: str, url: str) -> str:
    return f'<a href="{html.escape(url, quote=True)}">{text}</a>'


def pre(text: str) -> str:
    return f"<pre>{text}</pre>"


def escape(text: object) -> str:
    """Escape untrusted text before placing it in HTML markup."""
    return html.escape(str(text), quote=False)


def progress_bar(percent: int, width: int = 10) -> str:
    percent = max(0, min(100, int(percent)))
    filled = int(round(width * percent / 100.0))
    return f"{'🟩' * filled}{'⬜️' * (width - filled)} {percent}%"


def format_duration(seconds: float) -> str:
    """Duration as m:ss (minutes are not wrapped into hours)."""
    total_seconds = max(0, int(seconds))
    minutes, secs = divmod(total_seconds, 60)
    return f"{minutes}:{secs:02d}"


WELCOME_TEXT = (
    f"{EMOJI['WAVE']} {bold('Media Downloader')}\n\n"
    f"{italic('Send a link, pick a format, get the file.')}\n\n"
    f"{bold('Features:')}\n"
    "• Download from YouTube, Instagram, TikTok and more\n"
    "• Multiple quality options\n"
    "• Real-time progress tracking\n"
    "• Automatic format conversion\n"
    "• File size checking\n\n"
    f"{bold('How to use:')}\n"
    "1. Send me any media link\n"
    "2. I'll show you download options\n"
    f"3. Get your file (under {MAX_FILE_SIZE_MB}MB)\n\n"
    "Use /cancel to stop an active download.\n"
    f"{italic('Note: Some platforms may have restrictions')}"
)
