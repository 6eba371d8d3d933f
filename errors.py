"""
Error formatting and logging utilities.
"""

import logging
from typing import Optional

from config import MAX_FILE_SIZE_MB
from ui import EMOJI, bold, code, escape, italic


def setup_logging(
    level: str = "INFO",
    format_string: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
) -> logging.Logger:
    """Configure root logging once and return module logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(numeric_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(console_handler)
    return logging.getLogger(__name__)


class DownloadError(Exception):
    """A download ended without a usable file."""


def is_not_modified_error(error: Exception) -> bool:
    """Telegram refuses edits that would not change the message."""
    return "message is not modified" in str(error).lower()


class ErrorManager:
    """Convert internal failures to compact user-facing messages."""

    max_details_length = 350

    def _details(self, error: object) -> str:
        return escape(str(error))[: self.max_details_length]

    def to_user_message(self, error: Exception, title: Optional[str] = None) -> str:
        """Download failure: category, reason, title and a suggestion."""
        text = f"{EMOJI['ERROR']} {bold('Download Failed')}\n\n{italic(self._details(error))}\n\n"
        if title:
            text += f"{bold('Title:')} {escape(title)}\n"
        return text + italic("Please try again or use a different quality option.")

    def too_large(
        self,
        title: str,
        size_mb: Optional[str] = None,
        estimated_mb: Optional[str] = None,
        max_size_mb: int = MAX_FILE_SIZE_MB,
    ) -> str:
        """Oversize rejection; ``size_mb`` is the real size once downloaded."""
        text = f"{EMOJI['WARNING']} {bold('File Too Large!')}\n\n{bold('Title:')} {escape(title)}\n"
        if estimated_mb is not None:
            text += f"{bold('Estimated Size:')} {estimated_mb}MB\n"
        if size_mb is not None:
            text += f"{bold('Size:')} {size_mb}MB\n"
        return (
            text
            + f"(max {max_size_mb}MB allowed)\n\n"
            + italic("Try a lower quality option or audio format")
        )

    def spawn_error(self, error: Exception) -> str:
        return (
            f"{EMOJI['ERROR']} {bold('Download Error')}\n\n"
            f"{code(self._details(error))}\n\n"
            f"{italic('Please try again later.')}"
        )

    def generic(self, error: Exception) -> str:
        return (
            f"{EMOJI['ERROR']} {bold('Error')}\n\n"
            f"{italic(self._details(error))}\n\n"
            f"{italic('Please try again or contact support if the problem persists.')}"
        )

    def invalid_url(self, reason: str) -> str:
        return (
            f"{EMOJI['ERROR']} {bold('Invalid URL!')}\n\n"
            f"{italic(escape(reason))}\n"
            f"{italic('Please send a valid media link from supported platforms:')}\n"
            f"{code('YouTube, Instagram, TikTok, Twitter, etc.')}"
        )

    def url_processing(self, error: Exception) -> str:
        return (
            f"{EMOJI['ERROR']} {bold('Error processing URL')}\n\n"
            f"{italic('Please check the link and try again.')}\n"
            f"{code(self._details(error))}"
        )

    @staticmethod
    def session_expired() -> str:
        return "Session expired. Please send the link again."


error_manager = ErrorManager()
