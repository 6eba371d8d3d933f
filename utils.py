"""
Utilities for URL validation, filenames and small conversions.
"""

import re
import string
from typing import Tuple
from urllib.parse import urlparse

_BASE36_DIGITS = string.digits + string.ascii_lowercase


def sanitize_filename(filename: str, max_length: int = 100) -> str:
    """Return filesystem-safe filename."""
    safe_name = re.sub(r'[<>:"/\\|?*]', "", filename or "")
    safe_name = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", safe_name)
    safe_name = re.sub(r"\s+", " ", safe_name)
    safe_name = safe_name.strip().strip(".").strip()
    return (safe_name or "media")[:max_length]


def strip_extension(filename: str) -> str:
    """Drop the last ``.ext`` part of a filename, if any."""
    return re.sub(r"\.[^/.]+$", "", filename)


def to_base36(number: int) -> str:
    if number < 0:
        return "-" + to_base36(-number)
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def bytes_to_mb(size_bytes: int) -> str:
    """Size in MB with two decimals, as shown to users."""
    return f"{size_bytes / (1024 * 1024):.2f}"


def validate_url_input(url: str) -> Tuple[bool, str]:
    """Validate URL format and safety."""
    if not url:
        return False, "URL cannot be empty"
    if len(url) > 2000:
        return False, "URL is too long"
    if any(ch.isspace() for ch in url):
        return False, "URL must not contain spaces"

    try:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in {"http", "https"}:
            return False, "Only HTTP/HTTPS URLs are supported"
        if not parsed.netloc:
            return False, "Malformed URL"
    except ValueError:
        return False, "Malformed URL"

    return True, ""


def sanitize_user_input(text: str, max_length: int = 4096) -> str:
    """Remove control chars and trim length."""
    if not text:
        return ""
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", text)
    return sanitized.strip()[:max_length]
