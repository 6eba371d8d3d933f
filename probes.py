"""
Metadata and size probes backed by the yt-dlp executable.

Both probes degrade instead of raising: the metadata probe falls back to a
synthetic record, the size probe to an "unestimated" result.
"""

import asyncio
import json
import logging
import time
from typing import List, Optional

import aiohttp

from config import DEFAULT_EXTENSION, HEAD_TIMEOUT_SECONDS, PROBE_TIMEOUT_SECONDS, YT_DLP_PATH
from models import FORMAT_SPECS, FormatType, MediaInfo, SizeEstimate
from utils import sanitize_filename, strip_extension, to_base36

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """yt-dlp probe did not produce usable output."""


async def run_tool(executable: str, args: List[str], timeout: float) -> str:
    """Run yt-dlp with a bounded wait and return its stdout."""
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as error:
        raise ProbeError(f"Cannot start {executable}: {error}") from error

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        raise ProbeError(f"{executable} timed out after {timeout:g}s") from None

    if process.returncode != 0:
        details = stderr.decode("utf-8", errors="ignore").strip()[:500]
        raise ProbeError(f"{executable} exited with code {process.returncode}: {details}")
    return stdout.decode("utf-8", errors="ignore").strip()


class MetadataProber:
    """Fetch title, platform and duration of a media URL."""

    def __init__(self, executable: str = YT_DLP_PATH, timeout: float = PROBE_TIMEOUT_SECONDS):
        self.executable = executable
        self.timeout = timeout

    async def probe(self, url: str) -> MediaInfo:
        try:
            raw_info = await run_tool(
                self.executable,
                ["--dump-json", "--no-warnings", "--no-playlist", url],
                self.timeout,
            )
            info = json.loads(raw_info.splitlines()[0]) if raw_info else None
            if not isinstance(info, dict):
                raise ProbeError("yt-dlp returned no metadata")

            original_filename = await self._original_filename(url)
            clean_title = strip_extension(original_filename)
            duration = info.get("duration") or 0
            return MediaInfo(
                title=info.get("title") or clean_title,
                clean_title=clean_title,
                platform=info.get("extractor") or "Unknown",
                original_filename=original_filename,
                duration=max(0, int(duration)),
                thumbnail=info.get("thumbnail"),
                ext=info.get("ext") or DEFAULT_EXTENSION,
            )
        except (ProbeError, ValueError, TypeError) as error:
            logger.warning("Metadata probe failed for %s: %s", url, error)
            return self.fallback()

    async def _original_filename(self, url: str) -> str:
        try:
            filename = await run_tool(
                self.executable,
                ["--get-filename", "-o", "%(title)s.%(ext)s", "--no-warnings", "--no-playlist", url],
                self.timeout,
            )
        except ProbeError as error:
            logger.warning("Filename probe failed for %s: %s", url, error)
            return f"media_{to_base36(int(time.time() * 1000))}.{DEFAULT_EXTENSION}"

        lines = filename.splitlines()
        sanitized = sanitize_filename(lines[0] if lines else "")
        if "." not in sanitized:
            return f"{sanitized}.{DEFAULT_EXTENSION}"
        return sanitized

    @staticmethod
    def fallback() -> MediaInfo:
        title = f"Media_{to_base36(int(time.time() * 1000))}"
        return MediaInfo(
            title=title,
            clean_title=title,
            platform="Unknown",
            original_filename=f"{title}.{DEFAULT_EXTENSION}",
            duration=0,
            thumbnail=None,
            ext=DEFAULT_EXTENSION,
        )


class SizeEstimator:
    """Estimate transfer size from the Content-Length of the resolved stream."""

    def __init__(
        self,
        executable: str = YT_DLP_PATH,
        timeout: float = PROBE_TIMEOUT_SECONDS,
        head_timeout: float = HEAD_TIMEOUT_SECONDS,
    ):
        self.executable = executable
        self.timeout = timeout
        self.head_timeout = head_timeout

    async def estimate(self, url: str, format_type: FormatType) -> SizeEstimate:
        selector = FORMAT_SPECS[format_type].estimate_selector
        try:
            output = await run_tool(
                self.executable,
                ["-f", selector, "--get-url", "--no-warnings", "--no-playlist", url],
                self.timeout,
            )
            stream_url = output.splitlines()[0].strip() if output else ""
            if not stream_url:
                return SizeEstimate(estimated=False, error="No stream URL resolved")

            size_bytes = await self._content_length(stream_url)
            if size_bytes is None:
                return SizeEstimate(estimated=False, error="No Content-Length")
            return SizeEstimate(estimated=True, size_bytes=size_bytes)
        except (ProbeError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as error:
            logger.warning("Size estimation failed for %s (%s): %s", url, format_type.value, error)
            return SizeEstimate(estimated=False, error="Could not estimate file size")

    async def _content_length(self, stream_url: str) -> Optional[int]:
        async with aiohttp.ClientSession() as session:
            async with session.head(
                stream_url,
                allow_redirects=True,
                timeout=aiohttp.ClientTimeout(total=self.head_timeout),
            ) as response:
                raw_length = response.headers.get("Content-Length", "").strip()
        if not raw_length.isdigit():
            return None
        return int(raw_length)
