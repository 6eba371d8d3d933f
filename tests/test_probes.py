"""
Unit tests for the metadata and size probes.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest

import probes
from models import FormatType
from probes import MetadataProber, ProbeError, SizeEstimator, run_tool


def _fake_tool(info=None, filename="Song X.webm", fail=False):
    calls = []

    async def fake_run_tool(executable, args, timeout):
        calls.append(args)
        if fail:
            raise ProbeError("yt-dlp timed out after 60s")
        if "--dump-json" in args:
            return json.dumps(info)
        if "--get-filename" in args:
            return filename
        if "--get-url" in args:
            return "https://cdn.example.com/stream\nhttps://cdn.example.com/audio"
        return ""

    return fake_run_tool, calls


def test_run_tool_missing_executable():
    with pytest.raises(ProbeError):
        asyncio.run(run_tool("definitely-not-an-installed-yt-dlp", ["--version"], 5))


def test_probe_reads_metadata(monkeypatch):
    fake, _ = _fake_tool(
        info={"title": "Song X", "extractor": "youtube", "duration": 200.4, "thumbnail": "https://i/t.jpg", "ext": "webm"}
    )
    monkeypatch.setattr(probes, "run_tool", fake)

    info = asyncio.run(MetadataProber(executable="yt-dlp").probe("https://youtube.com/watch?v=x"))

    assert info.title == "Song X"
    assert info.clean_title == "Song X"
    assert info.platform == "youtube"
    assert info.duration == 200
    assert info.original_filename == "Song X.webm"
    assert info.thumbnail == "https://i/t.jpg"
    assert info.ext == "webm"


def test_probe_sanitizes_filename(monkeypatch):
    fake, _ = _fake_tool(info={"title": "A/B: C?"}, filename="A/B: C?.mp4")
    monkeypatch.setattr(probes, "run_tool", fake)

    info = asyncio.run(MetadataProber().probe("https://e.com/v"))

    assert info.title == "A/B: C?"
    assert info.clean_title == "AB C"
    assert info.platform == "Unknown"
    assert info.duration == 0


def test_probe_falls_back_on_failure(monkeypatch):
    fake, _ = _fake_tool(fail=True)
    monkeypatch.setattr(probes, "run_tool", fake)

    info = asyncio.run(MetadataProber().probe("https://e.com/v"))

    assert info.title.startswith("Media_")
    assert info.clean_title == info.title
    assert info.original_filename == f"{info.title}.mp4"
    assert info.platform == "Unknown"
    assert info.ext == "mp4"


def test_probe_falls_back_on_malformed_json(monkeypatch):
    async def fake_run_tool(executable, args, timeout):
        return "not json"

    monkeypatch.setattr(probes, "run_tool", fake_run_tool)

    info = asyncio.run(MetadataProber().probe("https://e.com/v"))
    assert info.title.startswith("Media_")


def test_estimate_uses_content_length(monkeypatch):
    fake, calls = _fake_tool()
    monkeypatch.setattr(probes, "run_tool", fake)
    estimator = SizeEstimator()
    estimator._content_length = AsyncMock(return_value=3_000_000)

    estimate = asyncio.run(estimator.estimate("https://e.com/v", FormatType.AUDIO_192))

    assert estimate.estimated is True
    assert estimate.size_bytes == 3_000_000
    assert estimate.size_mb == "2.86"
    estimator._content_length.assert_awaited_once_with("https://cdn.example.com/stream")
    assert calls[0][calls[0].index("-f") + 1] == "bestaudio"


def test_estimate_degrades_on_probe_failure(monkeypatch):
    fake, _ = _fake_tool(fail=True)
    monkeypatch.setattr(probes, "run_tool", fake)

    estimate = asyncio.run(SizeEstimator().estimate("https://e.com/v", FormatType.VIDEO_720))

    assert estimate.estimated is False
    assert estimate.size_bytes is None
    assert estimate.error


def test_estimate_degrades_without_content_length(monkeypatch):
    fake, _ = _fake_tool()
    monkeypatch.setattr(probes, "run_tool", fake)
    estimator = SizeEstimator()
    estimator._content_length = AsyncMock(return_value=None)

    assert asyncio.run(estimator.estimate("https://e.com/v", FormatType.VIDEO_480)).estimated is False


def test_estimate_degrades_on_http_error(monkeypatch):
    fake, _ = _fake_tool()
    monkeypatch.setattr(probes, "run_tool", fake)
    estimator = SizeEstimator()
    estimator._content_length = AsyncMock(side_effect=aiohttp.ClientError("HEAD failed"))

    assert asyncio.run(estimator.estimate("https://e.com/v", FormatType.VIDEO_BEST)).estimated is False


def test_estimate_degrades_on_empty_stream_url(monkeypatch):
    async def fake_run_tool(executable, args, timeout):
        return ""

    monkeypatch.setattr(probes, "run_tool", fake_run_tool)

    estimate = asyncio.run(SizeEstimator().estimate("https://e.com/v", FormatType.AUDIO_128))
    assert estimate.estimated is False
    assert estimate.error == "No stream URL resolved"
