"""Tests for the link/file → transcript pipeline (external tools mocked)."""

from __future__ import annotations

import subprocess
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest

from clipmind.errors import TranscriptionFailure, ValidationFailure
from clipmind.ingest.summarizer import TranscriptSummarizer
from clipmind.ingest.transcriber import (
    Transcriber,
    transcribe_and_summarize,
    transcribe_file_and_summarize,
    validate_link,
)
from clipmind.rag.llm_client import Transcription, Usage

_REEL = "https://www.instagram.com/reel/abc123/"


def _fake_yt_dlp(created: list[Path]):
    """subprocess.run stand-in that writes the -o target (and ffmpeg segments)."""

    def _run(cmd, **kwargs):
        if cmd[0] == "yt-dlp":
            out = Path(cmd[cmd.index("-o") + 1])
            out.write_bytes(b"audio")
            created.append(out)
        elif cmd[0] == "ffmpeg":
            workdir = Path(cmd[-1]).parent
            for i in range(3):
                (workdir / f"chunk_{i:03d}.mp3").write_bytes(b"seg")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    return _run


# ------------------------------------------------------------------
# validate_link
# ------------------------------------------------------------------


def test_short_mode_accepts_reels_and_shorts():
    validate_link(_REEL)
    validate_link("https://youtube.com/shorts/xyz")


def test_short_mode_rejects_other_links():
    with pytest.raises(ValidationFailure, match="long mode"):
        validate_link("https://vimeo.com/123")


def test_long_mode_accepts_any_http_link():
    validate_link("https://vimeo.com/123", long_form=True)


@pytest.mark.parametrize("url", ["", "ftp://example.com/a.mp3", "not a url"])
def test_invalid_links_rejected(url):
    with pytest.raises(ValidationFailure):
        validate_link(url, long_form=True)


# ------------------------------------------------------------------
# Transcriber
# ------------------------------------------------------------------


def test_short_link_transcribed_and_temp_dir_removed(config):
    created: list[Path] = []
    with (
        patch("clipmind.ingest.transcriber.subprocess.run", side_effect=_fake_yt_dlp(created)),
        patch(
            "clipmind.ingest.transcriber.transcribe",
            return_value=Transcription(text="hello there", duration=30.0),
        ),
    ):
        result = Transcriber(config).from_link(_REEL)

    assert result.text == "hello there"
    assert result.duration == 30.0
    assert result.segments == 1
    assert created and not created[0].parent.exists()


def test_long_link_segments_get_headers(config):
    created: list[Path] = []
    with (
        patch("clipmind.ingest.transcriber.subprocess.run", side_effect=_fake_yt_dlp(created)),
        patch(
            "clipmind.ingest.transcriber.transcribe",
            return_value=Transcription(text="part", duration=600.0),
        ),
    ):
        result = Transcriber(config).from_link("https://vimeo.com/123", long_form=True)

    assert result.segments == 3
    assert result.duration == 1800.0
    assert "[Segment 0:00 - 10:00]\npart" in result.text
    assert "[Segment 20:00 - 30:00]\npart" in result.text


def test_segment_labels_for_sub_minute_segments(config):
    config.transcription.segment_seconds = 45
    created: list[Path] = []
    with (
        patch("clipmind.ingest.transcriber.subprocess.run", side_effect=_fake_yt_dlp(created)),
        patch(
            "clipmind.ingest.transcriber.transcribe",
            return_value=Transcription(text="part", duration=45.0),
        ),
    ):
        result = Transcriber(config).from_link("https://vimeo.com/123", long_form=True)

    assert "[Segment 0:00 - 0:45]\npart" in result.text
    assert "[Segment 0:45 - 1:30]\npart" in result.text
    assert "[Segment 1:30 - 2:15]\npart" in result.text


def test_download_timeout_is_transcription_failure(config):
    created: list[Path] = []
    with patch(
        "clipmind.ingest.transcriber.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="yt-dlp", timeout=1),
    ):
        with pytest.raises(TranscriptionFailure, match="timed out") as exc_info:
            Transcriber(config).from_link(_REEL)
    assert exc_info.value.provider == "yt-dlp"
    assert created == []


def test_missing_tool_is_transcription_failure(config):
    with patch("clipmind.ingest.transcriber.subprocess.run", side_effect=FileNotFoundError()):
        with pytest.raises(TranscriptionFailure, match="not installed"):
            Transcriber(config).from_link(_REEL)


def test_tool_error_reports_last_stderr_line(config):
    error = subprocess.CalledProcessError(1, "yt-dlp", stderr="warning\nERROR: private video")
    with patch("clipmind.ingest.transcriber.subprocess.run", side_effect=error):
        with pytest.raises(TranscriptionFailure, match="private video"):
            Transcriber(config).from_link(_REEL)


def test_speech_to_text_error_is_wrapped_and_temp_dir_removed(config):
    created: list[Path] = []
    with (
        patch("clipmind.ingest.transcriber.subprocess.run", side_effect=_fake_yt_dlp(created)),
        patch("clipmind.ingest.transcriber.transcribe", side_effect=RuntimeError("quota")),
    ):
        with pytest.raises(TranscriptionFailure, match="quota"):
            Transcriber(config).from_link(_REEL)
    assert not created[0].parent.exists()


def test_from_file_rejects_unknown_extension(config, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("x")
    with pytest.raises(ValidationFailure, match="Unsupported audio format"):
        Transcriber(config).from_file(path)


def test_from_file_transcribes(config, tmp_path):
    path = tmp_path / "memo.m4a"
    path.write_bytes(b"audio")
    with patch(
        "clipmind.ingest.transcriber.transcribe",
        return_value=Transcription(text="memo text", duration=12.0),
    ):
        assert Transcriber(config).from_file(path).text == "memo text"


# ------------------------------------------------------------------
# transcribe_and_summarize
# ------------------------------------------------------------------


def test_pipeline_prices_transcription_and_summary(config, fake_generator):
    usage = Usage(prompt_tokens=1_000, completion_tokens=100, total_tokens=1_100)
    summarizer = TranscriptSummarizer(fake_generator(answer="Summary!", usage=usage))
    created: list[Path] = []
    with (
        patch("clipmind.ingest.transcriber.subprocess.run", side_effect=_fake_yt_dlp(created)),
        patch(
            "clipmind.ingest.transcriber.transcribe",
            return_value=Transcription(text="spoken", duration=60.0),
        ),
    ):
        result = transcribe_and_summarize(Transcriber(config), summarizer, _REEL)

    assert result.transcript == "spoken"
    assert result.summary == "Summary!"
    assert result.usage == usage
    # whisper 1 min = 0.006; gpt-4o-mini 1000 in + 100 out = 0.00015 + 0.00006
    assert result.cost == Decimal("0.006210")


def test_file_pipeline_prices_transcription_and_summary(config, fake_generator, tmp_path):
    usage = Usage(prompt_tokens=1_000, completion_tokens=100, total_tokens=1_100)
    summarizer = TranscriptSummarizer(fake_generator(answer="Meeting notes", usage=usage))
    path = tmp_path / "standup.mp3"
    path.write_bytes(b"audio")
    with patch(
        "clipmind.ingest.transcriber.transcribe",
        return_value=Transcription(text="we shipped it", duration=120.0),
    ):
        result = transcribe_file_and_summarize(Transcriber(config), summarizer, path)

    assert result.transcript == "we shipped it"
    assert result.summary == "Meeting notes"
    # whisper 2 min = 0.012; gpt-4o-mini 1000 in + 100 out = 0.00021
    assert result.cost == Decimal("0.012210")
