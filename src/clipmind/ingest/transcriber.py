"""Transcriber — social media links and audio files → transcript.

Pipeline:
  1. Download the audio track with ``yt-dlp`` (links only).
  2. Long mode: split into fixed-length segments with ``ffmpeg``.
  3. Transcribe each segment via ``litellm.transcription()`` (Whisper).
  4. Summarize with the selected generation provider and price the run.

Every external step is bounded by a timeout. All intermediate files live in a
temporary directory that is removed on success and on failure.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from urllib.parse import urlparse

from clipmind.config import ClipmindConfig
from clipmind.errors import TranscriptionFailure, ValidationFailure
from clipmind.ingest.summarizer import TranscriptSummarizer
from clipmind.rag.cost import estimate_transcription
from clipmind.rag.llm_client import Usage, transcribe

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".mp3", ".wav", ".m4a", ".ogg", ".flac", ".mp4", ".webm", ".mov"}
MAX_SEGMENT_BYTES = 25 * 1024 * 1024  # Whisper API upload limit

_SHORT_LINK_MARKERS = (
    "instagram.com/reel/",
    "instagram.com/p/",
    "youtube.com/shorts/",
    "youtu.be/",
)


@dataclass(frozen=True)
class TranscriptText:
    text: str
    duration: float  # seconds of audio transcribed
    segments: int


@dataclass(frozen=True)
class TranscriptionResult:
    transcript: str
    summary: str
    usage: Usage
    cost: Decimal


def validate_link(url: str, long_form: bool = False) -> None:
    """Raise ValidationFailure for links the pipeline cannot handle.

    Short mode accepts Instagram reels/posts and YouTube Shorts; long mode
    accepts any http(s) link yt-dlp may support.
    """
    if not url or not url.strip():
        raise ValidationFailure("URL is required.")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationFailure(f"Not an http(s) link: '{url}'.")
    if not long_form and not any(marker in url for marker in _SHORT_LINK_MARKERS):
        raise ValidationFailure(
            "Provide a valid Instagram Reel or YouTube Shorts link, "
            "or use long mode for other videos."
        )


class Transcriber:
    """Turn a link or an audio/video file into transcript text.

    Args:
        config: Loaded configuration (transcription model, timeouts, segment length).
    """

    def __init__(self, config: ClipmindConfig) -> None:
        self._model = config.transcription.model
        self._language = config.transcription.language
        self._segment_seconds = config.transcription.segment_seconds
        self._timeouts = config.timeouts

    def from_link(self, url: str, long_form: bool = False) -> TranscriptText:
        validate_link(url, long_form)
        with tempfile.TemporaryDirectory(prefix="clipmind-") as workdir:
            audio = Path(workdir) / "audio.mp3"
            logger.info("Downloading audio for %s", url)
            self._download(url, audio)
            if not audio.exists():
                raise TranscriptionFailure("Audio extraction produced no file.", provider="yt-dlp")
            return self._transcribe_audio(audio, Path(workdir), long_form)

    def from_file(self, path: Path | str, long_form: bool = False) -> TranscriptText:
        source = Path(path)
        self._validate_file(source, long_form)
        with tempfile.TemporaryDirectory(prefix="clipmind-") as workdir:
            return self._transcribe_audio(source, Path(workdir), long_form)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_file(path: Path, long_form: bool) -> None:
        ext = path.suffix.lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise ValidationFailure(
                f"Unsupported audio format '{ext}'. "
                f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            )
        try:
            size = os.path.getsize(path)
        except OSError as exc:
            raise ValidationFailure(f"Cannot access audio file '{path}': {exc}") from exc
        if size > MAX_SEGMENT_BYTES and not long_form:
            raise ValidationFailure(
                f"Audio file '{path}' exceeds the 25 MB limit "
                f"({size / (1024 * 1024):.1f} MB). Use long mode to split it."
            )

    # ------------------------------------------------------------------
    # External tools
    # ------------------------------------------------------------------

    def _download(self, url: str, dest: Path) -> None:
        self._run(
            ["yt-dlp", "-x", "--audio-format", "mp3", "-o", str(dest), "--", url],
            tool="yt-dlp",
            timeout=self._timeouts.download,
            what="Audio download",
        )

    def _split(self, audio: Path, workdir: Path) -> list[Path]:
        template = workdir / "chunk_%03d.mp3"
        self._run(
            [
                "ffmpeg", "-hide_banner", "-loglevel", "error",
                "-i", str(audio),
                "-f", "segment",
                "-segment_time", str(self._segment_seconds),
                "-c", "copy",
                str(template),
            ],
            tool="ffmpeg",
            timeout=self._timeouts.split,
            what="Audio splitting",
        )
        segments = sorted(workdir.glob("chunk_*.mp3"))
        if not segments:
            raise TranscriptionFailure("Audio splitting produced no segments.", provider="ffmpeg")
        return segments

    @staticmethod
    def _run(cmd: list[str], tool: str, timeout: float, what: str) -> None:
        try:
            subprocess.run(
                cmd,
                shell=False,
                check=True,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise TranscriptionFailure(
                f"{what} timed out after {timeout:.0f}s. Try again later or check the link.",
                provider=tool,
            ) from None
        except FileNotFoundError:
            raise TranscriptionFailure(
                f"'{tool}' is not installed or not on PATH.", provider=tool
            ) from None
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip().splitlines()
            raise TranscriptionFailure(
                f"{what} failed: {detail[-1] if detail else f'exit code {exc.returncode}'}",
                provider=tool,
            ) from None

    # ------------------------------------------------------------------
    # Speech-to-text
    # ------------------------------------------------------------------

    def _transcribe_audio(self, audio: Path, workdir: Path, long_form: bool) -> TranscriptText:
        if not long_form:
            text, duration = self._transcribe_segment(audio)
            return TranscriptText(text=text, duration=duration, segments=1)

        segments = self._split(audio, workdir)
        logger.info("Split audio into %d segments.", len(segments))
        parts: list[str] = []
        total = 0.0
        for i, segment in enumerate(segments):
            logger.info("Transcribing segment %d/%d...", i + 1, len(segments))
            text, duration = self._transcribe_segment(segment)
            start = i * self._segment_seconds
            label = f"{_clock(start)} - {_clock(start + self._segment_seconds)}"
            parts.append(f"[Segment {label}]\n{text}")
            total += duration
        return TranscriptText(text="\n\n".join(parts), duration=total, segments=len(segments))

    def _transcribe_segment(self, path: Path) -> tuple[str, float]:
        try:
            result = transcribe(
                self._model,
                path,
                language=self._language,
                timeout=self._timeouts.transcription,
            )
        except Exception as exc:
            raise TranscriptionFailure(
                f"Transcription with '{self._model}' failed: {exc}", provider=self._model
            ) from exc
        return result.text, result.duration

    @property
    def model(self) -> str:
        return self._model


def _clock(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def transcribe_and_summarize(
    transcriber: Transcriber,
    summarizer: TranscriptSummarizer,
    url: str,
    long_form: bool = False,
) -> TranscriptionResult:
    """Run the full link → transcript → summary pipeline and price it.

    Raises:
        ValidationFailure: For unsupported links.
        TranscriptionFailure: If download, splitting or speech-to-text fails.
        GenerationFailure: If summarization fails.
    """
    text = transcriber.from_link(url, long_form)
    return _summarize_and_price(transcriber, summarizer, text, long_form)


def transcribe_file_and_summarize(
    transcriber: Transcriber,
    summarizer: TranscriptSummarizer,
    path: Path | str,
    long_form: bool = False,
) -> TranscriptionResult:
    """Run the uploaded file → transcript → summary pipeline and price it.

    Raises:
        ValidationFailure: For unsupported formats or oversized files in short mode.
        TranscriptionFailure: If splitting or speech-to-text fails.
        GenerationFailure: If summarization fails.
    """
    text = transcriber.from_file(path, long_form)
    return _summarize_and_price(transcriber, summarizer, text, long_form)


def _summarize_and_price(
    transcriber: Transcriber,
    summarizer: TranscriptSummarizer,
    text: TranscriptText,
    long_form: bool,
) -> TranscriptionResult:
    logger.info("Transcription complete: %.0fs of audio.", text.duration)
    summary = summarizer.summarize(text.text, long_form=long_form)
    cost = summary.cost + estimate_transcription(transcriber.model, text.duration)
    return TranscriptionResult(
        transcript=text.text, summary=summary.text, usage=summary.usage, cost=cost
    )
