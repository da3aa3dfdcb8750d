"""Whisper transcription service for WhatsApp voice notes.

The OpenAI SDK client used here is synchronous, so the request runs in the
default executor and is bounded by the configured processing timeout.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from typing import Optional

from openai import OpenAI

from src.config.interaction import VoiceProcessingConfig


logger = logging.getLogger("jarvis.whisper")

_EXTENSIONS = {
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/wav": "wav",
    "audio/webm": "webm",
}


class TranscriptionError(Exception):
    """Raised when a voice note could not be turned into text."""


def _file_name(mimetype: str) -> str:
    base = (mimetype or "").split(";", 1)[0].strip().lower()
    return f"voice.{_EXTENSIONS.get(base, 'ogg')}"


def _transcribe_sync(audio_bytes: bytes, mimetype: str, config: VoiceProcessingConfig) -> str:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise TranscriptionError("OPENAI_API_KEY is not set")

    client = OpenAI(api_key=api_key)

    # The SDK accepts a (filename, bytes, content_type) tuple; the extension
    # is what Whisper uses to pick the decoder.
    file_tuple = (_file_name(mimetype), audio_bytes, mimetype or "audio/ogg")
    kwargs = {"model": config.whisper_model, "file": file_tuple}
    if config.language and config.language != "auto":
        kwargs["language"] = config.language

    result = client.audio.transcriptions.create(**kwargs)
    text: Optional[str] = getattr(result, "text", None)
    if not text or not text.strip():
        raise TranscriptionError("Empty transcription result")
    return text.strip()


async def transcribe_audio_bytes(
    audio_bytes: bytes,
    mimetype: str = "audio/ogg",
    config: Optional[VoiceProcessingConfig] = None,
) -> str:
    """Transcribe a voice note, raising :class:`TranscriptionError` on any failure."""

    cfg = config or VoiceProcessingConfig()
    if len(audio_bytes) > cfg.max_file_size:
        raise TranscriptionError(f"Voice note too large ({len(audio_bytes)} bytes)")

    loop = asyncio.get_running_loop()
    call = functools.partial(_transcribe_sync, audio_bytes, mimetype, cfg)
    try:
        text = await asyncio.wait_for(
            loop.run_in_executor(None, call), timeout=cfg.transcription_timeout / 1000
        )
    except asyncio.TimeoutError as exc:
        raise TranscriptionError("Transcription timed out") from exc
    except TranscriptionError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("[JARVIS-WHISPER] Transcription error: %r", exc)
        raise TranscriptionError(repr(exc)) from exc

    logger.info("[JARVIS-WHISPER] Transcribed %d bytes into %d chars", len(audio_bytes), len(text))
    return text
