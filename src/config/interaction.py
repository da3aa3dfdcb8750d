"""Human-interaction settings for the Jarvis WhatsApp assistant.

These settings drive how replies are paced: how long Jarvis "reads" a
message, how long the typing indicator stays up, how a long reply is cut into
chunks and how long to wait between chunks. They also hold the feature flags
the dispatcher checks on every message.

All durations are in milliseconds.
"""

from __future__ import annotations

import os
from typing import List

from pydantic import BaseModel, Field


class ChunkingConfig(BaseModel):
    """Limits used when splitting a reply into several WhatsApp messages."""

    max_lines_per_chunk: int = 4
    min_chunk_length: int = 50
    max_chunk_length: int = 500
    # Scanned in this order when a single line is too long.
    break_points: List[str] = Field(
        default_factory=lambda: [". ", "! ", "? ", "\n\n", "\n", ", ", "; "]
    )


class TypingIndicatorConfig(BaseModel):
    """Typing indicator shown before and between chunks."""

    enabled: bool = True
    # Base value for the per-chunk typing delay computed from word count.
    base_delay: int = 1500
    # Fixed delay simulated by the dispatcher before any reply is built.
    typing_delay: int = 3000
    show_between_chunks: bool = True


class ReadingConfig(BaseModel):
    """Reading pause applied before the first chunk of a reply."""

    enabled: bool = True
    delay_per_word: int = 150
    min_delay: int = 500
    max_delay: int = 2000


class ChunkDelayConfig(BaseModel):
    """Pause between two chunks, chosen by the line count of the chunk sent."""

    short: int = 1000  # up to 2 lines
    medium: int = 2000  # up to 4 lines
    long: int = 3000


class VoiceProcessingConfig(BaseModel):
    """Voice note handling."""

    max_file_size: int = 10 * 1024 * 1024
    transcription_timeout: int = 30000
    whisper_model: str = "whisper-1"
    # "auto" lets Whisper detect the language.
    language: str = "auto"


class ErrorHandlingConfig(BaseModel):
    """User-facing behaviour when a voice note cannot be processed."""

    silent_voice_errors: bool = True
    voice_error_fallback: str = "Je n'ai pas pu comprendre ce message"


class FeatureFlags(BaseModel):
    """Switches read by the dispatcher."""

    voice_messages: bool = True
    message_chunking: bool = True
    human_simulation: bool = True
    debug_mode: bool = False


class InteractionConfig(BaseModel):
    """Top-level interaction settings."""

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    typing_indicator: TypingIndicatorConfig = Field(default_factory=TypingIndicatorConfig)
    reading: ReadingConfig = Field(default_factory=ReadingConfig)
    chunk_delays: ChunkDelayConfig = Field(default_factory=ChunkDelayConfig)
    voice_processing: VoiceProcessingConfig = Field(default_factory=VoiceProcessingConfig)
    error_handling: ErrorHandlingConfig = Field(default_factory=ErrorHandlingConfig)
    features: FeatureFlags = Field(default_factory=FeatureFlags)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_interaction_config() -> InteractionConfig:
    """Build the interaction settings, applying ``FEATURE_*`` env overrides."""

    config = InteractionConfig()
    features = config.features
    features.voice_messages = _env_flag("FEATURE_VOICE_MESSAGES", features.voice_messages)
    features.message_chunking = _env_flag("FEATURE_MESSAGE_CHUNKING", features.message_chunking)
    features.human_simulation = _env_flag("FEATURE_HUMAN_SIMULATION", features.human_simulation)
    features.debug_mode = _env_flag("FEATURE_DEBUG_MODE", features.debug_mode)
    config.error_handling.silent_voice_errors = _env_flag(
        "SILENT_VOICE_ERRORS", config.error_handling.silent_voice_errors
    )
    return config
