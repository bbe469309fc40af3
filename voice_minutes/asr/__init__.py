"""ASR: swappable Whisper-compatible transcribers."""
from __future__ import annotations

from typing import Any

from voice_minutes.config import Settings, get_settings

from .base import Transcriber
from .local_whisper import LocalWhisperTranscriber, load_whisper_model
from .remote_whisper import RemoteWhisperTranscriber


def create_transcriber(settings: Settings | None = None, model: Any = None) -> Transcriber:
    """Transcriber for ASR_BACKEND. Local uses the model loaded at startup."""
    settings = settings or get_settings()
    if settings.ASR_BACKEND == "local":
        return LocalWhisperTranscriber(model=model, settings=settings)
    return RemoteWhisperTranscriber(settings=settings)


__all__ = [
    "Transcriber",
    "LocalWhisperTranscriber",
    "RemoteWhisperTranscriber",
    "create_transcriber",
    "load_whisper_model",
]
