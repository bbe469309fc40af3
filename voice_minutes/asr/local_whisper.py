"""
LocalWhisperTranscriber: Whisper-compatible ASR using faster-whisper.

- One WhisperModel per process, loaded by the app lifespan and passed in.
- Clips are handed over by path; faster-whisper decodes mp3 itself.
- model.transcribe is blocking, so it runs on the default executor.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from voice_minutes.asr.base import Transcriber
from voice_minutes.config import Settings, get_settings

logger = logging.getLogger(__name__)

WhisperModelT = Any


def load_whisper_model(settings: Settings | None = None) -> WhisperModelT:
    """Load faster-whisper model once. Called at startup when ASR_BACKEND=local."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError(
            "faster-whisper is required for ASR_BACKEND=local. "
            "Install with: pip install faster-whisper"
        ) from err
    settings = settings or get_settings()
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


class LocalWhisperTranscriber(Transcriber):
    """Transcribes clips with the shared faster-whisper model. Returns "" without a model."""

    def __init__(self, model: WhisperModelT | None = None, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._model = model
        self._language = settings.WHISPER_LANGUAGE or None
        self._beam_size = settings.LOCAL_WHISPER_BEAM_SIZE

    def _transcribe_sync(self, path: str) -> str:
        if self._model is None:
            return ""
        segments, _ = self._model.transcribe(
            path,
            language=self._language,
            beam_size=self._beam_size,
            vad_filter=True,
            vad_parameters=dict(min_silence_duration_ms=300, speech_pad_ms=100),
        )
        parts = [(seg.text or "").strip() for seg in segments]
        return " ".join(p for p in parts if p).strip()

    async def transcribe(self, path: str) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._transcribe_sync, path)
        except Exception as e:
            logger.error("Local Whisper failed for %s: %s", path, e)
            return ""
