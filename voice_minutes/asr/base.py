"""
Transcriber: abstract interface for clip -> text.

Implementations: RemoteWhisperTranscriber (OpenAI-compatible HTTP API),
LocalWhisperTranscriber (faster-whisper).

Contract: transcribe() always settles. Any internal failure (network, quota,
unreadable or silent audio) returns "" instead of raising.
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, path: str) -> str:
        """Transcribe the clip at path. Returns text, or "" when there is no result."""
        ...
