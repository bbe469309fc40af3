"""
RemoteWhisperTranscriber: Whisper via an OpenAI-compatible /audio/transcriptions endpoint.

Sends the clip as multipart form data with model and language; bearer auth.
Never raises: logs HTTP status / body and returns "" on any failure.
"""
from __future__ import annotations

import logging
import os

import httpx

from voice_minutes.asr.base import Transcriber
from voice_minutes.config import Settings, get_settings

logger = logging.getLogger(__name__)


class RemoteWhisperTranscriber(Transcriber):
    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = settings or get_settings()
        self._url = settings.WHISPER_API_URL
        self._api_key = settings.WHISPER_API_KEY
        self._model = settings.WHISPER_MODEL
        self._language = settings.WHISPER_LANGUAGE
        self._timeout = settings.WHISPER_TIMEOUT_SECONDS
        self._transport = transport

    async def transcribe(self, path: str) -> str:
        if not self._api_key:
            logger.error("WHISPER_API_KEY is not set; skipping %s", os.path.basename(path))
            return ""
        name = os.path.basename(path)
        try:
            with open(path, "rb") as f:
                audio = f.read()
        except OSError as e:
            logger.error("Clip not readable %s: %s", name, e)
            return ""

        logger.info("Whisper transcribing: %s", name)
        files = {"file": (name, audio, "application/octet-stream")}
        data = {"model": self._model, "language": self._language}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, headers=headers, data=data, files=files)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Whisper error: %s", e)
            logger.error("  status: %s", e.response.status_code)
            logger.error("  response: %s", e.response.text[:500])
            return ""
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Whisper error: %s", e)
            return ""

        text = payload.get("text", "") if isinstance(payload, dict) else ""
        text = (text or "").strip()
        logger.info("Whisper ok: %d chars", len(text))
        return text
