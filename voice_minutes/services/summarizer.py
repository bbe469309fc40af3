"""
Summarizer: one chat-completions call over the full session transcript.

OpenAI-compatible endpoint (SUMMARY_API_URL). Returns "" on any failure;
the minutes are complete without a summary.
"""
from __future__ import annotations

import logging

import httpx

from voice_minutes.config import Settings, get_settings

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "Summarize the following meeting minutes. "
    "List the key points, decisions and action items concisely."
)


class Summarizer:
    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = settings or get_settings()
        self._url = settings.SUMMARY_API_URL
        self._api_key = settings.SUMMARY_API_KEY
        self._model = settings.SUMMARY_MODEL
        self._timeout = settings.SUMMARY_TIMEOUT_SECONDS
        self._transport = transport

    async def summarize(self, transcript: str) -> str:
        if not (transcript or "").strip():
            return ""
        if not self._api_key:
            logger.warning("SUMMARY_API_KEY is not set; skipping summary")
            return ""
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": transcript},
            ],
        }
        logger.info("Summarizing transcript (%d chars)", len(transcript))
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Summary error: %s (status %s): %s", e, e.response.status_code, e.response.text[:500])
            return ""
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Summary error: %s", e)
            return ""

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices, list):
            return ""
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = (message or {}).get("content", "") or ""
        summary = content.strip()
        logger.info("Summary done: %d chars", len(summary))
        return summary
