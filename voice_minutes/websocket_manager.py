"""
AudioIngestManager: one WebSocket = one speaker's audio feed.

Client sends binary PCM frames (s16le, SOURCE_CHANNELS, SAMPLE_RATE). Each frame
is fed into the current StreamAudioSource under the socket's speaker id; while no
session is recording, frames are dropped. Server sends JSON status messages:
{ "type": "ready" | "closed", "speaker_id": "...", ... }
"""
from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from fastapi import WebSocket

from voice_minutes.audio.source import StreamAudioSource

logger = logging.getLogger(__name__)

SourceGetter = Callable[[], Optional[StreamAudioSource]]


class AudioIngestManager:
    def __init__(self, websocket: WebSocket, speaker_id: str, get_source: SourceGetter) -> None:
        self._ws = websocket
        self._speaker_id = speaker_id
        self._get_source = get_source
        self.frames = 0
        self.dropped = 0

    async def _send(self, payload: dict) -> None:
        try:
            await self._ws.send_text(json.dumps(payload))
        except Exception as e:
            logger.debug("Could not send to %s: %s", self._speaker_id, e)

    async def run(self) -> None:
        """Receive until disconnect; feed every binary message to the source."""
        await self._send({"type": "ready", "speaker_id": self._speaker_id})
        try:
            while True:
                msg = await self._ws.receive()
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if not data:
                    continue
                source = self._get_source()
                if source is None or not source.connected:
                    self.dropped += 1
                    continue
                source.feed(self._speaker_id, data)
                self.frames += 1
        finally:
            logger.info(
                "Audio feed closed for %s (frames=%d, dropped=%d)", self._speaker_id, self.frames, self.dropped
            )
