"""
VADProcessor: speech / non-speech classification of incoming PCM packets.

Uses webrtcvad (aggressiveness 0-3). Packets are s16le at SAMPLE_RATE with
SOURCE_CHANNELS interleaved; they are down-mixed to mono and cut into
VAD_FRAME_MS frames. A packet is speech when any full frame in it is.
"""
from __future__ import annotations

import numpy as np
import webrtcvad

from voice_minutes.config import Settings, get_settings

# Rates webrtcvad accepts
VAD_SAMPLE_RATES = (8000, 16000, 32000, 48000)
VAD_FRAME_MS = (10, 20, 30)


class VADProcessor:
    """
    Wraps webrtcvad for one live feed.
    A trailing partial frame in a packet is not classified.
    """

    def __init__(self, aggressiveness: int | None = None, settings: Settings | None = None) -> None:
        """
        aggressiveness: 0 (least aggressive) to 3 (most aggressive); default VAD_AGGRESSIVENESS.
        Higher = more frames classified as silence.
        """
        settings = settings or get_settings()
        if settings.SAMPLE_RATE not in VAD_SAMPLE_RATES:
            raise ValueError(f"VAD needs a sample rate in {VAD_SAMPLE_RATES}, got {settings.SAMPLE_RATE}")
        if settings.VAD_FRAME_MS not in VAD_FRAME_MS:
            raise ValueError(f"VAD frame must be one of {VAD_FRAME_MS} ms, got {settings.VAD_FRAME_MS}")
        level = settings.VAD_AGGRESSIVENESS if aggressiveness is None else aggressiveness
        self._vad = webrtcvad.Vad(level)
        self._sample_rate = settings.SAMPLE_RATE
        self._channels = max(1, settings.SOURCE_CHANNELS)
        self._frame_ms = settings.VAD_FRAME_MS
        # mono 16-bit
        self._frame_bytes = self._sample_rate * self._frame_ms // 1000 * 2

    @property
    def frame_ms(self) -> int:
        return self._frame_ms

    @property
    def frame_bytes(self) -> int:
        return self._frame_bytes

    def _to_mono(self, packet: bytes) -> bytes:
        usable = len(packet) - len(packet) % (2 * self._channels)
        if self._channels == 1:
            return packet[:usable]
        samples = np.frombuffer(packet[:usable], dtype=np.int16).reshape(-1, self._channels)
        return samples.mean(axis=1).round().astype(np.int16).tobytes()

    def is_speech(self, packet: bytes) -> bool:
        """True if any full frame of the packet contains speech."""
        mono = self._to_mono(packet)
        step = self._frame_bytes
        for start in range(0, len(mono) - step + 1, step):
            if self._vad.is_speech(mono[start:start + step], self._sample_rate):
                return True
        return False
