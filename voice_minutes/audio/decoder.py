"""
FrameDecoder: decode stage of the audio pipeline (source codec -> PCM s16le).

PCMDecoder handles sources that already deliver 16-bit PCM: it validates framing
and converts the channel layout to what the transcoder expects (mono <-> stereo).
"""
from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from voice_minutes.config import get_settings

SAMPLE_WIDTH = 2  # int16


class FrameDecoder(ABC):
    """Turns one encoded packet into raw PCM bytes. Raise to reject a packet."""

    @abstractmethod
    def decode(self, packet: bytes) -> bytes:
        ...


class PCMDecoder(FrameDecoder):
    """
    Passes through signed 16-bit little-endian PCM.
    Up-mixes mono to N channels, down-mixes N channels to mono (average).
    """

    def __init__(self, source_channels: int | None = None, channels: int | None = None) -> None:
        settings = get_settings()
        self._source_channels = source_channels or settings.SOURCE_CHANNELS
        self._channels = channels or settings.CHANNELS
        if self._source_channels != self._channels and 1 not in (self._source_channels, self._channels):
            raise ValueError(
                f"Cannot convert {self._source_channels} channels to {self._channels}; only mono up/down-mix is supported"
            )

    def decode(self, packet: bytes) -> bytes:
        frame_width = SAMPLE_WIDTH * self._source_channels
        if len(packet) % frame_width != 0:
            raise ValueError(f"malformed PCM packet: {len(packet)} bytes is not a multiple of {frame_width}")
        if self._source_channels == self._channels:
            return packet
        samples = np.frombuffer(packet, dtype=np.int16).reshape(-1, self._source_channels)
        if self._source_channels == 1:
            converted = np.repeat(samples, self._channels, axis=1)
        else:
            converted = samples.astype(np.int32).mean(axis=1).round().astype(np.int16)
        return converted.astype(np.int16).tobytes()
