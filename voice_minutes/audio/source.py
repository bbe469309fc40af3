"""
AudioSource: where per-speaker audio comes from.

- Emits a speaking-start signal (speaker_id) when a speaker begins talking.
- subscribe(speaker_id, silence_ms) yields that speaker's encoded packets and
  ends on its own after silence_ms without speech (end of utterance).
- connect() completes when the source is ready; the caller bounds it with a timeout.

StreamAudioSource is the push-based implementation used by the WebSocket ingest:
frames are fed in with feed(); there is no network attach step. A live mic sends
frames all the time, so the ingest gives it a speech detector (VADProcessor):
only speech opens an utterance, and only speech restarts the silence timer.
"""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

SpeakingCallback = Callable[[str], None]


class SpeechDetector(Protocol):
    def is_speech(self, packet: bytes) -> bool: ...


class AudioSource(ABC):
    """Abstract live audio source with per-speaker streams."""

    @abstractmethod
    async def connect(self) -> None:
        """Attach to the live source. Returns once ready; raises on failure."""
        ...

    @abstractmethod
    def on_speaking(self, callback: SpeakingCallback) -> None:
        """Register a callback invoked with speaker_id on each speaking-start signal."""
        ...

    @abstractmethod
    def subscribe(self, speaker_id: str, silence_ms: int) -> "SpeakerStream":
        """Open one utterance stream for speaker_id; it ends after silence_ms of silence."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Detach from the source. Open streams end."""
        ...


class SpeakerStream:
    """
    One utterance worth of packets for one speaker.
    Async-iterable; iteration stops once silence_ms pass without a speech packet, or on close().
    Non-speech packets are still delivered (they belong to the clip) but do not extend it.
    """

    def __init__(self, speaker_id: str, silence_ms: int, on_end: Callable[["SpeakerStream"], None] | None = None) -> None:
        self.speaker_id = speaker_id
        self._silence_sec = max(0.0, silence_ms / 1000.0)
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._on_end = on_end
        self._ended = False
        self._last_speech = time.monotonic()

    @property
    def ended(self) -> bool:
        return self._ended

    def push(self, packet: bytes, speech: bool = True) -> None:
        if self._ended:
            return
        if speech:
            self._last_speech = time.monotonic()
        self._queue.put_nowait(packet)

    def close(self) -> None:
        """End the stream now (disconnect or forced finalize)."""
        if self._ended:
            return
        self._queue.put_nowait(None)
        self._finish()

    def _finish(self) -> None:
        if self._ended and self._on_end is None:
            return
        self._ended = True
        on_end, self._on_end = self._on_end, None
        if on_end is not None:
            on_end(self)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            remaining = self._silence_sec - (time.monotonic() - self._last_speech)
            packet: bytes | None = None
            if remaining > 0:
                try:
                    packet = await asyncio.wait_for(self._queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    remaining = 0
            if remaining <= 0:
                logger.debug("Silence for %.0f ms, ending stream for %s", self._silence_sec * 1000, self.speaker_id)
                self._finish()
                return
            if packet is None:
                return
            yield packet


class StreamAudioSource(AudioSource):
    """
    Push-based source: call feed(speaker_id, packet) for every received frame.
    A speech packet from a speaker with no open stream raises a speaking-start signal
    first; listeners that subscribe inside the callback receive that packet too.
    Without a detector every non-empty packet counts as speech (the feed only sends
    while someone talks).
    """

    def __init__(self, vad: Optional[SpeechDetector] = None) -> None:
        self._vad = vad
        self._callbacks: list[SpeakingCallback] = []
        self._streams: dict[str, SpeakerStream] = {}
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    def on_speaking(self, callback: SpeakingCallback) -> None:
        self._callbacks.append(callback)

    def subscribe(self, speaker_id: str, silence_ms: int) -> SpeakerStream:
        existing = self._streams.get(speaker_id)
        if existing is not None and not existing.ended:
            return existing
        stream = SpeakerStream(speaker_id, silence_ms, on_end=self._forget)
        self._streams[speaker_id] = stream
        return stream

    def _forget(self, stream: SpeakerStream) -> None:
        if self._streams.get(stream.speaker_id) is stream:
            del self._streams[stream.speaker_id]

    def _is_speech(self, speaker_id: str, packet: bytes) -> bool:
        if self._vad is None:
            return True
        try:
            return self._vad.is_speech(packet)
        except Exception as e:
            logger.warning("VAD failed for %s: %s", speaker_id, e)
            return False

    def feed(self, speaker_id: str, packet: bytes) -> None:
        """Deliver one encoded packet from speaker_id. Dropped when disconnected, empty,
        or non-speech with no utterance open."""
        if not self._connected or not packet:
            return
        speech = self._is_speech(speaker_id, packet)
        if speaker_id not in self._streams:
            if not speech:
                return
            for callback in list(self._callbacks):
                try:
                    callback(speaker_id)
                except Exception as e:
                    logger.warning("Speaking callback failed for %s: %s", speaker_id, e)
        stream = self._streams.get(speaker_id)
        if stream is not None:
            stream.push(packet, speech=speech)

    async def disconnect(self) -> None:
        self._connected = False
        for stream in list(self._streams.values()):
            stream.close()
        self._streams.clear()
        self._callbacks.clear()
