"""
SpeakerStreamManager: one active capture per speaker.

- speaking-start for a speaker without a capture: new clip path, subscribe to the
  speaker's stream, start an AudioPipeline task (IDLE -> CAPTURING).
- speaking-start for a speaker that already has one: ignored.
- stream ended by silence: CAPTURING -> FINALIZING.
- transcoder exited: -> CLOSED; the capture leaves the active set first, then
  on_closed(result) runs, so a slow dispatch never blocks the next utterance.
- finalize_all(): FORCE_FINALIZE + terminate every pipeline; returns tasks to await.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from typing import Callable, Optional

from voice_minutes.audio.decoder import FrameDecoder, PCMDecoder
from voice_minutes.audio.pipeline import AudioPipeline, PipelineResult, build_transcoder_command
from voice_minutes.audio.source import AudioSource
from voice_minutes.config import Settings, get_settings
from voice_minutes.session.models import CaptureEvent, SpeakerCapture

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")

ClosedCallback = Callable[[PipelineResult], None]
CommandFactory = Callable[[str], list[str]]


class SpeakerStreamManager:
    def __init__(
        self,
        source: AudioSource,
        on_closed: ClosedCallback,
        session_date: str,
        settings: Settings | None = None,
        decoder_factory: Callable[[], FrameDecoder] | None = None,
        command_factory: CommandFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._source = source
        self._on_closed = on_closed
        self._session_date = session_date
        self._recording_dir = self._settings.RECORDING_DIR
        self._silence_ms = self._settings.SILENCE_DURATION_MS
        self._decoder_factory = decoder_factory or (
            lambda: PCMDecoder(self._settings.SOURCE_CHANNELS, self._settings.CHANNELS)
        )
        self._command_factory = command_factory or (lambda path: build_transcoder_command(path, self._settings))
        self._captures: dict[str, SpeakerCapture] = {}
        self._last_token = 0
        self._closed = False
        os.makedirs(self._recording_dir, exist_ok=True)

    def __len__(self) -> int:
        return len(self._captures)

    def active_speakers(self) -> list[str]:
        return list(self._captures)

    def get(self, speaker_id: str) -> Optional[SpeakerCapture]:
        return self._captures.get(speaker_id)

    def _next_token(self) -> int:
        """Millisecond clock, bumped so two clips never share a token."""
        token = max(int(time.time() * 1000), self._last_token + 1)
        self._last_token = token
        return token

    def clip_path(self, speaker_id: str) -> str:
        name = f"voice_{self._session_date}_{self._next_token()}_{_UNSAFE.sub('_', speaker_id)}.{self._settings.CLIP_FORMAT}"
        return os.path.join(self._recording_dir, name)

    def on_speaking_start(self, speaker_id: str) -> None:
        if self._closed:
            return
        if speaker_id in self._captures:
            return
        path = self.clip_path(speaker_id)
        capture = SpeakerCapture(speaker_id=speaker_id, path=path)
        capture.apply(CaptureEvent.SPEAKING_START)
        stream = self._source.subscribe(speaker_id, self._silence_ms)
        try:
            capture.pipeline = AudioPipeline(
                speaker_id,
                stream,
                path,
                decoder=self._decoder_factory(),
                command=self._command_factory(path),
                settings=self._settings,
                on_input_end=lambda: capture.apply(CaptureEvent.SILENCE),
            )
        except Exception as e:
            logger.error("Could not start recording for %s: %s", speaker_id, e)
            stream.close()
            return
        self._captures[speaker_id] = capture
        capture.task = asyncio.create_task(self._run(capture), name=f"capture-{speaker_id}")
        logger.info("Recording %s -> %s", speaker_id, path)

    async def _run(self, capture: SpeakerCapture) -> None:
        assert capture.pipeline is not None
        try:
            result = await capture.pipeline.run()
        except asyncio.CancelledError:
            self._forget(capture)
            if os.path.exists(capture.path):
                os.remove(capture.path)
            raise
        except Exception as e:
            logger.error("Pipeline failed for %s: %s", capture.speaker_id, e)
            result = PipelineResult(
                speaker_id=capture.speaker_id,
                path=capture.path,
                returncode=None,
                file_exists=os.path.exists(capture.path),
                errors=[str(e)],
            )
        self._forget(capture)
        try:
            self._on_closed(result)
        except Exception as e:
            logger.error("Close handler failed for %s: %s", capture.speaker_id, e)

    def _forget(self, capture: SpeakerCapture) -> None:
        capture.apply(CaptureEvent.PROCESS_EXIT)
        if self._captures.get(capture.speaker_id) is capture:
            del self._captures[capture.speaker_id]

    def finalize_all(self) -> list[asyncio.Task]:
        """End every active capture now. Await the returned tasks for their CLOSED transition."""
        tasks: list[asyncio.Task] = []
        for capture in list(self._captures.values()):
            capture.apply(CaptureEvent.FORCE_FINALIZE)
            if capture.pipeline is not None:
                capture.pipeline.terminate()
            if capture.task is not None:
                tasks.append(capture.task)
        return tasks

    def close(self) -> None:
        """Stop accepting speaking-start signals."""
        self._closed = True
