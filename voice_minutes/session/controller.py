"""
SessionController: one recording session, connect -> start -> stop.

start() attaches to the audio source (bounded by CONNECT_TIMEOUT_SECONDS) and
wires speaking signals into a SpeakerStreamManager whose closed clips go to the
TranscriptionDispatcher. ConnectFailure is the only error a caller ever sees.

stop() drains in order:
1. force-finalize every capture and wait for each transcoder to exit,
2. disconnect the source,
3. wait for every pending transcription job,
4. batch label pass (batch mode), then publisher.complete().
It is idempotent and never raises. start() is refused until the drain has finished,
and stop() only clears the objects of the session it drained.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from voice_minutes.asr.base import Transcriber
from voice_minutes.audio.decoder import FrameDecoder
from voice_minutes.audio.pipeline import PipelineResult
from voice_minutes.audio.source import AudioSource
from voice_minutes.config import Settings, get_settings
from voice_minutes.errors import ConnectFailure
from voice_minutes.session.dispatcher import TranscriptionDispatcher
from voice_minutes.session.jobs import JobTracker
from voice_minutes.session.labels import LabelResolver
from voice_minutes.session.models import Session
from voice_minutes.session.streams import CommandFactory, SpeakerStreamManager
from voice_minutes.transcript.publisher import Publisher

logger = logging.getLogger(__name__)


class SessionController:
    def __init__(
        self,
        transcriber: Transcriber,
        publisher: Publisher,
        resolver: Optional[LabelResolver] = None,
        settings: Settings | None = None,
        decoder_factory: Callable[[], FrameDecoder] | None = None,
        command_factory: CommandFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transcriber = transcriber
        self._publisher = publisher
        self._resolver = resolver
        self._decoder_factory = decoder_factory
        self._command_factory = command_factory
        self._session: Optional[Session] = None
        self._source: Optional[AudioSource] = None
        self._streams: Optional[SpeakerStreamManager] = None
        self._jobs: Optional[JobTracker] = None
        self._dispatcher: Optional[TranscriptionDispatcher] = None
        self._starting = False
        self._stopping = False

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def recording(self) -> bool:
        return self._session is not None and self._session.active

    @property
    def stopping(self) -> bool:
        """A stop() is still draining the previous session."""
        return self._stopping

    @property
    def streams(self) -> Optional[SpeakerStreamManager]:
        return self._streams

    @property
    def dispatcher(self) -> Optional[TranscriptionDispatcher]:
        return self._dispatcher

    @property
    def jobs(self) -> Optional[JobTracker]:
        return self._jobs

    def pending_jobs(self) -> int:
        return len(self._jobs) if self._jobs is not None else 0

    def active_captures(self) -> int:
        return len(self._streams) if self._streams is not None else 0

    async def start(self, source: AudioSource, routing_token: str) -> Session:
        """Attach to source and begin recording. Raises ConnectFailure; no state is kept on failure."""
        if self.recording or self._starting:
            raise RuntimeError("A session is already recording")
        if self._stopping:
            raise RuntimeError("The previous session is still finishing")
        self._starting = True
        timeout = self._settings.CONNECT_TIMEOUT_SECONDS
        try:
            await asyncio.wait_for(source.connect(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("Audio source not ready after %.1fs", timeout)
            await self._discard(source)
            raise ConnectFailure(f"audio source not ready within {timeout:.1f}s") from e
        except Exception as e:
            logger.error("Audio source connect failed: %s", e)
            await self._discard(source)
            raise ConnectFailure(str(e)) from e
        finally:
            self._starting = False

        session = Session(routing_token=routing_token)
        jobs = JobTracker()
        dispatcher = TranscriptionDispatcher(
            self._transcriber,
            self._publisher,
            jobs,
            resolver=self._resolver,
            label_mode=self._settings.LABEL_RESOLUTION,
        )
        streams = SpeakerStreamManager(
            source,
            on_closed=self._on_capture_closed,
            session_date=session.date_prefix,
            settings=self._settings,
            decoder_factory=self._decoder_factory,
            command_factory=self._command_factory,
        )
        self._session, self._source, self._jobs = session, source, jobs
        self._dispatcher, self._streams = dispatcher, streams
        source.on_speaking(streams.on_speaking_start)
        try:
            await self._publisher.start(session)
        except Exception as e:
            logger.error("Publisher start failed: %s", e)
        logger.info("Recording started: %s (session %s)", routing_token, session.session_id)
        return session

    async def _discard(self, source: AudioSource) -> None:
        try:
            await source.disconnect()
        except Exception as e:
            logger.debug("Disconnect after failed connect raised: %s", e)

    def _on_capture_closed(self, result: PipelineResult) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.dispatch(result.path, result.speaker_id)

    async def stop(self) -> Optional[Session]:
        """Finalize and drain the session. No-op (None) when nothing is recording."""
        session = self._session
        if session is None or not session.active:
            return None
        session.active = False
        streams, source, jobs, dispatcher = self._streams, self._source, self._jobs, self._dispatcher
        self._stopping = True
        try:
            await self._drain(session, streams, source, jobs, dispatcher)
        finally:
            self._stopping = False
            # only this session's objects; a later start() owns whatever replaced them
            if self._streams is streams:
                self._streams = None
            if self._source is source:
                self._source = None
            if self._jobs is jobs:
                self._jobs = None
            if self._dispatcher is dispatcher:
                self._dispatcher = None
        logger.info("Session %s complete (%.0fs)", session.session_id, session.elapsed_seconds())
        return session

    async def _drain(
        self,
        session: Session,
        streams: Optional[SpeakerStreamManager],
        source: Optional[AudioSource],
        jobs: Optional[JobTracker],
        dispatcher: Optional[TranscriptionDispatcher],
    ) -> None:
        if streams is not None:
            streams.close()
            tasks = streams.finalize_all()
            if tasks:
                logger.info("Finalizing %d active capture(s)", len(tasks))
                for outcome in await asyncio.gather(*tasks, return_exceptions=True):
                    if isinstance(outcome, BaseException):
                        logger.error("Capture ended with error: %s", outcome)

        if source is not None:
            try:
                await source.disconnect()
            except Exception as e:
                logger.warning("Audio source disconnect failed: %s", e)

        if jobs is not None and len(jobs):
            try:
                await jobs.drain()
            except Exception as e:
                logger.error("Draining transcriptions failed: %s", e)

        labels: dict[str, str] = {}
        if dispatcher is not None:
            try:
                labels = await dispatcher.resolve_pending_labels()
            except Exception as e:
                logger.warning("Batch label resolution failed: %s", e)

        session.ended_at = datetime.now()
        try:
            await self._publisher.complete(session, labels)
        except Exception as e:
            logger.error("Publisher completion failed: %s", e)

    def status(self) -> dict[str, Any]:
        session = self._session
        return {
            "recording": self.recording,
            "session_id": session.session_id if session else None,
            "routing_token": session.routing_token if session else None,
            "elapsed_seconds": session.elapsed_seconds() if session else 0.0,
            "active_speakers": self._streams.active_speakers() if self._streams is not None else [],
            "pending_jobs": self.pending_jobs(),
        }
