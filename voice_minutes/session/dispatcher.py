"""
TranscriptionDispatcher: closed clip -> transcription -> publishers -> clip removed.

- Missing or empty clips are deleted on the spot and never transcribed.
- Qualifying clips become a tracked job in the session's JobTracker.
- The clip is deleted exactly once, in the job's finally block, whatever happens.
- Labels: "realtime" resolves per utterance; "batch" publishes the fallback label
  and resolves every seen speaker once at session end (resolve_pending_labels).
"""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Literal, Optional

from voice_minutes.asr.base import Transcriber
from voice_minutes.session.jobs import JobTracker
from voice_minutes.session.labels import LabelResolver, fallback_label, resolve_label
from voice_minutes.transcript.publisher import Publisher

logger = logging.getLogger(__name__)


def _remove(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete clip %s: %s", path, e)


class TranscriptionDispatcher:
    def __init__(
        self,
        transcriber: Transcriber,
        publisher: Publisher,
        jobs: JobTracker,
        resolver: Optional[LabelResolver] = None,
        label_mode: Literal["realtime", "batch"] = "realtime",
    ) -> None:
        self._transcriber = transcriber
        self._publisher = publisher
        self._jobs = jobs
        self._resolver = resolver
        self._label_mode = label_mode
        self._labels: dict[str, str] = {}
        self._unresolved: set[str] = set()
        self.dispatched = 0
        self.skipped = 0
        self.transcribed = 0
        self.empty = 0

    def dispatch(self, path: str, speaker_id: str) -> Optional[asyncio.Task]:
        """Submit a closed clip. Returns the job task, or None when the clip was skipped."""
        try:
            size = os.path.getsize(path)
        except OSError:
            size = 0
        if size == 0:
            logger.info("Skipping empty clip: %s", os.path.basename(path))
            self.skipped += 1
            _remove(path)
            return None
        self.dispatched += 1
        return self._jobs.track(self._run(path, speaker_id), name=f"transcribe-{os.path.basename(path)}")

    async def _run(self, path: str, speaker_id: str) -> None:
        try:
            try:
                text = await self._transcriber.transcribe(path)
            except Exception as e:
                logger.error("Transcription error (%s): %s", speaker_id, e)
                text = ""
            text = (text or "").strip()
            if not text:
                self.empty += 1
                return
            self.transcribed += 1
            label = await self._label_for(speaker_id)
            try:
                await self._publisher.publish(label, text, datetime.now())
            except Exception as e:
                logger.warning("Publish failed for %s: %s", label, e)
        finally:
            _remove(path)

    async def _label_for(self, speaker_id: str) -> str:
        if speaker_id in self._labels:
            return self._labels[speaker_id]
        if self._label_mode == "batch":
            self._unresolved.add(speaker_id)
            return fallback_label(speaker_id)
        label = await resolve_label(self._resolver, speaker_id)
        if label != fallback_label(speaker_id):
            self._labels[speaker_id] = label
        return label

    async def resolve_pending_labels(self) -> dict[str, str]:
        """Batch pass: resolve every speaker published under a fallback label. Returns id -> name."""
        resolved: dict[str, str] = {}
        for speaker_id in sorted(self._unresolved):
            label = await resolve_label(self._resolver, speaker_id)
            if label != fallback_label(speaker_id):
                resolved[speaker_id] = label
                self._labels[speaker_id] = label
        self._unresolved.clear()
        return resolved
