"""
Session and per-speaker capture records.

SpeakerCapture lifecycle: IDLE -> CAPTURING -> FINALIZING -> CLOSED, driven by
named events through TRANSITIONS. Anything not in the table is ignored.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import asyncio

    from voice_minutes.audio.pipeline import AudioPipeline

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class CaptureEvent(str, Enum):
    SPEAKING_START = "speaking_start"
    SILENCE = "silence"  # source ended the utterance after the silence duration
    FORCE_FINALIZE = "force_finalize"  # session shutdown
    PROCESS_EXIT = "process_exit"  # transcoder exited (any code)


TRANSITIONS: dict[tuple[CaptureState, CaptureEvent], CaptureState] = {
    (CaptureState.IDLE, CaptureEvent.SPEAKING_START): CaptureState.CAPTURING,
    (CaptureState.CAPTURING, CaptureEvent.SILENCE): CaptureState.FINALIZING,
    (CaptureState.CAPTURING, CaptureEvent.FORCE_FINALIZE): CaptureState.FINALIZING,
    # a transcoder can die while audio is still flowing
    (CaptureState.CAPTURING, CaptureEvent.PROCESS_EXIT): CaptureState.CLOSED,
    (CaptureState.FINALIZING, CaptureEvent.PROCESS_EXIT): CaptureState.CLOSED,
}


@dataclass
class SpeakerCapture:
    """One in-progress utterance for one speaker. At most one per speaker is active."""

    speaker_id: str
    path: str
    pipeline: Optional["AudioPipeline"] = None
    state: CaptureState = CaptureState.IDLE
    task: Optional["asyncio.Task"] = None
    created_at: float = field(default_factory=time.time)

    def apply(self, event: CaptureEvent) -> bool:
        """Advance the state machine. Returns False (state unchanged) when event does not apply."""
        target = TRANSITIONS.get((self.state, event))
        if target is None:
            logger.debug("Ignoring %s for %s in state %s", event.value, self.speaker_id, self.state.value)
            return False
        logger.debug("Capture %s: %s -> %s (%s)", self.speaker_id, self.state.value, target.value, event.value)
        self.state = target
        return True

    @property
    def open(self) -> bool:
        return self.state in (CaptureState.CAPTURING, CaptureState.FINALIZING)


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars)."""
    return uuid.uuid4().hex[:12]


@dataclass
class Session:
    """One recording interval from connect to stop. Owned by SessionController."""

    routing_token: str
    session_id: str = field(default_factory=generate_session_id)
    started_at: datetime = field(default_factory=datetime.now)
    active: bool = True
    ended_at: Optional[datetime] = None

    @property
    def date_prefix(self) -> str:
        return self.started_at.strftime("%Y-%m-%d")

    def elapsed_seconds(self) -> float:
        end = self.ended_at or datetime.now()
        return max(0.0, (end - self.started_at).total_seconds())
