"""Recording session: per-speaker captures, transcription dispatch, shutdown drain."""
from voice_minutes.session.controller import SessionController
from voice_minutes.session.dispatcher import TranscriptionDispatcher
from voice_minutes.session.jobs import JobTracker
from voice_minutes.session.models import CaptureEvent, CaptureState, Session, SpeakerCapture
from voice_minutes.session.streams import SpeakerStreamManager

__all__ = [
    "CaptureEvent",
    "CaptureState",
    "JobTracker",
    "Session",
    "SessionController",
    "SpeakerCapture",
    "SpeakerStreamManager",
    "TranscriptionDispatcher",
]
