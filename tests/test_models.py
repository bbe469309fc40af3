"""
Tests for the capture state machine and session record.
"""

from datetime import datetime, timedelta

import pytest

from voice_minutes.session.models import CaptureEvent, CaptureState, Session, SpeakerCapture


class TestSpeakerCapture:
    def test_natural_lifecycle(self):
        """speaking -> silence -> exit should walk IDLE -> CAPTURING -> FINALIZING -> CLOSED."""
        capture = SpeakerCapture(speaker_id="a", path="/tmp/a.mp3")
        assert capture.state is CaptureState.IDLE
        assert capture.apply(CaptureEvent.SPEAKING_START)
        assert capture.state is CaptureState.CAPTURING and capture.open
        assert capture.apply(CaptureEvent.SILENCE)
        assert capture.state is CaptureState.FINALIZING and capture.open
        assert capture.apply(CaptureEvent.PROCESS_EXIT)
        assert capture.state is CaptureState.CLOSED and not capture.open

    def test_forced_finalize(self):
        capture = SpeakerCapture(speaker_id="a", path="/tmp/a.mp3")
        capture.apply(CaptureEvent.SPEAKING_START)
        assert capture.apply(CaptureEvent.FORCE_FINALIZE)
        assert capture.state is CaptureState.FINALIZING

    def test_transcoder_exit_while_capturing(self):
        capture = SpeakerCapture(speaker_id="a", path="/tmp/a.mp3")
        capture.apply(CaptureEvent.SPEAKING_START)
        assert capture.apply(CaptureEvent.PROCESS_EXIT)
        assert capture.state is CaptureState.CLOSED

    @pytest.mark.parametrize(
        "state,event",
        [
            (CaptureState.CAPTURING, CaptureEvent.SPEAKING_START),
            (CaptureState.FINALIZING, CaptureEvent.SPEAKING_START),
            (CaptureState.FINALIZING, CaptureEvent.SILENCE),
            (CaptureState.FINALIZING, CaptureEvent.FORCE_FINALIZE),
            (CaptureState.CLOSED, CaptureEvent.PROCESS_EXIT),
            (CaptureState.IDLE, CaptureEvent.SILENCE),
        ],
    )
    def test_inapplicable_events_are_ignored(self, state, event):
        capture = SpeakerCapture(speaker_id="a", path="/tmp/a.mp3", state=state)
        assert capture.apply(event) is False
        assert capture.state is state


class TestSession:
    def test_defaults(self):
        session = Session(routing_token="Minutes 2026-01-20")
        assert session.active
        assert len(session.session_id) == 12
        assert session.ended_at is None

    def test_date_prefix_and_elapsed(self, session_start):
        session = Session(routing_token="x", started_at=session_start)
        session.ended_at = session_start + timedelta(seconds=90)
        assert session.date_prefix == "2026-01-20"
        assert session.elapsed_seconds() == 90.0

    def test_elapsed_never_negative(self):
        session = Session(routing_token="x", started_at=datetime.now() + timedelta(hours=1))
        assert session.elapsed_seconds() == 0.0
