"""
Tests for SessionController: connect timeout, end-to-end utterances, shutdown drain.
"""

import asyncio
import os

import pytest

from voice_minutes.audio.source import StreamAudioSource
from voice_minutes.errors import ConnectFailure
from voice_minutes.session.controller import SessionController

from conftest import (
    FRAME,
    SILENT_FRAME,
    FakeTranscriber,
    LoudnessDetector,
    MappingResolver,
    RecordingPublisher,
    copy_command,
    wait_until,
)


class HangingSource(StreamAudioSource):
    """Never becomes ready."""

    def __init__(self):
        super().__init__()
        self.disconnected = False

    async def connect(self):
        await asyncio.sleep(3600)

    async def disconnect(self):
        self.disconnected = True
        await super().disconnect()


class BrokenSource(StreamAudioSource):
    async def connect(self):
        raise OSError("voice gateway unreachable")


def _controller(settings, transcriber=None, publisher=None, resolver=None):
    return SessionController(
        transcriber or FakeTranscriber(),
        publisher or RecordingPublisher(),
        resolver=resolver,
        settings=settings,
        command_factory=copy_command,
    )


async def _speak(source, speaker_id, frames=10, interval=0.01):
    for _ in range(frames):
        source.feed(speaker_id, FRAME)
        await asyncio.sleep(interval)


def _clips(settings):
    if not os.path.isdir(settings.RECORDING_DIR):
        return []
    return os.listdir(settings.RECORDING_DIR)


class TestStart:
    def test_connect_timeout_creates_no_state(self, settings):
        controller = _controller(settings)
        source = HangingSource()

        async def scenario():
            with pytest.raises(ConnectFailure):
                await controller.start(source, "Minutes 2026-01-20")

        asyncio.run(scenario())
        assert controller.session is None
        assert controller.streams is None
        assert controller.pending_jobs() == 0
        assert not controller.recording
        assert source.disconnected

    def test_connect_error_is_connect_failure(self, settings):
        controller = _controller(settings)

        async def scenario():
            with pytest.raises(ConnectFailure, match="unreachable"):
                await controller.start(BrokenSource(), "x")

        asyncio.run(scenario())
        assert controller.session is None

    def test_start_creates_session_and_notifies_publisher(self, settings):
        publisher = RecordingPublisher()
        controller = _controller(settings, publisher=publisher)

        async def scenario():
            session = await controller.start(StreamAudioSource(), "Minutes 2026-01-20")
            status = controller.status()
            await controller.stop()
            return session, status

        session, status = asyncio.run(scenario())
        assert session.routing_token == "Minutes 2026-01-20"
        assert publisher.started == [session]
        assert status["recording"] is True
        assert status["pending_jobs"] == 0

    def test_second_start_is_rejected(self, settings):
        controller = _controller(settings)

        async def scenario():
            await controller.start(StreamAudioSource(), "x")
            try:
                with pytest.raises(RuntimeError):
                    await controller.start(StreamAudioSource(), "y")
            finally:
                await controller.stop()

        asyncio.run(scenario())


class TestStop:
    def test_stop_without_session_is_noop(self, settings):
        controller = _controller(settings)
        assert asyncio.run(controller.stop()) is None

    def test_double_stop_completes_once(self, settings):
        publisher = RecordingPublisher()
        controller = _controller(settings, publisher=publisher)

        async def scenario():
            await controller.start(StreamAudioSource(), "x")
            return await asyncio.gather(controller.stop(), controller.stop())

        first, second = asyncio.run(scenario())
        assert first is not None and second is None
        assert len(publisher.completed) == 1
        assert asyncio.run(controller.stop()) is None

    def test_forced_stop_mid_utterance(self, settings):
        """stop() terminates the speaking pipeline and waits for its closure and dispatch."""
        settings.SILENCE_DURATION_MS = 60_000
        transcriber = FakeTranscriber(delay=0.05)
        publisher = RecordingPublisher()
        controller = _controller(settings, transcriber=transcriber, publisher=publisher)

        async def scenario():
            source = StreamAudioSource()
            await controller.start(source, "x")
            await _speak(source, "a", frames=5)
            capture = controller.streams.get("a")
            assert capture is not None
            await wait_until(lambda: capture.pipeline.running)
            streams, jobs, dispatcher = controller.streams, controller.jobs, controller.dispatcher
            session = await controller.stop()
            return capture, session, streams, jobs, dispatcher

        capture, session, streams, jobs, dispatcher = asyncio.run(scenario())
        assert capture.state.value == "closed"
        assert len(streams) == 0
        assert len(jobs) == 0
        # the clip cut short by stop() was handed over exactly once
        assert dispatcher.dispatched + dispatcher.skipped == 1
        assert len(transcriber.calls) == dispatcher.dispatched
        assert len(publisher.published) == len(transcriber.calls)
        assert _clips(settings) == []
        assert session.ended_at is not None
        assert publisher.completed

    def test_drain_survives_failed_transcriptions(self, settings):
        transcriber = FakeTranscriber(error=RuntimeError("network"), delay=0.05)
        publisher = RecordingPublisher()
        controller = _controller(settings, transcriber=transcriber, publisher=publisher)

        async def scenario():
            source = StreamAudioSource()
            await controller.start(source, "x")
            await asyncio.gather(_speak(source, "a"), _speak(source, "b"), _speak(source, "c"))
            await wait_until(lambda: len(transcriber.calls) == 3)
            streams, jobs = controller.streams, controller.jobs
            await controller.stop()
            return streams, jobs

        streams, jobs = asyncio.run(scenario())
        assert len(streams) == 0
        assert len(jobs) == 0
        assert publisher.published == []
        assert _clips(settings) == []
        assert len(publisher.completed) == 1

    def test_stop_releases_session_objects(self, settings):
        controller = _controller(settings)

        async def scenario():
            await controller.start(StreamAudioSource(), "x")
            await controller.stop()

        asyncio.run(scenario())
        assert controller.streams is None
        assert controller.jobs is None
        assert controller.dispatcher is None
        assert not controller.stopping

    def test_start_refused_while_previous_stop_drains(self, settings):
        """A new session must not start, or lose its state, while the last one is still draining."""
        transcriber = FakeTranscriber(delay=0.3)
        publisher = RecordingPublisher()
        controller = _controller(settings, transcriber=transcriber, publisher=publisher)

        async def scenario():
            first = StreamAudioSource()
            await controller.start(first, "first")
            await _speak(first, "a", frames=5)
            await wait_until(lambda: len(transcriber.calls) == 1)

            stop_first = asyncio.create_task(controller.stop())
            await wait_until(lambda: controller.stopping)
            with pytest.raises(RuntimeError):
                await controller.start(StreamAudioSource(), "second")
            await stop_first

            second = StreamAudioSource()
            await controller.start(second, "second")
            await _speak(second, "b", frames=3)
            streams, jobs = controller.streams, controller.jobs
            capture = streams.get("b")
            await controller.stop()
            return streams, jobs, capture

        streams, jobs, capture = asyncio.run(scenario())
        assert capture.state.value == "closed"
        assert not capture.pipeline.running
        assert len(streams) == 0
        assert len(jobs) == 0
        assert [s.routing_token for s, _ in publisher.completed] == ["first", "second"]
        assert len(publisher.started) == 2



class TestScenarios:
    def test_single_utterance_single_transcription(self, settings):
        """Speech then silence: one closed capture, one transcription, one published entry."""
        transcriber = FakeTranscriber(text="let's begin")
        publisher = RecordingPublisher()
        controller = _controller(
            settings, transcriber=transcriber, publisher=publisher, resolver=MappingResolver({"a": "Alice"})
        )

        async def scenario():
            source = StreamAudioSource()
            await controller.start(source, "x")
            await _speak(source, "a", frames=20)
            await wait_until(lambda: publisher.published)
            await controller.stop()

        asyncio.run(scenario())
        assert len(transcriber.calls) == 1
        assert publisher.published == [("Alice", "let's begin")]
        assert _clips(settings) == []

    def test_two_speakers_pause_together(self, settings):
        """Concurrent speakers give independent transcriptions with their own labels."""
        transcriber = FakeTranscriber(text="same words")
        publisher = RecordingPublisher()
        controller = _controller(
            settings,
            transcriber=transcriber,
            publisher=publisher,
            resolver=MappingResolver({"a": "Alice", "b": "Bob"}),
        )

        async def scenario():
            source = StreamAudioSource()
            await controller.start(source, "x")
            await asyncio.gather(_speak(source, "a"), _speak(source, "b"))
            await wait_until(lambda: len(publisher.published) == 2)
            await controller.stop()

        asyncio.run(scenario())
        assert len(transcriber.calls) == 2
        assert transcriber.calls[0] != transcriber.calls[1]
        assert sorted(label for label, _ in publisher.published) == ["Alice", "Bob"]

    def test_sequential_utterances_same_speaker(self, settings):
        """A speaker's next utterance starts only after the previous one closed."""
        transcriber = FakeTranscriber(text="again")
        controller = _controller(settings, transcriber=transcriber)

        async def scenario():
            source = StreamAudioSource()
            await controller.start(source, "x")
            await _speak(source, "a", frames=5)
            await wait_until(lambda: len(transcriber.calls) == 1)
            await _speak(source, "a", frames=5)
            await wait_until(lambda: len(transcriber.calls) == 2)
            await controller.stop()

        asyncio.run(scenario())
        assert len(transcriber.calls) == 2
        assert len(set(transcriber.calls)) == 2

    def test_batch_labels_passed_on_complete(self, settings):
        settings.LABEL_RESOLUTION = "batch"
        publisher = RecordingPublisher()
        controller = _controller(settings, publisher=publisher, resolver=MappingResolver({"a": "Alice"}))

        async def scenario():
            source = StreamAudioSource()
            await controller.start(source, "x")
            await _speak(source, "a")
            await wait_until(lambda: publisher.published)
            await controller.stop()

        asyncio.run(scenario())
        assert publisher.published == [("User_a", "hello world")]
        assert publisher.completed[0][1] == {"a": "Alice"}

    def test_silent_mic_frames_end_the_utterance(self, settings):
        """A live mic keeps sending silent frames; the utterance still ends after the silence window."""
        transcriber = FakeTranscriber()
        controller = _controller(settings, transcriber=transcriber)

        async def scenario():
            source = StreamAudioSource(vad=LoudnessDetector())
            await controller.start(source, "x")
            await _speak(source, "a", frames=15, interval=0.02)
            for _ in range(30):
                source.feed("a", SILENT_FRAME)
                await asyncio.sleep(0.02)
            mid_session = (controller.active_captures(), len(transcriber.calls))
            await controller.stop()
            return mid_session

        active, calls = asyncio.run(scenario())
        assert active == 0
        assert calls == 1
        assert _clips(settings) == []

    def test_silent_frames_alone_open_no_capture(self, settings):
        transcriber = FakeTranscriber()
        controller = _controller(settings, transcriber=transcriber)

        async def scenario():
            source = StreamAudioSource(vad=LoudnessDetector())
            await controller.start(source, "x")
            for _ in range(5):
                source.feed("a", SILENT_FRAME)
                await asyncio.sleep(0.01)
            active = controller.active_captures()
            await controller.stop()
            return active

        assert asyncio.run(scenario()) == 0
        assert transcriber.calls == []
