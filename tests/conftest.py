"""
Pytest fixtures for voice-minutes tests.

A small Python child process stands in for ffmpeg: it copies stdin to the clip
path (flushing every chunk), so pipelines run against a real subprocess.
"""

import asyncio
import sys
import time
from datetime import datetime
from pathlib import Path

import pytest

from voice_minutes.asr.base import Transcriber
from voice_minutes.config import Settings
from voice_minutes.session.labels import LabelResolver, LabelLookupError
from voice_minutes.transcript.publisher import Publisher

COPY_SCRIPT = """
import sys
with open(sys.argv[1], "wb") as out:
    while True:
        chunk = sys.stdin.buffer.read1(65536)
        if not chunk:
            break
        out.write(chunk)
        out.flush()
"""

FAIL_SCRIPT = """
import sys
sys.stdin.buffer.read()
sys.stderr.write("encoder exploded\\n")
sys.exit(3)
"""

# 20 ms of 48 kHz stereo s16le
FRAME = b"\x01\x00\x02\x00" * 960
SILENT_FRAME = bytes(len(FRAME))


def copy_command(path):
    return [sys.executable, "-c", COPY_SCRIPT, path]


def fail_command(path):
    return [sys.executable, "-c", FAIL_SCRIPT, path]


async def wait_until(predicate, timeout=5.0, interval=0.01):
    """Poll predicate on the running loop until it is true or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


class FakeTranscriber(Transcriber):
    """Returns a fixed text (or raises) and records every clip it saw."""

    def __init__(self, text="hello world", error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = []

    async def transcribe(self, path):
        self.calls.append(path)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


class RecordingPublisher(Publisher):
    def __init__(self, error=None):
        self.error = error
        self.started = []
        self.published = []
        self.completed = []

    async def start(self, session):
        self.started.append(session)

    async def publish(self, label, text, timestamp):
        if self.error is not None:
            raise self.error
        self.published.append((label, text))

    async def complete(self, session, labels=None):
        self.completed.append((session, dict(labels or {})))


class LoudnessDetector:
    """Speech detector for tests: any non-zero sample is speech."""

    def __init__(self):
        self.calls = 0

    def is_speech(self, packet):
        self.calls += 1
        return any(packet)


class MappingResolver(LabelResolver):
    def __init__(self, names=None, error=None):
        self.names = names or {}
        self.error = error
        self.calls = []

    async def resolve(self, speaker_id):
        self.calls.append(speaker_id)
        if self.error is not None:
            raise self.error
        if speaker_id not in self.names:
            raise LabelLookupError(speaker_id)
        return self.names[speaker_id]


@pytest.fixture
def temp_dir(tmp_path):
    """Temporary directory for clips and minutes."""
    return tmp_path


@pytest.fixture
def settings(temp_dir):
    return Settings(
        RECORDING_DIR=str(temp_dir / "recordings"),
        MINUTES_DIR=str(temp_dir / "minutes"),
        SILENCE_DURATION_MS=100,
        CONNECT_TIMEOUT_SECONDS=0.2,
        SAMPLE_RATE=48000,
        CHANNELS=2,
        SOURCE_CHANNELS=2,
        WHISPER_API_KEY="test-key",
        SUMMARY_API_KEY="test-key",
        MINUTES_BASE_URL="",
        LABEL_RESOLUTION="realtime",
        SPEAKER_NAMES={},
    )


@pytest.fixture
def clip_file(temp_dir):
    """Factory: create a clip file with the given bytes."""

    def make(name="voice_2026-01-01_1_42.mp3", data=b"ID3fake-mp3-data"):
        path = Path(temp_dir) / name
        path.write_bytes(data)
        return str(path)

    return make


@pytest.fixture
def session_start():
    return datetime(2026, 1, 20, 14, 30, 0)
