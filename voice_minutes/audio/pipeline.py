"""
AudioPipeline: one speaker's utterance -> one compressed clip on disk.

Stages:
1. decode: FrameDecoder turns each packet from the speaker stream into PCM s16le.
2. encode: PCM is piped into an external transcoder (ffmpeg) that writes the clip.

Every stage error (stream, decode, stdin write, spawn) is logged with its stage
label and recorded on the result; run() never raises for them and always returns
once the transcoder has exited, so the capture can be closed deterministically.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import AsyncIterable, Callable

from voice_minutes.audio.decoder import FrameDecoder, PCMDecoder
from voice_minutes.config import Settings, get_settings

logger = logging.getLogger(__name__)


def build_transcoder_command(path: str, settings: Settings | None = None) -> list[str]:
    """ffmpeg reading raw PCM on stdin and writing a compressed clip at path."""
    settings = settings or get_settings()
    return [
        settings.FFMPEG_BIN,
        "-y",
        "-loglevel", "error",
        "-f", "s16le",
        "-ar", str(settings.SAMPLE_RATE),
        "-ac", str(settings.CHANNELS),
        "-i", "pipe:0",
        "-acodec", settings.CLIP_CODEC,
        "-q:a", settings.CLIP_QUALITY,
        path,
    ]


@dataclass
class PipelineResult:
    """Outcome of one pipeline run, reported when the transcoder has exited."""

    speaker_id: str
    path: str
    returncode: int | None  # None = transcoder never started
    file_exists: bool
    stderr: str = ""
    errors: list[str] = field(default_factory=list)
    bytes_written: int = 0
    terminated: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and self.file_exists


class AudioPipeline:
    """
    Decodes a speaker stream and feeds it to the transcoder process.
    terminate() forces an early end: stops feeding, closes stdin, signals the process.
    on_input_end fires when the stream ends on its own (silence), not after terminate().
    """

    def __init__(
        self,
        speaker_id: str,
        stream: AsyncIterable[bytes],
        path: str,
        decoder: FrameDecoder | None = None,
        command: list[str] | None = None,
        settings: Settings | None = None,
        on_input_end: Callable[[], None] | None = None,
    ) -> None:
        self.speaker_id = speaker_id
        self._on_input_end = on_input_end
        self.path = path
        self._stream = stream
        self._decoder = decoder or PCMDecoder()
        self._command = command or build_transcoder_command(path, settings)
        self._process: asyncio.subprocess.Process | None = None
        self._pump_task: asyncio.Task | None = None
        self._errors: list[str] = []
        self._stderr = ""
        self._bytes_written = 0
        self._terminated = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _record(self, stage: str, err: BaseException) -> None:
        message = f"{stage}: {err}"
        self._errors.append(message)
        logger.error("%s error (%s): %s", stage, self.speaker_id, err)

    async def run(self) -> PipelineResult:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            self._record("Transcoder spawn", e)
            self._close_stream()
            return self._result(None)

        if self._terminated:
            self._signal_process()
        stderr_task = asyncio.create_task(self._drain_stderr())
        self._pump_task = asyncio.create_task(self._pump())
        # asyncio.wait: a cancelled pump (terminate) must not cancel run() itself
        await asyncio.wait({self._pump_task})
        returncode = await self._process.wait()
        await stderr_task
        return self._result(returncode)

    async def _pump(self) -> None:
        """Decode packets and write PCM to the transcoder until the stream ends."""
        assert self._process is not None and self._process.stdin is not None
        stdin = self._process.stdin
        try:
            async for packet in self._stream:
                try:
                    pcm = self._decoder.decode(packet)
                except Exception as e:
                    self._record("PCM decode", e)
                    continue
                if not pcm:
                    continue
                try:
                    stdin.write(pcm)
                    await stdin.drain()
                except (BrokenPipeError, ConnectionResetError) as e:
                    self._record("Transcoder stdin", e)
                    return
                self._bytes_written += len(pcm)
            if self._on_input_end is not None and not self._terminated:
                self._on_input_end()
        except asyncio.CancelledError:
            logger.debug("Pipeline for %s cancelled after %d bytes", self.speaker_id, self._bytes_written)
            raise
        except Exception as e:
            self._record("Audio stream", e)
        finally:
            self._close_stream()
            self._close_stdin()

    async def _drain_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        try:
            data = await self._process.stderr.read()
        except OSError as e:
            logger.debug("Could not read transcoder stderr for %s: %s", self.speaker_id, e)
            return
        self._stderr = data.decode("utf-8", errors="replace")

    def _close_stream(self) -> None:
        close = getattr(self._stream, "close", None)
        if callable(close):
            close()

    def _close_stdin(self) -> None:
        stdin = self._process.stdin if self._process is not None else None
        if stdin is None or stdin.is_closing():
            return
        try:
            stdin.close()
        except (BrokenPipeError, ConnectionResetError) as e:
            self._record("Transcoder stdin", e)

    def _signal_process(self) -> None:
        if self._process is None or self._process.returncode is not None:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    def terminate(self) -> None:
        """Force the utterance to end now. run() still returns once the process exits."""
        if self._terminated:
            return
        self._terminated = True
        self._close_stream()
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
        self._signal_process()

    def _result(self, returncode: int | None) -> PipelineResult:
        exists = os.path.exists(self.path)
        logger.info(
            "Capture finished for %s (code=%s, file=%s, bytes=%d)",
            self.speaker_id,
            returncode,
            "ok" if exists else "missing",
            self._bytes_written,
        )
        if returncode != 0 and not exists and self._stderr.strip():
            logger.error("Transcoder stderr (%s): %s", self.speaker_id, self._stderr.strip())
        return PipelineResult(
            speaker_id=self.speaker_id,
            path=self.path,
            returncode=returncode,
            file_exists=exists,
            stderr=self._stderr,
            errors=list(self._errors),
            bytes_written=self._bytes_written,
            terminated=self._terminated,
        )
