"""Audio pipeline: per-speaker source streams, decode, transcode to clip."""
from .decoder import FrameDecoder, PCMDecoder
from .pipeline import AudioPipeline, PipelineResult, build_transcoder_command
from .source import AudioSource, SpeakerStream, StreamAudioSource
from .vad import VADProcessor

__all__ = [
    "AudioPipeline",
    "AudioSource",
    "FrameDecoder",
    "PCMDecoder",
    "PipelineResult",
    "SpeakerStream",
    "StreamAudioSource",
    "VADProcessor",
    "build_transcoder_command",
]
