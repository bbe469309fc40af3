"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit stereo, 48kHz (what the transcoder is told to expect)
    SAMPLE_RATE: int = 48000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 2
    # Channels of the PCM coming from the audio source (mono is up-mixed)
    SOURCE_CHANNELS: int = 2

    # Frame: 20ms @ 48kHz = 960 samples per channel
    FRAME_SIZE: int = 960

    # Utterance boundary: continuous silence that ends one speaker's clip
    SILENCE_DURATION_MS: int = 1200

    # Live-mic feeds: webrtcvad decides which frames are speech (0 least .. 3 most aggressive)
    VAD_AGGRESSIVENESS: int = 2
    VAD_FRAME_MS: int = 20

    # Attaching to the audio source
    CONNECT_TIMEOUT_SECONDS: float = 30.0

    # Clips: one compressed file per utterance, removed once dispatched
    RECORDING_DIR: str = "./recordings"
    CLIP_FORMAT: str = "mp3"
    CLIP_CODEC: str = "libmp3lame"
    CLIP_QUALITY: str = "6"  # ffmpeg -q:a (VBR, 0 best .. 9 worst)
    FFMPEG_BIN: str = "ffmpeg"

    # ASR backend: "remote" (OpenAI-compatible HTTP) | "local" (faster-whisper)
    ASR_BACKEND: Literal["remote", "local"] = "remote"

    # Remote Whisper (when ASR_BACKEND=remote)
    WHISPER_API_URL: str = "https://api.ai.sakura.ad.jp/v1/audio/transcriptions"
    WHISPER_API_KEY: str = ""
    WHISPER_MODEL: str = "whisper-large-v3-turbo"
    WHISPER_LANGUAGE: str = "ja"
    WHISPER_TIMEOUT_SECONDS: float = 30.0

    # Local Whisper (when ASR_BACKEND=local); model loaded once at startup
    LOCAL_WHISPER_MODEL: str = "base"  # base | small | medium | large-v3
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    LOCAL_WHISPER_BEAM_SIZE: int = 5

    # Speaker labels: "realtime" resolves per utterance, "batch" once at session end
    LABEL_RESOLUTION: Literal["realtime", "batch"] = "realtime"
    # JSON object, e.g. {"1234": "Alice"}
    SPEAKER_NAMES: dict[str, str] = {}

    # Minutes: one markdown file per session, append-only
    MINUTES_DIR: str = "./minutes"
    MINUTES_TITLE_PREFIX: str = "Minutes"
    MINUTES_BASE_URL: str = ""  # e.g. https://scrapbox.io/myproject/ ; empty = file path only

    # Summary of the whole transcript when the session completes
    SUMMARY_ENABLED: bool = False
    SUMMARY_API_URL: str = "https://api.ai.sakura.ad.jp/v1/chat/completions"
    SUMMARY_API_KEY: str = ""
    SUMMARY_MODEL: str = "gpt-oss-120b"
    SUMMARY_TIMEOUT_SECONDS: float = 60.0

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also log to file (empty = console only).
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
