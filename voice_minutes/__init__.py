"""voice-minutes: per-speaker capture and transcription of live voice sessions."""
