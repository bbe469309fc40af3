"""Run the API server: python -m voice_minutes"""
import logging

import uvicorn

from voice_minutes.config import get_settings


def main() -> None:
    settings = get_settings()
    logging.getLogger(__name__).info("Starting voice-minutes on %s:%s", settings.HOST, settings.PORT)
    uvicorn.run(
        "voice_minutes.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
