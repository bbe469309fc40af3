"""
Publisher: downstream sink for transcribed utterances.

Lifecycle per session: start(session) -> publish(label, text, timestamp)* -> complete(session, labels).
Publishing is best-effort: CompositePublisher logs a failing sink and carries on
with the others, and never lets the error reach the dispatcher.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Mapping

if TYPE_CHECKING:
    from voice_minutes.session.models import Session

logger = logging.getLogger(__name__)


class Publisher(ABC):
    async def start(self, session: "Session") -> None:
        """Session started. Default: nothing to prepare."""

    @abstractmethod
    async def publish(self, label: str, text: str, timestamp: datetime) -> None:
        """One finished utterance."""
        ...

    async def complete(self, session: "Session", labels: Mapping[str, str] | None = None) -> None:
        """Session drained; the artifact is complete. labels: batch-resolved speaker id -> name."""


class LogPublisher(Publisher):
    """Writes each utterance to the log (console transcript)."""

    async def publish(self, label: str, text: str, timestamp: datetime) -> None:
        preview = text if len(text) <= 50 else text[:50] + "..."
        logger.info("[%s] %s: %s", timestamp.strftime("%H:%M:%S"), label, preview)


class CompositePublisher(Publisher):
    """Fans out to several publishers; one failing sink never affects the others."""

    def __init__(self, publishers: Iterable[Publisher]) -> None:
        self._publishers = list(publishers)

    @property
    def publishers(self) -> list[Publisher]:
        return list(self._publishers)

    async def start(self, session: "Session") -> None:
        for p in self._publishers:
            try:
                await p.start(session)
            except Exception as e:
                logger.warning("%s.start failed: %s", type(p).__name__, e)

    async def publish(self, label: str, text: str, timestamp: datetime) -> None:
        for p in self._publishers:
            try:
                await p.publish(label, text, timestamp)
            except Exception as e:
                logger.warning("%s.publish failed for %s: %s", type(p).__name__, label, e)

    async def complete(self, session: "Session", labels: Mapping[str, str] | None = None) -> None:
        for p in self._publishers:
            try:
                await p.complete(session, labels)
            except Exception as e:
                logger.warning("%s.complete failed: %s", type(p).__name__, e)
