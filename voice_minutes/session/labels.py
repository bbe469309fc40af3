"""
Speaker label resolution: speaker id -> human-readable display name.

A resolver may fail in any way (unknown id, lookup error); resolve_label() turns
every failure into the fallback label so transcription dispatch is never blocked.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Mapping

logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "User_"


class LabelLookupError(LookupError):
    """Raised by a resolver that has no name for the speaker."""


def fallback_label(speaker_id: str) -> str:
    return f"{FALLBACK_PREFIX}{speaker_id}"


class LabelResolver(ABC):
    @abstractmethod
    async def resolve(self, speaker_id: str) -> str:
        """Return the display name, or raise."""
        ...


class StaticLabelResolver(LabelResolver):
    """Names from a fixed mapping (SPEAKER_NAMES)."""

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = dict(names or {})

    async def resolve(self, speaker_id: str) -> str:
        name = (self._names.get(speaker_id) or "").strip()
        if not name:
            raise LabelLookupError(speaker_id)
        return name


async def resolve_label(resolver: LabelResolver | None, speaker_id: str) -> str:
    """Display name for speaker_id; fallback label on any resolver failure."""
    if resolver is None:
        return fallback_label(speaker_id)
    try:
        name = await resolver.resolve(speaker_id)
    except LabelLookupError:
        logger.debug("No display name for %s", speaker_id)
        return fallback_label(speaker_id)
    except Exception as e:
        logger.warning("Label lookup failed for %s: %s", speaker_id, e)
        return fallback_label(speaker_id)
    return (name or "").strip() or fallback_label(speaker_id)
