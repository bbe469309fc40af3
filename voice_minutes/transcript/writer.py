"""
MinutesWriter: session minutes as an append-only markdown page on disk.

- One file per session, named after the session's routing token (page title).
- Header with the start time on start(); one line per utterance:
  [HH:MM:SS] **Label**: text
- A worker task drains a queue so publish() never blocks on file I/O.
- complete(): optional summary section, footer, and (batch label mode) rewrite of
  fallback labels to resolved display names.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import datetime
from typing import TYPE_CHECKING, Mapping, Optional
from urllib.parse import quote

from voice_minutes.config import Settings, get_settings
from voice_minutes.session.labels import fallback_label
from voice_minutes.transcript.publisher import Publisher

if TYPE_CHECKING:
    from voice_minutes.services.summarizer import Summarizer
    from voice_minutes.session.models import Session

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def minutes_page_title(date: datetime | None = None, prefix: str | None = None) -> str:
    """Default page title for a session started on date: '<prefix> YYYY-MM-DD'."""
    date = date or datetime.now()
    prefix = prefix if prefix is not None else get_settings().MINUTES_TITLE_PREFIX
    return f"{prefix} {date.strftime('%Y-%m-%d')}".strip()


def format_minutes_entry(label: str, text: str, timestamp: datetime | None = None) -> str:
    """One transcript line: [HH:MM:SS] **label**: text"""
    timestamp = timestamp or datetime.now()
    return f"[{timestamp.strftime('%H:%M:%S')}] **{label}**: {text.strip()}"


def page_url(title: str, settings: Settings | None = None) -> str:
    """Public URL of the page when MINUTES_BASE_URL is set, else the local file path."""
    settings = settings or get_settings()
    if settings.MINUTES_BASE_URL:
        return settings.MINUTES_BASE_URL.rstrip("/") + "/" + quote(title, safe="")
    return os.path.abspath(minutes_path(title, settings))


def minutes_path(title: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    stem = _UNSAFE_FILENAME.sub("_", title).strip() or "minutes"
    return os.path.join(settings.MINUTES_DIR, f"{stem}.md")


class MinutesWriter(Publisher):
    def __init__(self, settings: Settings | None = None, summarizer: Optional["Summarizer"] = None) -> None:
        self._settings = settings or get_settings()
        self._summarizer = summarizer
        self._path: Optional[str] = None
        self._file = None
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._entries: list[str] = []

    @property
    def path(self) -> Optional[str]:
        return self._path

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    async def _worker(self) -> None:
        """Drain queue: write each line (append + newline + flush). None = close. Log errors, never crash."""
        while True:
            line = await self._queue.get()
            if line is None:
                break
            if self._file is None:
                continue
            try:
                self._file.write(line + "\n")
                self._file.flush()
            except OSError as e:
                logger.warning("Minutes write failed for %s: %s", self._path, e)
        try:
            if self._file is not None:
                self._file.close()
        except OSError as e:
            logger.warning("Minutes close failed for %s: %s", self._path, e)
        finally:
            self._file = None

    async def start(self, session: "Session") -> None:
        if self._worker_task is not None:
            return
        self._entries = []
        self._path = minutes_path(session.routing_token, self._settings)
        try:
            os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            logger.warning("Minutes file open failed for %s: %s", self._path, e)
        self._worker_task = asyncio.create_task(self._worker())
        self._queue.put_nowait(f"# {session.routing_token}")
        self._queue.put_nowait(f"Started: {session.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
        self._queue.put_nowait("")
        logger.info("Minutes started: %s", self._path)

    async def publish(self, label: str, text: str, timestamp: datetime) -> None:
        text = (text or "").strip()
        if not text or self._worker_task is None:
            return
        line = format_minutes_entry(label, text, timestamp)
        self._entries.append(line)
        self._queue.put_nowait(line)

    async def complete(self, session: "Session", labels: Mapping[str, str] | None = None) -> None:
        if self._worker_task is None:
            return
        if self._summarizer is not None and self._entries:
            summary = await self._summarizer.summarize("\n".join(self._entries))
            if summary:
                self._queue.put_nowait("")
                self._queue.put_nowait("## Summary")
                for line in summary.strip().splitlines():
                    self._queue.put_nowait(line)
        ended = session.ended_at or datetime.now()
        self._queue.put_nowait("")
        self._queue.put_nowait(f"Ended: {ended.strftime('%Y-%m-%d %H:%M:%S')}")
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(self._worker_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None
        if labels:
            self._apply_labels(labels)
        logger.info("Minutes complete: %s", page_url(session.routing_token, self._settings))

    def _apply_labels(self, labels: Mapping[str, str]) -> None:
        """Batch label pass: replace fallback labels with resolved names in the written file."""
        if not self._path:
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                content = f.read()
            for speaker_id, name in labels.items():
                content = content.replace(f"**{fallback_label(speaker_id)}**", f"**{name}**")
            with open(self._path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.warning("Could not apply speaker labels to %s: %s", self._path, e)
