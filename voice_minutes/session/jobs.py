"""
JobTracker: the session's set of pending transcription jobs.

A job is registered as a task when dispatched and removed when it settles,
whatever the outcome. drain() waits on snapshots until the set is empty, so
jobs added while draining are waited for too.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class JobTracker:
    def __init__(self) -> None:
        self._jobs: set[asyncio.Task] = set()

    def track(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._jobs.add(task)
        task.add_done_callback(self._settle)
        return task

    def _settle(self, task: asyncio.Task) -> None:
        self._jobs.discard(task)
        if task.cancelled():
            logger.warning("Transcription job %s was cancelled", task.get_name())
            return
        err = task.exception()
        if err is not None:
            logger.error("Transcription job %s failed: %s", task.get_name(), err)

    def __len__(self) -> int:
        return len(self._jobs)

    def snapshot(self) -> list[asyncio.Task]:
        return list(self._jobs)

    async def drain(self) -> int:
        """Wait until no job is pending. Returns how many jobs were waited for."""
        waited = 0
        while self._jobs:
            batch = self.snapshot()
            waited += len(batch)
            logger.info("Waiting for %d pending transcription(s)", len(batch))
            await asyncio.gather(*batch, return_exceptions=True)
            # done callbacks run on the next loop iteration
            await asyncio.sleep(0)
        return waited
