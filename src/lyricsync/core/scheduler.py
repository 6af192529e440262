"""Cancellable self-rescheduling loops for the sync engine.

Each loop run is tagged with an epoch. Cancelling or restarting bumps the
epoch, so a wakeup that belongs to a superseded run sees a stale epoch and
exits without touching engine state, even if it raced the cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)

# A step applies one update and returns the seconds to sleep before the
# next one, or None to end the loop.
Step = Callable[[int], "float | None"]


class GuardedLoop:
    """One periodic activity whose every wakeup is checked against its epoch."""

    def __init__(self, name: str, error_delay: float = 0.1):
        self.name = name
        self.error_delay = error_delay
        self._epoch = 0
        self._task: asyncio.Task | None = None

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def start(self, step: Step) -> int:
        """Supersede any current run and start a new one. Returns its epoch."""
        self.cancel()
        epoch = self._epoch
        self._task = asyncio.get_running_loop().create_task(
            self._run(epoch, step), name=f"{self.name}-{epoch}"
        )
        return epoch

    def cancel(self) -> None:
        self._epoch += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, epoch: int, step: Step) -> None:
        while self.is_current(epoch):
            try:
                delay = step(epoch)
            except Exception:
                # One failed wakeup must not end the schedule.
                logger.exception("%s step failed", self.name)
                delay = self.error_delay
            if delay is None:
                return
            await asyncio.sleep(delay)
