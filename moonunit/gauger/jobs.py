"""Job id allocation, the outbound command queue and the pending job table."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Deque, Dict, Iterator, List, Optional

from ..constants import MAX_JOB_ID
from ..core.models import CommandJob

LOGGER = logging.getLogger(__name__)


class JobIdAllocator:
    """Monotonic job id counter that restarts at 1 past ``MAX_JOB_ID``."""

    def __init__(self, *, limit: int = MAX_JOB_ID) -> None:
        self._limit = limit
        self._last = 0

    def next_id(self) -> int:
        if self._last >= self._limit:
            LOGGER.debug("Job id counter wrapped after %d", self._last)
            self._last = 0
        self._last += 1
        return self._last


class CommandQueue:
    """FIFO buffer of jobs waiting to be written to the device."""

    def __init__(self) -> None:
        self._jobs: Deque[CommandJob] = deque()

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[CommandJob]:
        return iter(list(self._jobs))

    def push(self, job: CommandJob) -> None:
        self._jobs.append(job)

    def pop(self) -> Optional[CommandJob]:
        if not self._jobs:
            return None
        return self._jobs.popleft()

    def drain(self) -> List[CommandJob]:
        jobs = list(self._jobs)
        self._jobs.clear()
        return jobs


class DispatchState(str, Enum):
    """Single-flight state of the dispatcher."""

    IDLE = "idle"
    AWAITING_ACK = "awaiting_ack"


class JobTable:
    """Maps correlation ids to the jobs awaiting acknowledgement.

    The table and the single-flight state change together: registering a job
    moves the dispatcher to ``AWAITING_ACK`` and taking it back out returns it
    to ``IDLE``. At most one job is outstanding at any time.
    """

    def __init__(self) -> None:
        self._jobs: Dict[int, CommandJob] = {}
        self._state = DispatchState.IDLE
        self._timeout: Optional[asyncio.TimerHandle] = None

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is DispatchState.AWAITING_ACK

    @property
    def outstanding(self) -> Optional[CommandJob]:
        return next(iter(self._jobs.values()), None)

    def register(self, job: CommandJob) -> None:
        if self.busy:
            raise RuntimeError(f"Cannot register job {job.id}: another job is outstanding")
        self._jobs[job.id] = job
        self._state = DispatchState.AWAITING_ACK

    def arm_timeout(self, handle: asyncio.TimerHandle) -> None:
        self._cancel_timeout()
        self._timeout = handle

    def take(self, job_id: int) -> Optional[CommandJob]:
        """Remove and return the job for ``job_id``, releasing the dispatcher."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            return None
        self._cancel_timeout()
        self._state = DispatchState.IDLE
        return job

    def clear(self) -> List[CommandJob]:
        jobs = list(self._jobs.values())
        self._jobs.clear()
        self._cancel_timeout()
        self._state = DispatchState.IDLE
        return jobs

    def _cancel_timeout(self) -> None:
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None
