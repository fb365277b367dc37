"""Mutable state shared by the dispatcher, router and connection manager."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..core.models import CommandJob, CommandResult
from ..core.protocols import CompletionHandler
from .jobs import CommandQueue, JobIdAllocator, JobTable
from .telemetry import TelemetryState

LOGGER = logging.getLogger(__name__)

AbandonReason = Callable[[CommandJob], Optional[BaseException]]


@dataclass(slots=True)
class GaugerSession:
    """Single owner of the queue, job table and decoded telemetry.

    ``generation`` increments every time the device connection is opened or
    closed; callbacks captured for an older generation are ignored.
    """

    ids: JobIdAllocator = field(default_factory=JobIdAllocator)
    queue: CommandQueue = field(default_factory=CommandQueue)
    jobs: JobTable = field(default_factory=JobTable)
    telemetry: TelemetryState = field(default_factory=TelemetryState)
    generation: int = 0

    def new_job(
        self,
        body: str,
        *,
        is_system: bool = False,
        handler: Optional[CompletionHandler] = None,
        future: Optional[asyncio.Future[CommandResult]] = None,
    ) -> CommandJob:
        return CommandJob(
            id=self.ids.next_id(),
            body=body,
            is_system=is_system,
            handler=handler,
            future=future,
        )

    def enqueue(
        self,
        body: str,
        *,
        is_system: bool = False,
        handler: Optional[CompletionHandler] = None,
        future: Optional[asyncio.Future[CommandResult]] = None,
    ) -> CommandJob:
        job = self.new_job(body, is_system=is_system, handler=handler, future=future)
        self.queue.push(job)
        LOGGER.debug("Enqueuing gauger command %s", job.framed.strip())
        return job

    @property
    def pending_count(self) -> int:
        return len(self.queue) + len(self.jobs)

    def next_generation(self) -> int:
        self.generation += 1
        return self.generation

    def abandon_all(self, reason: Optional[AbandonReason] = None) -> int:
        """Drop every outstanding and queued job without invoking handlers.

        When ``reason`` is given, each job's future is failed with the
        exception it returns.
        """

        abandoned = self.jobs.clear() + self.queue.drain()
        for job in abandoned:
            job.abandon(reason(job) if reason is not None else None)
        if abandoned:
            LOGGER.info("Abandoned %d pending gauger job(s)", len(abandoned))
        return len(abandoned)
