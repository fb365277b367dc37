"""Periodic single-flight pump writing queued jobs to the gauger."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional

from ..core.models import CommandJob, CommandResult
from ..core.protocols import DeviceTransport
from ..errors import DeviceIOError
from .codes import DeviceCode, describe_status
from .session import GaugerSession

LOGGER = logging.getLogger(__name__)

IdleJobFactory = Callable[[], Optional[CommandJob]]
IOErrorCallback = Callable[[Exception], None]

TIMEOUT_RESULT = CommandResult(
    status=DeviceCode.COMMAND_TIMEOUT,
    message=describe_status(DeviceCode.COMMAND_TIMEOUT),
)


def frame_command(job: CommandJob) -> bytes:
    """Encode ``:<id><body>`` for the wire."""
    return job.framed.encode("utf-8")


class DispatchLoop:
    """Sends at most one job at a time and waits for it to settle.

    Every ``period`` seconds the loop pops the head of the queue, registers it
    in the job table, arms its timeout and writes it. Nothing else writes to
    the device. A job settles when the router completes it, its timeout
    expires, or the connection is torn down.
    """

    def __init__(
        self,
        session: GaugerSession,
        *,
        period: float = 0.1,
        command_timeout: float = 5.0,
        idle_job: Optional[IdleJobFactory] = None,
    ) -> None:
        self._session = session
        self._period = max(0.001, period)
        self._command_timeout = command_timeout
        self._idle_job = idle_job
        self._transport: Optional[DeviceTransport] = None
        self._on_io_error: Optional[IOErrorCallback] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        transport: DeviceTransport,
        *,
        on_io_error: Optional[IOErrorCallback] = None,
    ) -> None:
        self.stop()
        self._transport = transport
        self._on_io_error = on_io_error
        LOGGER.info(
            "Initializing gauger worker to run every %.0f ms", self._period * 1000
        )
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        self._transport = None
        self._on_io_error = None
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def wait_stopped(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                LOGGER.exception("Gauger worker tick failed")
            await asyncio.sleep(self._period)

    def tick(self) -> Optional[CommandJob]:
        """Dispatch the next job if the device is free. Returns the job sent."""

        jobs = self._session.jobs
        if jobs.busy or self._transport is None:
            return None

        job = self._next_job()
        if job is None:
            return None

        jobs.register(job)
        if self._command_timeout > 0:
            loop = asyncio.get_running_loop()
            jobs.arm_timeout(
                loop.call_later(self._command_timeout, self._expire, job.id)
            )

        try:
            self._transport.write(frame_command(job))
        except Exception as exc:
            LOGGER.error("Failed to write gauger job %d: %s", job.id, exc)
            jobs.take(job.id)
            job.fail(DeviceIOError(f"Failed to write gauger job {job.id}: {exc}"))
            callback = self._on_io_error
            if callback is not None:
                callback(exc)
            return None

        LOGGER.debug("Sent gauger job %d", job.id)
        return job

    def _next_job(self) -> Optional[CommandJob]:
        queue = self._session.queue
        while True:
            job = queue.pop()
            if job is None:
                break
            if job.future is not None and job.future.cancelled():
                LOGGER.debug("Skipping cancelled gauger job %d", job.id)
                job.abandon()
                continue
            return job

        if self._idle_job is None:
            return None
        return self._idle_job()

    def _expire(self, job_id: int) -> None:
        job = self._session.jobs.take(job_id)
        if job is None:
            return

        LOGGER.warning(
            "Gauger job %d timed out after %.1fs", job_id, self._command_timeout
        )
        try:
            job.complete(TIMEOUT_RESULT)
        except Exception:
            LOGGER.exception("Timeout handler for gauger job %d failed", job_id)
