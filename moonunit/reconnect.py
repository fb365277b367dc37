"""Automatic reopening of the gauger after unexpected connection loss.

Explicit disconnects never trigger a reopen; only losses reported by the
connection manager (or a failed open at startup) do. Reopen attempts are
serialised and spaced with exponential backoff and jitter.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .gauger.connection import ConnectionState

if TYPE_CHECKING:
    from .config import ResilienceConfig
    from .gauger.connection import ConnectionManager

LOGGER = logging.getLogger(__name__)


class ReconnectReason(str, Enum):
    """Reason for requesting a reopen."""

    CONNECTION_LOST = "connection_lost"
    """The device went away or reported an error."""

    OPEN_FAILED = "open_failed"
    """The initial open at startup failed."""


class ReconnectSupervisor:
    """Reopens the gauger connection in the background.

    Multiple requests while a reopen is already pending are coalesced.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        resilience_config: ResilienceConfig,
        *,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._connection = connection
        self._resilience = resilience_config
        self._max_attempts = max_attempts

        self._reconnect_event = asyncio.Event()
        self._stop_event = asyncio.Event()
        self._pending_reason: Optional[ReconnectReason] = None
        self._suspended = False
        self._supervisor_task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._supervisor_task is not None and not self._supervisor_task.done()

    def request_reconnect(self, reason: ReconnectReason) -> None:
        if self._stop_event.is_set() or self._suspended:
            return

        if self._pending_reason is None:
            LOGGER.debug("Reconnect requested: %s", reason.value)
        self._pending_reason = reason
        self._reconnect_event.set()

    @property
    def suspended(self) -> bool:
        return self._suspended

    def suspend(self) -> None:
        """Ignore reopen requests until ``resume``, e.g. after an explicit disconnect."""
        self._suspended = True
        self._pending_reason = None
        self._reconnect_event.clear()

    def resume(self) -> None:
        self._suspended = False

    def start(self) -> None:
        if self.running:
            LOGGER.warning("Reconnect supervisor already running")
            return

        self._stop_event.clear()
        self._supervisor_task = asyncio.create_task(self._supervision_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        self._reconnect_event.set()

        if self._supervisor_task is not None:
            self._supervisor_task.cancel()
            try:
                await self._supervisor_task
            except asyncio.CancelledError:
                pass
            self._supervisor_task = None

    async def _supervision_loop(self) -> None:
        while not self._stop_event.is_set():
            await self._reconnect_event.wait()
            self._reconnect_event.clear()

            if self._stop_event.is_set():
                break

            reason = self._pending_reason
            self._pending_reason = None
            if reason is None:
                continue

            LOGGER.info("Reopening gauger (reason=%s)", reason.value)
            reopened = await self._open_with_backoff()
            if not reopened and not (self._suspended or self._stop_event.is_set()):
                LOGGER.error(
                    "Failed to reopen gauger after all attempts, will retry on next trigger"
                )

    async def _open_with_backoff(self) -> bool:
        delay = max(0.05, self._resilience.reconnect_initial_seconds)
        max_delay = max(delay, self._resilience.reconnect_max_seconds)
        jitter_ratio = max(0.0, min(1.0, self._resilience.reconnect_jitter_ratio))

        attempt = 0
        while not self._stop_event.is_set() and not self._suspended:
            if self._max_attempts is not None and attempt >= self._max_attempts:
                return False
            attempt += 1

            sleep_for = delay
            if jitter_ratio > 0.0:
                jitter = delay * jitter_ratio
                sleep_for = random.uniform(max(0.01, delay - jitter), delay + jitter)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_for)
                break
            except asyncio.TimeoutError:
                pass

            if self._suspended:
                break
            if self._connection.state is not ConnectionState.CLOSED:
                # Someone else reopened the device in the meantime
                return True

            try:
                LOGGER.debug("Gauger reopen attempt %d", attempt)
                await self._connection.open()
                LOGGER.info("Gauger reopened after %d attempt(s)", attempt)
                return True
            except Exception as exc:
                LOGGER.warning(
                    "Gauger reopen attempt %d failed: %s, retrying in %.1fs",
                    attempt,
                    exc,
                    min(delay * 2, max_delay),
                )

            delay = min(delay * 2, max_delay)

        return False
