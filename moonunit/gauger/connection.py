"""Open/close lifecycle of the gauger connection.

The manager owns the device transport and drives the connection through
``closed -> opening -> open_pending_handshake -> streaming``. Closing from any
state stops the dispatcher, abandons every queued and outstanding job and
clears the motor controller status.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Callable, List, Optional

from ..config import GaugerConfig
from ..core.models import CommandJob, CommandResult
from ..core.protocols import DeviceTransport, TransportOpener
from ..errors import DeviceClosedError, DeviceIOError
from .dispatcher import DispatchLoop
from .router import ResponseRouter
from .session import GaugerSession

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle state of the gauger connection."""

    CLOSED = "closed"
    OPENING = "opening"
    OPEN_PENDING_HANDSHAKE = "open_pending_handshake"
    STREAMING = "streaming"


StateListener = Callable[[ConnectionState], None]
LostListener = Callable[[Optional[Exception]], None]


class ConnectionManager:
    """Coordinates the device transport, dispatcher and router for one device."""

    def __init__(
        self,
        config: GaugerConfig,
        session: GaugerSession,
        router: ResponseRouter,
        dispatcher: DispatchLoop,
        *,
        opener: TransportOpener,
        fail_pending_on_close: bool = True,
    ) -> None:
        self._config = config
        self._session = session
        self._router = router
        self._dispatcher = dispatcher
        self._opener = opener
        self._fail_pending_on_close = fail_pending_on_close

        self._state = ConnectionState.CLOSED
        self._transport: Optional[DeviceTransport] = None
        self._state_listeners: List[StateListener] = []
        self._lost_listeners: List[LostListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in (
            ConnectionState.OPEN_PENDING_HANDSHAKE,
            ConnectionState.STREAMING,
        )

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_lost_listener(self, listener: LostListener) -> None:
        """Register a callback for connection losses not caused by ``close``."""
        self._lost_listeners.append(listener)

    async def open(self) -> None:
        """Open the device, wait for it to settle and start streaming.

        Raises:
            DeviceOpenError: If the low-level open fails.
            DeviceIOError: If the input buffer cannot be flushed.
            DeviceClosedError: If the connection is closed while opening.
        """

        if self._state is not ConnectionState.CLOSED:
            self.close(reason="reopen")

        generation = self._session.next_generation()
        self._set_state(ConnectionState.OPENING)
        LOGGER.info("Opening gauger %s", self._config.url)

        try:
            transport = await self._opener(
                self._router.handle_line, partial(self._handle_lost, generation)
            )
        except Exception:
            if generation == self._session.generation:
                self._set_state(ConnectionState.CLOSED)
            raise

        if generation != self._session.generation:
            transport.close()
            raise DeviceClosedError("Gauger closed while opening")

        self._transport = transport
        LOGGER.info(
            "Gauger opened, delaying %.1fs", self._config.open_delay_seconds
        )
        await asyncio.sleep(self._config.open_delay_seconds)

        if generation != self._session.generation:
            raise DeviceClosedError("Gauger closed while opening")

        try:
            transport.reset_input_buffer()
        except Exception as exc:
            LOGGER.error("Failed to flush gauger input: %s", exc)
            self.close(reason="flush error")
            raise DeviceIOError(f"Flush error: {exc}") from exc

        self._dispatcher.start(
            transport, on_io_error=partial(self._handle_io_error, generation)
        )
        self._set_state(ConnectionState.OPEN_PENDING_HANDSHAKE)

        LOGGER.info("Setting gauger to streaming mode")
        self._session.enqueue(
            self._config.streaming_command,
            is_system=True,
            handler=partial(self._handle_streaming_ack, generation),
        )

    def close(self, *, reason: str = "requested") -> None:
        """Tear down the connection. Safe to call in any state."""

        self._session.next_generation()
        transport = self._transport
        self._transport = None

        if transport is not None:
            LOGGER.info("Closing gauger (%s)", reason)
            try:
                transport.close()
            except Exception as exc:
                LOGGER.warning("Error while closing gauger transport: %s", exc)

        self._dispatcher.stop()
        self._session.abandon_all(
            self._closed_error if self._fail_pending_on_close else None
        )
        self._session.telemetry.clear_status()
        self._set_state(ConnectionState.CLOSED)

    @staticmethod
    def _closed_error(job: CommandJob) -> BaseException:
        return DeviceClosedError(f"Device closed before job {job.id} completed", job_id=job.id)

    def _handle_streaming_ack(self, generation: int, result: CommandResult) -> None:
        if generation != self._session.generation:
            return
        if result.ok:
            LOGGER.info("Gauger acknowledges streaming mode")
        else:
            LOGGER.error("Failed to set gauger to streaming mode: %s", result.as_dict())
        self._set_state(ConnectionState.STREAMING)

    def _handle_io_error(self, generation: int, exc: Exception) -> None:
        if generation != self._session.generation:
            return
        self.close(reason=f"I/O error: {exc}")
        self._notify_lost(exc)

    def _handle_lost(self, generation: int, exc: Optional[Exception]) -> None:
        if generation != self._session.generation:
            return
        LOGGER.warning("Gauger connection lost: %s", exc or "closed by device")
        self._transport = None
        self.close(reason="connection lost")
        self._notify_lost(exc)

    def _notify_lost(self, exc: Optional[Exception]) -> None:
        for listener in list(self._lost_listeners):
            try:
                listener(exc)
            except Exception:
                LOGGER.exception("Connection-lost listener failed")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        LOGGER.debug("Gauger connection %s -> %s", previous.value, state.value)
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                LOGGER.exception("Connection state listener failed")
