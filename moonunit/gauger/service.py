"""Gauger service facade used by the application and outer layers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from functools import partial
from typing import Any, Dict, Optional

from ..config import MoonUnitConfig
from ..core.models import CommandJob, CommandResult
from ..core.protocols import CompletionHandler, TransportOpener
from ..errors import ControllerNotReadyError, GaugerError, GpioDisabledError
from ..gpio import ControllerGpio, DisabledGpio
from .connection import ConnectionManager, ConnectionState
from .dispatcher import DispatchLoop
from .router import ResponseRouter
from .session import GaugerSession
from .telemetry import TelemetryDecodeError, decode_position_report
from .transport import open_serial_transport

LOGGER = logging.getLogger(__name__)


class GaugerService:
    """Queues commands for the gauger and exposes its decoded status.

    ``enqueue_command`` resolves once the device acknowledges the command or
    its timeout expires. If the connection closes first, the awaiting caller
    gets ``DeviceClosedError`` (or waits forever when
    ``fail_pending_on_close`` is disabled, so callers should apply their own
    timeout in that mode).
    """

    def __init__(
        self,
        config: MoonUnitConfig,
        *,
        gpio: Optional[ControllerGpio] = None,
        opener: Optional[TransportOpener] = None,
    ) -> None:
        self._config = config
        self.session = GaugerSession()
        self.router = ResponseRouter(self.session)

        commands = config.commands
        self.dispatcher = DispatchLoop(
            self.session,
            period=config.gauger.worker_delay_seconds,
            command_timeout=commands.timeout_seconds,
            idle_job=self._position_poll_job if commands.poll_position_when_idle else None,
        )
        self.connection = ConnectionManager(
            config.gauger,
            self.session,
            self.router,
            self.dispatcher,
            opener=opener or partial(open_serial_transport, config.gauger),
            fail_pending_on_close=commands.fail_pending_on_close,
        )
        self.gpio: ControllerGpio = gpio or DisabledGpio()

        self._last_position_poll: Optional[float] = None
        self._reopen_task: Optional[asyncio.Task[None]] = None

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def submit(
        self,
        body: str,
        *,
        is_system: bool = False,
        handler: Optional[CompletionHandler] = None,
    ) -> CommandJob:
        """Queue ``body`` and return the job without waiting for it."""

        future: asyncio.Future[CommandResult] = asyncio.get_running_loop().create_future()
        return self.session.enqueue(
            body, is_system=is_system, handler=handler, future=future
        )

    async def enqueue_command(self, body: str) -> CommandResult:
        job = self.submit(body)
        assert job.future is not None
        return await job.future

    async def controller_command(self, body: str) -> CommandResult:
        if not await self.gpio.is_controller_ready():
            raise ControllerNotReadyError("not ready")
        return await self.enqueue_command(body)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        if self.is_connected:
            raise GaugerError("Device already connected")
        await self.connection.open()

    def disconnect(self) -> None:
        self.connection.close(reason="requested")

    # ------------------------------------------------------------------
    # Controller interlock
    # ------------------------------------------------------------------
    async def reset_controller(self) -> None:
        """Send a reset, then reopen the device after the configured delay."""

        self._require_gpio()
        self.disconnect()
        LOGGER.info("Sending reset")
        await self.gpio.send_controller_reset()

        delay = self._config.gpio.reset_delay_seconds
        LOGGER.info("Reset sent, delaying %.1fs to reopen", delay)
        self._cancel_reopen()
        self._reopen_task = asyncio.create_task(self._reopen_after(delay))

    async def stop_controller(self) -> None:
        self._require_gpio()
        await self.gpio.send_controller_stop()

    async def controller_state(self) -> Optional[Dict[str, Any]]:
        self._require_gpio()
        return await self.gpio.get_controller_state()

    async def status(self) -> Dict[str, Any]:
        controller_state = await self.gpio.get_controller_state()
        telemetry = self.session.telemetry.as_dict()
        connected = self.is_connected
        return {
            "controllerState": controller_state,
            "position": telemetry["position"],
            "orientation": telemetry["orientation"],
            "limitsEnabled": telemetry["limitsEnabled"],
            "isGaugerConnected": connected,
            "isOrientationCalibrated": telemetry["isOrientationCalibrated"],
            "gaugerConnectedStatus": "Connected" if connected else "Disconnected",
            "gpsCoords": telemetry["gpsCoords"],
            "magHeading": telemetry["magHeading"],
            "declinationAngle": telemetry["declinationAngle"],
            "connectionState": self.connection_state.value,
            "pendingJobs": self.session.pending_count,
        }

    async def aclose(self) -> None:
        self._cancel_reopen()
        if self._reopen_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._reopen_task
            self._reopen_task = None
        self.disconnect()
        await self.dispatcher.wait_stopped()

    def _require_gpio(self) -> None:
        if not self._config.gpio.enabled:
            raise GpioDisabledError("gpio not enabled")

    def _cancel_reopen(self) -> None:
        if self._reopen_task is not None and not self._reopen_task.done():
            self._reopen_task.cancel()

    async def _reopen_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.connection.open()
        except Exception as exc:
            LOGGER.error("Failed to reopen gauger after reset: %s", exc)

    # ------------------------------------------------------------------
    # Idle position polling
    # ------------------------------------------------------------------
    def _position_poll_job(self) -> Optional[CommandJob]:
        now = time.monotonic()
        interval = self._config.commands.position_poll_seconds
        if self._last_position_poll is not None and now - self._last_position_poll < interval:
            return None
        self._last_position_poll = now
        return self.session.new_job(
            self._config.commands.position_command,
            is_system=True,
            handler=self._handle_position_report,
        )

    def _handle_position_report(self, result: CommandResult) -> None:
        if not result.ok:
            if not self._config.gauger.mock:
                LOGGER.error("Failed to get positions: %s", result.as_dict())
            return

        try:
            update = decode_position_report(result.body)
        except TelemetryDecodeError as exc:
            LOGGER.warning("Failed to decode position report %r: %s", result.body, exc)
            return
        self.session.telemetry.apply(update)
