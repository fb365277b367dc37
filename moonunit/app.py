"""Main application entry-point for moonunit."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum
from typing import Any, Awaitable, Optional, Set

from .config import MoonUnitConfig, load_config
from .core.protocols import TransportOpener
from .gauger import ConnectionState, GaugerService
from .gpio import ControllerGpio
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .reconnect import ReconnectReason, ReconnectSupervisor

LOGGER = logging.getLogger(__name__)


class AgentState(str, Enum):
    COLD_START = "cold_start"
    AWAITING_DEVICE = "awaiting_device"
    ACTIVE = "active"
    DEGRADED = "degraded"
    STOPPING = "stopping"


_CONNECTION_AGENT_STATES = {
    ConnectionState.CLOSED: AgentState.DEGRADED,
    ConnectionState.OPENING: AgentState.AWAITING_DEVICE,
    ConnectionState.OPEN_PENDING_HANDSHAKE: AgentState.AWAITING_DEVICE,
    ConnectionState.STREAMING: AgentState.ACTIVE,
}


class GaugerApp:
    """Coordinates application startup and shutdown.

    Owns the gauger service, the GPIO collaborator, the optional health
    endpoint and the reconnect supervisor. The GPIO implementation and the
    transport opener can be injected for testing or for pin-level drivers.
    """

    def __init__(
        self,
        config: Optional[MoonUnitConfig] = None,
        *,
        gpio: Optional[ControllerGpio] = None,
        opener: Optional[TransportOpener] = None,
    ) -> None:
        self._config = config or load_config()
        self._service = GaugerService(self._config, gpio=gpio, opener=opener)
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._supervisor: Optional[ReconnectSupervisor] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state = AgentState.COLD_START
        self._stopping = False
        self._background: Set[asyncio.Task[Any]] = set()

    @property
    def service(self) -> GaugerService:
        return self._service

    @property
    def state(self) -> AgentState:
        return self._state

    @classmethod
    def start(cls, config: Optional[MoonUnitConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            quiet=instance._config.logging.quiet,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("moonunit received shutdown signal")

    async def run(self) -> None:
        """Start services and wait until shutdown is requested."""

        self._shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.request_shutdown)

        LOGGER.info("moonunit starting with config: %s", self._config.path)
        started = await self._start_services()
        if not started:
            LOGGER.warning("Gauger not connected at startup; running in degraded mode")

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("moonunit received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def connect(self) -> None:
        """Explicitly open the gauger and re-enable automatic reopening."""
        if self._supervisor is not None:
            self._supervisor.resume()
        await self._service.connect()

    def disconnect(self) -> None:
        """Explicitly close the gauger; no automatic reopen follows."""
        if self._supervisor is not None:
            self._supervisor.suspend()
        self._service.disconnect()

    async def _start_services(self) -> bool:
        await self._transition_state(AgentState.COLD_START, detail="initialising")
        self._stopping = False

        await self._health.update("gauger", False, "initialising")
        self._service.connection.add_state_listener(self._on_connection_state)
        self._service.connection.add_lost_listener(self._on_connection_lost)

        try:
            await self._service.gpio.open()
        except Exception as exc:
            LOGGER.error("Failed to open gpio: %s", exc)
            await self._health.update("gpio", False, str(exc))
        else:
            await self._health.update(
                "gpio", True, "enabled" if self._config.gpio.enabled else "disabled"
            )

        if self._config.resilience.health_enabled:
            await self._start_health_server()

        if self._config.resilience.reconnect_enabled:
            self._supervisor = ReconnectSupervisor(
                self._service.connection, self._config.resilience
            )
            self._supervisor.start()

        try:
            await self._service.connect()
        except Exception as exc:
            LOGGER.error("Failed to open gauger: %s", exc)
            await self._health.update("gauger", False, str(exc))
            await self._transition_state(AgentState.DEGRADED, detail=str(exc))
            if self._supervisor is not None:
                self._supervisor.request_reconnect(ReconnectReason.OPEN_FAILED)
            return False

        return True

    async def _start_health_server(self) -> None:
        resilience = self._config.resilience
        self._health_server = HealthServer(
            self._health,
            resilience.health_host,
            resilience.health_port,
            detail_provider=self._service.status,
        )
        try:
            await self._health_server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            self._health_server = None

    async def _stop_services(self) -> None:
        self._stopping = True
        await self._transition_state(AgentState.STOPPING)
        LOGGER.info("Shutting down")

        if self._supervisor is not None:
            await self._supervisor.stop()
            self._supervisor = None

        await self._service.aclose()

        try:
            await self._service.gpio.close()
        except Exception as exc:
            LOGGER.warning("Failed to close gpio: %s", exc)

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _transition_state(
        self, state: AgentState, *, detail: Optional[str] = None
    ) -> None:
        previous = self._state
        self._state = state
        if previous != state:
            LOGGER.info(
                "Agent state transition %s -> %s (%s)",
                previous.value,
                state.value,
                detail or state.value,
            )
        await self._health.set_agent_state(
            state.value, healthy=state == AgentState.ACTIVE, detail=detail or state.value
        )

    def _on_connection_state(self, state: ConnectionState) -> None:
        if self._stopping:
            return
        self._spawn(
            self._health.update(
                "gauger", state is ConnectionState.STREAMING, state.value
            )
        )
        self._spawn(
            self._transition_state(_CONNECTION_AGENT_STATES[state], detail=state.value)
        )

    def _on_connection_lost(self, exc: Optional[Exception]) -> None:
        if self._stopping or self._supervisor is None:
            return
        self._supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
