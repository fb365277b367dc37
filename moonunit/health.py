"""Liveness reporting for the gauger service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiohttp import web

LOGGER = logging.getLogger(__name__)

DetailProvider = Callable[[], Awaitable[Dict[str, Any]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ComponentStatus:
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=_now)

    def as_dict(self, name: str) -> Dict[str, Any]:
        return {
            "name": name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Collects the health of the gauger link, the GPIO lines and the agent.

    The overall status is ``ok`` only while every component and the agent
    state are healthy.
    """

    def __init__(self) -> None:
        self._components: Dict[str, ComponentStatus] = {}
        self._agent: Optional[ComponentStatus] = None
        self._lock = asyncio.Lock()

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            previous = self._components.get(name)
            self._components[name] = ComponentStatus(healthy, detail)

        if previous is not None and previous.healthy != healthy:
            LOGGER.info(
                "Component %s is now %s (%s)",
                name,
                "healthy" if healthy else "unhealthy",
                detail or "-",
            )

    async def set_agent_state(
        self, state: str, *, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            self._agent = ComponentStatus(healthy, detail or state)

    async def snapshot(self) -> Dict[str, Any]:
        async with self._lock:
            components: List[Dict[str, Any]] = [
                status.as_dict(name) for name, status in self._components.items()
            ]
            agent = self._agent

        healthy = all(item["healthy"] for item in components)
        payload: Dict[str, Any] = {"components": components}
        if agent is not None:
            healthy = healthy and agent.healthy
            payload["agentState"] = {
                "state": agent.detail,
                "healthy": agent.healthy,
                "updatedAt": agent.updated_at.isoformat(timespec="seconds"),
            }
        payload["status"] = "ok" if healthy else "degraded"
        return payload


class HealthServer:
    """Serves ``GET /healthz`` with aiohttp: 200 when healthy, 503 otherwise.

    When a ``detail_provider`` is given its result (the service status
    snapshot) is attached under the ``gauger`` key.
    """

    def __init__(
        self,
        reporter: HealthReporter,
        host: str,
        port: int,
        *,
        detail_provider: Optional[DetailProvider] = None,
    ) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._detail_provider = detail_provider
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually listened on, useful when configured with port 0."""
        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz",
            self._host,
            self.bound_port or self._port,
        )

    async def stop(self) -> None:
        site, runner = self._site, self._runner
        self._site = None
        self._runner = None
        if site is not None:
            with contextlib.suppress(RuntimeError):
                await site.stop()
        if runner is not None:
            await runner.cleanup()

    async def _handle_health(self, request: web.Request) -> web.Response:
        payload = await self._reporter.snapshot()
        if self._detail_provider is not None:
            try:
                payload["gauger"] = await self._detail_provider()
            except Exception as exc:
                LOGGER.warning("Health detail provider failed: %s", exc)
                payload["gauger"] = {"error": str(exc)}
        return web.json_response(
            payload, status=200 if payload["status"] == "ok" else 503
        )
