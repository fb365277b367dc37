"""Controller safety-interlock collaborator.

Pin-level drivers live outside this package; the service only depends on the
``ControllerGpio`` contract below. ``DisabledGpio`` is used when GPIO support is
turned off in the configuration.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from .errors import GpioDisabledError

LOGGER = logging.getLogger(__name__)


class ControllerGpio(Protocol):
    """Minimal contract for the controller reset/stop/ready lines."""

    async def open(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def is_controller_ready(self) -> bool:
        """Whether the controller can accept a command right now."""
        ...

    async def send_controller_reset(self) -> None:
        ...

    async def send_controller_stop(self) -> None:
        ...

    async def get_controller_state(self) -> Optional[Dict[str, Any]]:
        ...


class DisabledGpio:
    """Stand-in used when GPIO is disabled: always ready, never drives pins."""

    enabled = False

    async def open(self) -> None:
        LOGGER.info("Gpio is disabled")

    async def close(self) -> None:
        return None

    async def is_controller_ready(self) -> bool:
        return True

    async def send_controller_reset(self) -> None:
        raise GpioDisabledError("gpio not enabled")

    async def send_controller_stop(self) -> None:
        raise GpioDisabledError("gpio not enabled")

    async def get_controller_state(self) -> Optional[Dict[str, Any]]:
        return None
