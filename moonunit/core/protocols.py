"""Protocol definitions for the device transport and job callbacks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Protocol

if TYPE_CHECKING:
    from .models import CommandResult


CompletionHandler = Callable[["CommandResult"], None]
LineCallback = Callable[[str], None]
LostCallback = Callable[[Optional[Exception]], None]


class DeviceTransport(Protocol):
    """Minimal contract for the byte stream attached to the gauger."""

    def write(self, data: bytes) -> None:
        """Queue bytes for transmission to the device."""
        ...

    def reset_input_buffer(self) -> None:
        """Discard any bytes received but not yet read."""
        ...

    def close(self) -> None:
        """Close the underlying stream."""
        ...

    def is_closing(self) -> bool:
        ...


TransportOpener = Callable[[LineCallback, LostCallback], Awaitable[DeviceTransport]]
