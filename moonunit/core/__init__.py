"""Core primitives for moonunit."""

from .models import CommandJob, CommandResult
from .protocols import CompletionHandler, DeviceTransport, LineCallback

__all__ = [
    "CommandJob",
    "CommandResult",
    "CompletionHandler",
    "DeviceTransport",
    "LineCallback",
]
