"""Exception hierarchy for the gauger service."""

from __future__ import annotations

from typing import Optional


class GaugerError(RuntimeError):
    """Base class for gauger service failures."""


class ConfigurationError(GaugerError):
    """Raised when the configuration cannot be used."""


class DeviceOpenError(GaugerError):
    """Raised when the serial device cannot be opened."""

    def __init__(self, port: str, reason: str) -> None:
        super().__init__(f"Failed to open gauger on {port}: {reason}")
        self.port = port
        self.reason = reason


class DeviceIOError(GaugerError):
    """Raised when writing to or flushing the device fails."""


class DeviceClosedError(GaugerError):
    """Raised for commands abandoned because the device connection closed."""

    def __init__(self, message: str = "Device closed", *, job_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class ControllerNotReadyError(GaugerError):
    """Raised when the controller reports it cannot accept commands."""


class GpioDisabledError(GaugerError):
    """Raised for GPIO operations while GPIO support is disabled."""
