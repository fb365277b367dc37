"""Command dispatch and response correlation for the gauger."""

from .codes import DEVICE_CODES, DeviceCode, describe_status
from .connection import ConnectionManager, ConnectionState
from .dispatcher import DispatchLoop, frame_command
from .jobs import CommandQueue, DispatchState, JobIdAllocator, JobTable
from .router import AckFormatError, ResponseRouter, parse_ack_result
from .service import GaugerService
from .session import GaugerSession
from .telemetry import (
    TelemetryDecodeError,
    TelemetryState,
    TelemetryUpdate,
    decode_position_report,
    decode_telemetry,
)

__all__ = [
    "AckFormatError",
    "CommandQueue",
    "ConnectionManager",
    "ConnectionState",
    "DEVICE_CODES",
    "DeviceCode",
    "DispatchLoop",
    "DispatchState",
    "GaugerService",
    "GaugerSession",
    "JobIdAllocator",
    "JobTable",
    "ResponseRouter",
    "TelemetryDecodeError",
    "TelemetryState",
    "TelemetryUpdate",
    "decode_position_report",
    "decode_telemetry",
    "describe_status",
    "frame_command",
    "parse_ack_result",
]
