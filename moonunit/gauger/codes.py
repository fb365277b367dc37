"""Status codes reported by the gauger in acknowledgement lines."""

from __future__ import annotations

from typing import Dict


class DeviceCode:
    OK = 0
    DEVICE_CLOSED = 1
    COMMAND_TIMEOUT = 2
    FLUSH_ERROR = 3
    MISSING_DELIMITER = 40
    INVALID_COMMAND = 44
    INVALID_MOTOR_ID = 45
    INVALID_DIRECTION = 46
    INVALID_STEPS = 47
    INVALID_SPEED = 48
    INVALID_PARAMETER = 49
    ORIENTATION_UNAVAILABLE = 50
    LIMITS_UNAVAILABLE = 51


DEVICE_CODES: Dict[int, str] = {
    DeviceCode.OK: "OK",
    DeviceCode.DEVICE_CLOSED: "Device closed",
    DeviceCode.COMMAND_TIMEOUT: "Command timeout",
    DeviceCode.FLUSH_ERROR: "Flush error",
    DeviceCode.MISSING_DELIMITER: "Missing : before command",
    DeviceCode.INVALID_COMMAND: "Invalid command",
    DeviceCode.INVALID_MOTOR_ID: "Invalid motorId",
    DeviceCode.INVALID_DIRECTION: "Invalid direction",
    DeviceCode.INVALID_STEPS: "Invalid steps/degrees",
    DeviceCode.INVALID_SPEED: "Invalid speed/acceleration",
    DeviceCode.INVALID_PARAMETER: "Invalid other parameter",
    DeviceCode.ORIENTATION_UNAVAILABLE: "Orientation unavailable",
    DeviceCode.LIMITS_UNAVAILABLE: "Limits unavailable",
}

UNKNOWN_STATUS_MESSAGE = "Unknown status"


def describe_status(status: int) -> str:
    return DEVICE_CODES.get(status, UNKNOWN_STATUS_MESSAGE)
