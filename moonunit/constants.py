"""Constants used across the moonunit package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "moonunit"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".moonunit" / DEFAULT_CONFIG_FILENAME

DEFAULT_GAUGER_PORT = "/dev/ttyACM0"
DEFAULT_GAUGER_BAUD_RATE = 9600
MOCK_GAUGER_URL = "loop://"

# Device protocol framing
ACK_PREFIX = "ACK:"
COMMAND_PREFIX = ":"
FIELD_SEPARATOR = "|"
LINE_TERMINATOR = "\n"

# Numeric placeholder the device reports when a reading is unavailable
DEG_NULL = 1000.0

# Job ids restart from 1 once the counter passes this value
MAX_JOB_ID = 2 * 1000 * 1000 * 1000

DEFAULT_STREAMING_COMMAND = ":71 2;\n"
DEFAULT_POSITION_COMMAND = ":15 ;\n"
