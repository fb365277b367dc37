"""Configuration loader for moonunit."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants
from .errors import ConfigurationError


@dataclass(slots=True)
class GaugerConfig:
    port: str = constants.DEFAULT_GAUGER_PORT
    baud_rate: int = constants.DEFAULT_GAUGER_BAUD_RATE
    mock: bool = False
    open_delay_seconds: float = 2.0  # Settle time after open before the first write
    worker_delay_seconds: float = 0.1  # Dispatch loop period
    streaming_command: str = constants.DEFAULT_STREAMING_COMMAND

    @property
    def url(self) -> str:
        return constants.MOCK_GAUGER_URL if self.mock else self.port


@dataclass(slots=True)
class CommandConfig:
    timeout_seconds: float = 5.0
    fail_pending_on_close: bool = True
    poll_position_when_idle: bool = False
    position_poll_seconds: float = 1.0
    position_command: str = constants.DEFAULT_POSITION_COMMAND


@dataclass(slots=True)
class GpioConfig:
    enabled: bool = False
    pin_controller_reset: int = 37
    pin_controller_stop: int = 35
    pin_controller_ready: int = 38
    pin_gauger_reset: int = 36
    reset_delay_seconds: float = 5.0  # How long to wait after reset to reopen the device


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    quiet: bool = False


@dataclass(slots=True)
class ResilienceConfig:
    reconnect_enabled: bool = True
    reconnect_initial_seconds: float = 1.0
    reconnect_max_seconds: float = 30.0
    reconnect_jitter_ratio: float = 0.5
    health_enabled: bool = False
    health_host: str = "127.0.0.1"
    health_port: int = 0


@dataclass(slots=True)
class MoonUnitConfig:
    gauger: GaugerConfig
    commands: CommandConfig
    gpio: GpioConfig
    logging: LoggingConfig
    resilience: ResilienceConfig
    raw: ConfigParser
    path: Path


def _command_text(value: str, default: str) -> str:
    text = value.strip()
    if not text:
        return default
    if not text.endswith(constants.LINE_TERMINATOR):
        text += constants.LINE_TERMINATOR
    return text


def _non_negative(parser: ConfigParser, section: str, key: str, default: float) -> float:
    try:
        value = parser.getfloat(section, key, fallback=default)
    except ValueError:
        value = default
    return max(0.0, value)


def _int(parser: ConfigParser, section: str, key: str, default: int) -> int:
    try:
        return parser.getint(section, key, fallback=default)
    except ValueError:
        return default


def load_config(path: Optional[Path] = None) -> MoonUnitConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser(interpolation=None)
    parser.read_dict(
        {
            "gauger": {
                "port": constants.DEFAULT_GAUGER_PORT,
                "baud_rate": str(constants.DEFAULT_GAUGER_BAUD_RATE),
                "mock": "false",
                "open_delay_seconds": "2.0",
                "worker_delay_seconds": "0.1",
                "streaming_command": constants.DEFAULT_STREAMING_COMMAND.strip(),
            },
            "commands": {
                "timeout_seconds": "5.0",
                "fail_pending_on_close": "true",
                "poll_position_when_idle": "false",
                "position_poll_seconds": "1.0",
                "position_command": constants.DEFAULT_POSITION_COMMAND.strip(),
            },
            "gpio": {
                "enabled": "false",
                "pin_controller_reset": "37",
                "pin_controller_stop": "35",
                "pin_controller_ready": "38",
                "pin_gauger_reset": "36",
                "reset_delay_seconds": "5.0",
            },
            "logging": {
                "level": "INFO",
                "quiet": "false",
            },
            "resilience": {
                "reconnect_enabled": "true",
                "reconnect_initial_seconds": "1.0",
                "reconnect_max_seconds": "30.0",
                "reconnect_jitter_ratio": "0.5",
                "health_enabled": "false",
                "health_host": "127.0.0.1",
                "health_port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    port = parser.get("gauger", "port").strip()
    mock = parser.getboolean("gauger", "mock", fallback=False)
    if not port and not mock:
        raise ConfigurationError("[gauger] port must be set unless mock mode is enabled")

    gauger = GaugerConfig(
        port=port,
        baud_rate=_int(parser, "gauger", "baud_rate", constants.DEFAULT_GAUGER_BAUD_RATE),
        mock=mock,
        open_delay_seconds=_non_negative(parser, "gauger", "open_delay_seconds", 2.0),
        worker_delay_seconds=_non_negative(
            parser, "gauger", "worker_delay_seconds", 0.1
        ),
        streaming_command=_command_text(
            parser.get("gauger", "streaming_command"),
            constants.DEFAULT_STREAMING_COMMAND,
        ),
    )

    commands = CommandConfig(
        timeout_seconds=_non_negative(parser, "commands", "timeout_seconds", 5.0),
        fail_pending_on_close=parser.getboolean(
            "commands", "fail_pending_on_close", fallback=True
        ),
        poll_position_when_idle=parser.getboolean(
            "commands", "poll_position_when_idle", fallback=False
        ),
        position_poll_seconds=_non_negative(
            parser, "commands", "position_poll_seconds", 1.0
        ),
        position_command=_command_text(
            parser.get("commands", "position_command"),
            constants.DEFAULT_POSITION_COMMAND,
        ),
    )

    gpio = GpioConfig(
        enabled=parser.getboolean("gpio", "enabled", fallback=False),
        pin_controller_reset=_int(parser, "gpio", "pin_controller_reset", 37),
        pin_controller_stop=_int(parser, "gpio", "pin_controller_stop", 35),
        pin_controller_ready=_int(parser, "gpio", "pin_controller_ready", 38),
        pin_gauger_reset=_int(parser, "gpio", "pin_gauger_reset", 36),
        reset_delay_seconds=_non_negative(parser, "gpio", "reset_delay_seconds", 5.0),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        quiet=parser.getboolean("logging", "quiet", fallback=False),
    )

    resilience = ResilienceConfig(
        reconnect_enabled=parser.getboolean(
            "resilience", "reconnect_enabled", fallback=True
        ),
        reconnect_initial_seconds=_non_negative(
            parser, "resilience", "reconnect_initial_seconds", 1.0
        ),
        reconnect_max_seconds=_non_negative(
            parser, "resilience", "reconnect_max_seconds", 30.0
        ),
        reconnect_jitter_ratio=max(
            0.0,
            min(
                1.0,
                _non_negative(parser, "resilience", "reconnect_jitter_ratio", 0.5),
            ),
        ),
        health_enabled=parser.getboolean(
            "resilience", "health_enabled", fallback=False
        ),
        health_host=parser.get("resilience", "health_host", fallback="127.0.0.1"),
        health_port=_int(parser, "resilience", "health_port", 0),
    )

    return MoonUnitConfig(
        gauger=gauger,
        commands=commands,
        gpio=gpio,
        logging=logging_config,
        resilience=resilience,
        raw=parser,
        path=config_path,
    )


def save_config(config: MoonUnitConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
