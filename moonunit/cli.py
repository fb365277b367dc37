"""Command-line interface for moonunit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import GaugerApp
from .config import MoonUnitConfig, load_config
from .errors import GaugerError
from .gauger import GaugerService
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="moonunit", description="Command dispatcher for the MoonUnit gauger"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the gauger service")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    send_parser = subparsers.add_parser(
        "send", help="Open the gauger, send one command and print the result"
    )
    send_parser.add_argument("body", help="Command body, e.g. ' 2;'")
    send_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the acknowledgement (default: command timeout + 1)",
    )

    return parser


async def _send_once(config: MoonUnitConfig, body: str, timeout: Optional[float]) -> int:
    if not body.endswith(constants.LINE_TERMINATOR):
        body += constants.LINE_TERMINATOR

    service = GaugerService(config)
    try:
        await service.connect()
        wait_for = timeout if timeout is not None else config.commands.timeout_seconds + 1.0
        result = await asyncio.wait_for(service.enqueue_command(body), timeout=wait_for)
    except (GaugerError, asyncio.TimeoutError) as exc:
        LOGGER.error("Command failed: %s", str(exc) or "timed out")
        return 1
    finally:
        await service.aclose()

    print(json.dumps({"response": result.as_dict()}, indent=2))
    return 0 if result.ok else 2


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except GaugerError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    if args.command == "start":
        GaugerApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    if args.command == "send":
        configure_logging(
            config.logging.level, log_path=config.logging.path, quiet=config.logging.quiet
        )
        return asyncio.run(_send_once(config, args.body, args.timeout))

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
