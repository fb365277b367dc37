import asyncio
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from moonunit.config import MoonUnitConfig, load_config


class FakeTransport:
    """In-memory stand-in for the serial transport."""

    def __init__(self) -> None:
        self.writes: List[bytes] = []
        self.flush_count = 0
        self.closed = False
        self.fail_writes = False
        self.fail_flush = False

    def write(self, data: bytes) -> None:
        if self.fail_writes:
            raise OSError("write failed")
        self.writes.append(data)

    def reset_input_buffer(self) -> None:
        if self.fail_flush:
            raise OSError("flush failed")
        self.flush_count += 1

    def close(self) -> None:
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed

    @property
    def lines(self) -> List[str]:
        return [data.decode("utf-8") for data in self.writes]


class FakeOpener:
    """Transport opener that records the callbacks handed to it."""

    def __init__(self) -> None:
        self.transports: List[FakeTransport] = []
        self.on_line: Optional[Callable[[str], None]] = None
        self.on_lost: Optional[Callable[[Optional[Exception]], None]] = None
        self.fail: Optional[Exception] = None
        self.calls = 0

    async def __call__(self, on_line, on_lost) -> FakeTransport:
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        self.on_line = on_line
        self.on_lost = on_lost
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def transport(self) -> FakeTransport:
        return self.transports[-1]

    def feed(self, line: str) -> None:
        assert self.on_line is not None, "transport was never opened"
        self.on_line(line)

    def lose(self, exc: Optional[Exception] = None) -> None:
        assert self.on_lost is not None, "transport was never opened"
        self.on_lost(exc)


@pytest.fixture
def fake_opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def config(tmp_path: Path) -> MoonUnitConfig:
    """Configuration tuned for fast tests: no settle delay, 10 ms worker period."""

    config = load_config(tmp_path / "moonunit.cfg")
    config.gauger.open_delay_seconds = 0.0
    config.gauger.worker_delay_seconds = 0.01
    config.commands.timeout_seconds = 1.0
    config.resilience.reconnect_initial_seconds = 0.05
    config.resilience.reconnect_max_seconds = 0.1
    config.resilience.reconnect_jitter_ratio = 0.0
    return config


@pytest.fixture
def eventually():
    """Wait until ``predicate`` holds, polling the event loop."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
