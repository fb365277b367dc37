"""Serial transport for the gauger built on pyserial-asyncio."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import serial
import serial_asyncio

from ..config import GaugerConfig
from ..core.protocols import DeviceTransport, LineCallback, LostCallback
from ..errors import DeviceOpenError

LOGGER = logging.getLogger(__name__)

MAX_LINE_LENGTH = 4096


class GaugerLineProtocol(asyncio.Protocol):
    """Splits the incoming byte stream into newline-terminated text lines."""

    def __init__(
        self,
        on_line: LineCallback,
        on_lost: LostCallback,
        *,
        encoding: str = "ascii",
    ) -> None:
        self._on_line = on_line
        self._on_lost = on_lost
        self._encoding = encoding
        self._buffer = bytearray()
        self.transport: Optional[asyncio.BaseTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport

    def data_received(self, data: bytes) -> None:
        self._buffer.extend(data)
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            line = raw.decode(self._encoding, errors="replace").rstrip("\r")
            try:
                self._on_line(line)
            except Exception:
                LOGGER.exception("Gauger line handler failed for %r", line)

        if len(self._buffer) > MAX_LINE_LENGTH:
            LOGGER.warning(
                "Discarding %d bytes without a line terminator", len(self._buffer)
            )
            self._buffer.clear()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._buffer.clear()
        self.transport = None
        try:
            self._on_lost(exc)
        except Exception:
            LOGGER.exception("Gauger connection-lost handler failed")


class LoopbackSerialTransport:
    """Drives a pyserial ``loop://`` device for mock mode.

    The loopback device has no file descriptor for the event loop to watch,
    so echoed bytes are read back right after each write.
    """

    def __init__(self, device: serial.SerialBase, protocol: GaugerLineProtocol) -> None:
        self._device = device
        self._protocol = protocol
        self._loop = asyncio.get_running_loop()
        self._closing = False

    def write(self, data: bytes) -> None:
        if self._closing:
            raise serial.SerialException("Attempting to use a port that is not open")
        self._device.write(data)
        self._loop.call_soon(self._read_ready)

    def _read_ready(self) -> None:
        if self._closing:
            return
        waiting = self._device.in_waiting
        if waiting:
            self._protocol.data_received(self._device.read(waiting))

    def reset_input_buffer(self) -> None:
        self._device.reset_input_buffer()

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._device.close()
        self._loop.call_soon(self._protocol.connection_lost, None)

    def is_closing(self) -> bool:
        return self._closing


class SerialLineTransport:
    """Adapts a pyserial-asyncio transport to the ``DeviceTransport`` contract."""

    def __init__(self, transport: serial_asyncio.SerialTransport) -> None:
        self._transport = transport

    def write(self, data: bytes) -> None:
        self._transport.write(data)

    def reset_input_buffer(self) -> None:
        self._transport.serial.reset_input_buffer()

    def close(self) -> None:
        self._transport.close()

    def is_closing(self) -> bool:
        return self._transport.is_closing()


async def open_serial_transport(
    config: GaugerConfig, on_line: LineCallback, on_lost: LostCallback
) -> DeviceTransport:
    """Open the gauger port (or the loopback device in mock mode)."""

    url = config.url
    if config.mock:
        return _open_loopback(url, config.baud_rate, on_line, on_lost)

    loop = asyncio.get_running_loop()
    try:
        transport, _ = await serial_asyncio.create_serial_connection(
            loop,
            lambda: GaugerLineProtocol(on_line, on_lost),
            url,
            baudrate=config.baud_rate,
        )
    except (serial.SerialException, OSError, ValueError) as exc:
        raise DeviceOpenError(url, str(exc)) from exc

    LOGGER.debug("Serial transport open on %s at %d baud", url, config.baud_rate)
    return SerialLineTransport(transport)


def _open_loopback(
    url: str, baud_rate: int, on_line: LineCallback, on_lost: LostCallback
) -> LoopbackSerialTransport:
    try:
        device = serial.serial_for_url(url, baudrate=baud_rate, timeout=0)
    except (serial.SerialException, ValueError) as exc:
        raise DeviceOpenError(url, str(exc)) from exc

    protocol = GaugerLineProtocol(on_line, on_lost)
    transport = LoopbackSerialTransport(device, protocol)
    protocol.connection_made(transport)
    LOGGER.info("Gauger running in mock mode on %s", url)
    return transport
