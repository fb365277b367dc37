"""End-to-end tests for GaugerService against the fake transport."""

import asyncio

import pytest

from moonunit.errors import (
    ControllerNotReadyError,
    DeviceClosedError,
    GaugerError,
    GpioDisabledError,
)
from moonunit.gauger import ConnectionState, GaugerService


class FakeGpio:
    def __init__(self, *, ready: bool = True) -> None:
        self.ready = ready
        self.resets = 0
        self.stops = 0

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def is_controller_ready(self) -> bool:
        return self.ready

    async def send_controller_reset(self) -> None:
        self.resets += 1

    async def send_controller_stop(self) -> None:
        self.stops += 1

    async def get_controller_state(self):
        return {"ready": self.ready}


async def _connect(service: GaugerService, fake_opener, eventually) -> None:
    await service.connect()
    await eventually(lambda: service.session.jobs.busy)
    job = service.session.jobs.outstanding
    fake_opener.feed(f"ACK:{job.id}:00OK")
    assert service.connection_state is ConnectionState.STREAMING


async def _reply(service: GaugerService, fake_opener, eventually, result: str) -> None:
    await eventually(lambda: service.session.jobs.busy)
    job = service.session.jobs.outstanding
    fake_opener.feed(f"ACK:{job.id}:{result}")


@pytest.mark.asyncio
async def test_enqueue_command_resolves_with_device_result(
    config, fake_opener, eventually
):
    service = GaugerService(config, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)

        pending = asyncio.create_task(service.enqueue_command(" 2;\n"))
        await _reply(service, fake_opener, eventually, "00 12|34")
        result = await pending
    finally:
        await service.aclose()

    assert result.as_dict() == {
        "status": 0,
        "message": "OK",
        "body": "12|34",
        "raw": "00 12|34",
    }
    assert fake_opener.transport.lines[-1] == ":2 2;\n"


@pytest.mark.asyncio
async def test_commands_are_serialised_in_order(config, fake_opener, eventually):
    service = GaugerService(config, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)

        first = asyncio.create_task(service.enqueue_command(" 10;\n"))
        second = asyncio.create_task(service.enqueue_command(" 20;\n"))
        await eventually(lambda: service.session.jobs.busy)
        await asyncio.sleep(0.03)
        # The second command is not written until the first is acknowledged.
        assert fake_opener.transport.lines[-1].endswith(" 10;\n")

        await _reply(service, fake_opener, eventually, "00")
        await _reply(service, fake_opener, eventually, "44")
        results = await asyncio.gather(first, second)
    finally:
        await service.aclose()

    assert [result.status for result in results] == [0, 44]
    assert results[1].message == "Invalid command"


@pytest.mark.asyncio
async def test_command_enqueued_before_connect_is_delivered(
    config, fake_opener, eventually
):
    service = GaugerService(config, opener=fake_opener)
    try:
        pending = asyncio.create_task(service.enqueue_command(" 3;\n"))
        await asyncio.sleep(0)
        assert service.session.pending_count == 1

        await service.connect()
        await _reply(service, fake_opener, eventually, "00")
        result = await pending
    finally:
        await service.aclose()

    assert result.ok
    assert fake_opener.transport.lines[0] == ":1 3;\n"


@pytest.mark.asyncio
async def test_command_timeout_returns_status_two(config, fake_opener, eventually):
    config.commands.timeout_seconds = 0.05
    service = GaugerService(config, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)
        result = await asyncio.wait_for(service.enqueue_command(" 9;\n"), timeout=1.0)
    finally:
        await service.aclose()

    assert result.status == 2
    assert result.message == "Command timeout"


@pytest.mark.asyncio
async def test_disconnect_fails_waiting_callers(config, fake_opener, eventually):
    service = GaugerService(config, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)
        pending = asyncio.create_task(service.enqueue_command(" 4;\n"))
        await eventually(lambda: service.session.jobs.busy)

        service.disconnect()

        with pytest.raises(DeviceClosedError):
            await pending
    finally:
        await service.aclose()

    assert service.is_connected is False


@pytest.mark.asyncio
async def test_connect_twice_is_rejected(config, fake_opener):
    service = GaugerService(config, opener=fake_opener)
    try:
        await service.connect()
        with pytest.raises(GaugerError, match="already connected"):
            await service.connect()
    finally:
        await service.aclose()

    assert fake_opener.calls == 1


@pytest.mark.asyncio
async def test_controller_command_requires_ready_controller(config, fake_opener):
    gpio = FakeGpio(ready=False)
    service = GaugerService(config, gpio=gpio, opener=fake_opener)

    with pytest.raises(ControllerNotReadyError, match="not ready"):
        await service.controller_command(" 1;\n")

    assert service.session.pending_count == 0


@pytest.mark.asyncio
async def test_controller_command_queues_when_ready(config, fake_opener, eventually):
    service = GaugerService(config, gpio=FakeGpio(), opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)
        pending = asyncio.create_task(service.controller_command(" 1;\n"))
        await _reply(service, fake_opener, eventually, "00")
        result = await pending
    finally:
        await service.aclose()

    assert result.ok


@pytest.mark.asyncio
async def test_gpio_operations_require_gpio_enabled(config, fake_opener):
    service = GaugerService(config, gpio=FakeGpio(), opener=fake_opener)

    with pytest.raises(GpioDisabledError):
        await service.reset_controller()
    with pytest.raises(GpioDisabledError):
        await service.stop_controller()
    with pytest.raises(GpioDisabledError):
        await service.controller_state()


@pytest.mark.asyncio
async def test_reset_controller_reopens_after_delay(config, fake_opener, eventually):
    config.gpio.enabled = True
    config.gpio.reset_delay_seconds = 0.02
    gpio = FakeGpio()
    service = GaugerService(config, gpio=gpio, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)

        await service.reset_controller()

        assert gpio.resets == 1
        assert service.connection_state is ConnectionState.CLOSED
        await eventually(lambda: fake_opener.calls == 2)
        await eventually(lambda: service.is_connected)

        await service.stop_controller()
        assert gpio.stops == 1
        assert await service.controller_state() == {"ready": True}
    finally:
        await service.aclose()


@pytest.mark.asyncio
async def test_status_reports_connection_and_telemetry(config, fake_opener, eventually):
    service = GaugerService(config, opener=fake_opener)
    try:
        status = await service.status()
        assert status["isGaugerConnected"] is False
        assert status["gaugerConnectedStatus"] == "Disconnected"
        assert status["controllerState"] is None
        assert status["position"] == [None, None]

        await _connect(service, fake_opener, eventually)
        fake_opener.feed("GPS:1000|45.2")
        fake_opener.feed("MAG:90|0|0|0|1.5")
        fake_opener.feed("MCC:1|2|T|F")

        status = await service.status()
    finally:
        await service.aclose()

    assert status["isGaugerConnected"] is True
    assert status["gaugerConnectedStatus"] == "Connected"
    assert status["connectionState"] == "streaming"
    assert status["gpsCoords"] == [None, 45.2]
    assert status["magHeading"] == 90.0
    assert status["declinationAngle"] == 1.5
    assert status["position"] == [1.0, 2.0]
    assert status["limitsEnabled"] == [True, False]
    assert status["pendingJobs"] == 0


@pytest.mark.asyncio
async def test_idle_position_polling_updates_position(config, fake_opener, eventually):
    config.commands.poll_position_when_idle = True
    config.commands.position_poll_seconds = 0.0
    service = GaugerService(config, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)
        await eventually(lambda: service.session.jobs.busy)
        job = service.session.jobs.outstanding

        assert job.is_system
        assert fake_opener.transport.lines[-1] == f":{job.id}:15 ;\n"

        fake_opener.feed(f"ACK:{job.id}:0012.5|1000|T|T")

        assert service.session.telemetry.position == [12.5, None]
        assert service.session.telemetry.limits_enabled == [True, True]
    finally:
        await service.aclose()


@pytest.mark.asyncio
async def test_position_polling_yields_to_queued_commands(
    config, fake_opener, eventually
):
    config.commands.poll_position_when_idle = True
    config.commands.position_poll_seconds = 60.0
    service = GaugerService(config, opener=fake_opener)
    try:
        await _connect(service, fake_opener, eventually)
        await eventually(lambda: service.session.jobs.busy)
        poll = service.session.jobs.outstanding
        pending = asyncio.create_task(service.enqueue_command(" 7;\n"))
        await asyncio.sleep(0)
        fake_opener.feed(f"ACK:{poll.id}:00")

        await _reply(service, fake_opener, eventually, "00")
        result = await pending
        writes = len(fake_opener.transport.writes)
        await asyncio.sleep(0.05)
    finally:
        await service.aclose()

    assert result.ok
    # Rate limited: no further poll within the interval.
    assert len(fake_opener.transport.writes) == writes
