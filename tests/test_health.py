import aiohttp
import pytest

from moonunit.health import HealthReporter, HealthServer


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("gauger", True, "streaming")
    await reporter.update("gpio", False, "pin busy")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    component_list = snapshot.get("components", [])
    assert isinstance(component_list, list)
    components = {item["name"]: item for item in component_list}
    assert components["gauger"]["healthy"] is True
    assert components["gpio"]["healthy"] is False
    assert components["gpio"]["detail"] == "pin busy"


@pytest.mark.asyncio
async def test_health_reporter_agent_state_affects_status():
    reporter = HealthReporter()

    await reporter.update("gauger", True)
    await reporter.set_agent_state("awaiting_device", healthy=False)

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    agent = snapshot.get("agentState")
    assert agent is not None
    assert agent["state"] == "awaiting_device"
    assert agent["healthy"] is False


@pytest.mark.asyncio
async def test_health_server_serves_snapshot(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("gauger", True)

    async def detail():
        return {"isGaugerConnected": True, "pendingJobs": 0}

    host = "127.0.0.1"
    port = unused_tcp_port
    server = HealthServer(reporter, host, port, detail_provider=detail)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{port}/healthz") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"
                assert payload["gauger"]["isGaugerConnected"] is True
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_health_server_reports_degraded_with_503(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("gauger", False, "closed")

    async def broken_detail():
        raise RuntimeError("status unavailable")

    host = "127.0.0.1"
    port = unused_tcp_port
    server = HealthServer(reporter, host, port, detail_provider=broken_detail)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{port}/healthz") as response:
                payload = await response.json()
                assert response.status == 503
                assert payload["status"] == "degraded"
                assert payload["gauger"] == {"error": "status unavailable"}
    finally:
        await server.stop()
