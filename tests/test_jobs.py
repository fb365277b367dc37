"""Tests for job id allocation, the command queue and the job table."""

import asyncio

import pytest

from moonunit.core.models import CommandJob, CommandResult
from moonunit.gauger.jobs import CommandQueue, DispatchState, JobIdAllocator, JobTable
from moonunit.gauger.session import GaugerSession


class TestJobIdAllocator:
    def test_ids_start_at_one_and_increase(self) -> None:
        allocator = JobIdAllocator()
        assert [allocator.next_id() for _ in range(3)] == [1, 2, 3]

    def test_wraps_back_to_one_past_limit(self) -> None:
        allocator = JobIdAllocator(limit=3)
        ids = [allocator.next_id() for _ in range(5)]
        assert ids == [1, 2, 3, 1, 2]

    def test_default_limit_is_two_billion(self) -> None:
        allocator = JobIdAllocator()
        allocator._last = 2 * 1000 * 1000 * 1000
        assert allocator.next_id() == 1


class TestCommandQueue:
    def test_pop_returns_jobs_in_insertion_order(self) -> None:
        queue = CommandQueue()
        for job_id in (1, 2, 3):
            queue.push(CommandJob(id=job_id, body=f" {job_id};\n"))

        assert [queue.pop().id for _ in range(3)] == [1, 2, 3]
        assert queue.pop() is None

    def test_drain_empties_queue(self) -> None:
        queue = CommandQueue()
        queue.push(CommandJob(id=1, body=""))
        queue.push(CommandJob(id=2, body=""))

        drained = queue.drain()

        assert [job.id for job in drained] == [1, 2]
        assert len(queue) == 0


class TestJobTable:
    def test_register_marks_dispatcher_busy(self) -> None:
        table = JobTable()
        table.register(CommandJob(id=7, body=""))

        assert table.busy
        assert table.state is DispatchState.AWAITING_ACK
        assert 7 in table
        assert table.outstanding.id == 7

    def test_second_registration_is_rejected(self) -> None:
        table = JobTable()
        table.register(CommandJob(id=1, body=""))

        with pytest.raises(RuntimeError):
            table.register(CommandJob(id=2, body=""))
        assert len(table) == 1

    def test_take_releases_dispatcher(self) -> None:
        table = JobTable()
        job = CommandJob(id=1, body="")
        table.register(job)

        assert table.take(1) is job
        assert not table.busy
        assert table.take(1) is None

    def test_take_unknown_id_keeps_state(self) -> None:
        table = JobTable()
        table.register(CommandJob(id=1, body=""))

        assert table.take(99) is None
        assert table.busy

    @pytest.mark.asyncio
    async def test_take_cancels_armed_timeout(self) -> None:
        loop = asyncio.get_running_loop()
        fired = []
        table = JobTable()
        table.register(CommandJob(id=1, body=""))
        table.arm_timeout(loop.call_later(0.01, fired.append, 1))

        table.take(1)
        await asyncio.sleep(0.03)

        assert fired == []


class TestCommandJob:
    def test_framing_prefixes_id(self) -> None:
        job = CommandJob(id=42, body=" 2;\n")
        assert job.framed == ":42 2;\n"

    @pytest.mark.asyncio
    async def test_complete_resolves_future_and_handler_once(self) -> None:
        received = []
        future = asyncio.get_running_loop().create_future()
        job = CommandJob(id=1, body="", handler=received.append, future=future)
        result = CommandResult(status=0, message="OK")

        job.complete(result)

        assert future.result() is result
        assert received == [result]
        with pytest.raises(RuntimeError):
            job.complete(result)

    @pytest.mark.asyncio
    async def test_abandon_skips_handler(self) -> None:
        received = []
        future = asyncio.get_running_loop().create_future()
        job = CommandJob(id=1, body="", handler=received.append, future=future)

        job.abandon(ConnectionError("gone"))

        assert received == []
        with pytest.raises(ConnectionError):
            future.result()

    @pytest.mark.asyncio
    async def test_silent_abandon_leaves_future_pending(self) -> None:
        future = asyncio.get_running_loop().create_future()
        job = CommandJob(id=1, body="", future=future)

        job.abandon()

        assert job.settled
        assert not future.done()

    @pytest.mark.asyncio
    async def test_complete_tolerates_cancelled_future(self) -> None:
        received = []
        future = asyncio.get_running_loop().create_future()
        future.cancel()
        job = CommandJob(id=1, body="", handler=received.append, future=future)

        job.complete(CommandResult(status=0, message="OK"))

        assert len(received) == 1


class TestGaugerSession:
    def test_enqueue_assigns_sequential_ids(self) -> None:
        session = GaugerSession()
        first = session.enqueue(" 1;\n")
        second = session.enqueue(" 2;\n", is_system=True)

        assert (first.id, second.id) == (1, 2)
        assert second.is_system
        assert session.pending_count == 2

    def test_abandon_all_clears_queue_and_table(self) -> None:
        received = []
        session = GaugerSession()
        outstanding = session.enqueue(" 1;\n", handler=received.append)
        session.enqueue(" 2;\n", handler=received.append)
        session.jobs.register(session.queue.pop())

        count = session.abandon_all()

        assert count == 2
        assert received == []
        assert outstanding.settled
        assert len(session.queue) == 0
        assert len(session.jobs) == 0
        assert not session.jobs.busy
