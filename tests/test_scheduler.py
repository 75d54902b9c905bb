"""
Test the periodic batch scheduler.
"""

import asyncio

import pytest

from sdk_batch.core.exceptions import BatchRunError, LedgerError
from sdk_batch.models.batch_run import BatchRunStatus
from sdk_batch.scheduler.batch_scheduler import BatchScheduler, SchedulerStatus
from sdk_batch.services.batch import RunStatistics


class StubOrchestrator:
    def __init__(self, error=None, gate=None):
        self.calls = []
        self.error = error
        self.gate = gate

    async def run(self, triggered_by=None):
        self.calls.append(triggered_by)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return RunStatistics(batch_id=len(self.calls), status=BatchRunStatus.COMPLETED)


@pytest.mark.asyncio
async def test_trigger_records_run():
    orchestrator = StubOrchestrator()
    scheduler = BatchScheduler(orchestrator=orchestrator, interval=60, enabled=True)

    stats = await scheduler.trigger()

    assert stats.batch_id == 1
    assert orchestrator.calls == ["scheduler"]
    assert scheduler.stats.successful_runs == 1
    assert scheduler.stats.last_run_stats is stats
    assert scheduler.status == SchedulerStatus.WAITING


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped():
    gate = asyncio.Event()
    orchestrator = StubOrchestrator(gate=gate)
    scheduler = BatchScheduler(orchestrator=orchestrator, interval=60, enabled=True)

    first = asyncio.create_task(scheduler.trigger())
    await asyncio.sleep(0)

    assert await scheduler.trigger() is None
    assert scheduler.stats.skipped_ticks == 1

    gate.set()
    assert (await first).batch_id == 1
    assert orchestrator.calls == ["scheduler"]


@pytest.mark.asyncio
async def test_failed_run_sets_error_status():
    scheduler = BatchScheduler(
        orchestrator=StubOrchestrator(error=BatchRunError("queue unavailable")),
        interval=60,
        enabled=True,
    )

    assert await scheduler.trigger() is None
    assert scheduler.status == SchedulerStatus.ERROR
    assert scheduler.stats.failed_runs == 1


@pytest.mark.asyncio
async def test_start_runs_immediately_and_stops():
    orchestrator = StubOrchestrator()
    scheduler = BatchScheduler(orchestrator=orchestrator, interval=3600, enabled=True)

    await scheduler.start()
    for _ in range(10):
        if orchestrator.calls:
            break
        await asyncio.sleep(0)
    await scheduler.stop()

    assert orchestrator.calls == ["scheduler"]
    assert scheduler.status == SchedulerStatus.STOPPED


@pytest.mark.asyncio
async def test_disabled_scheduler_does_not_start():
    orchestrator = StubOrchestrator()
    scheduler = BatchScheduler(orchestrator=orchestrator, interval=60, enabled=False)

    await scheduler.start()

    assert scheduler.status == SchedulerStatus.STOPPED
    assert orchestrator.calls == []


@pytest.mark.asyncio
async def test_loop_keeps_ticking_after_unexpected_error():
    class FlakyOrchestrator(StubOrchestrator):
        async def run(self, triggered_by=None):
            self.calls.append(triggered_by)
            if len(self.calls) == 1:
                raise LedgerError("Ledger client is not initialized")
            return RunStatistics(batch_id=len(self.calls), status=BatchRunStatus.COMPLETED)

    orchestrator = FlakyOrchestrator()
    scheduler = BatchScheduler(orchestrator=orchestrator, interval=0.01, enabled=True)

    await scheduler.start()
    for _ in range(200):
        if len(orchestrator.calls) >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert len(orchestrator.calls) >= 2
    assert scheduler.stats.failed_runs == 1
    assert scheduler.stats.successful_runs >= 1
    assert scheduler.status == SchedulerStatus.STOPPED
