import asyncio

import pytest

from praetor_monitor.core.exceptions import SchedulerError
from praetor_monitor.telemetry.scheduler import SyncScheduler


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def test_first_tick_runs_immediately(wait_until):
    applied = []

    async def fetch():
        return "jobs"

    async def scenario():
        scheduler = SyncScheduler("jobs")
        scheduler.start(60.0, fetch, applied.append)
        await wait_until(lambda: applied)
        scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())
    assert applied == ["jobs"]
    assert scheduler.applied_ticks == 1
    assert scheduler.stopped


def test_stop_discards_result_of_inflight_fetch():
    applied = []
    release_holder = {}

    async def fetch():
        await release_holder["release"].wait()
        return "late"

    async def scenario():
        release_holder["release"] = asyncio.Event()
        scheduler = SyncScheduler("run:r1")
        scheduler.start(60.0, fetch, applied.append)
        await settle()
        assert scheduler.last_tick_id == 1

        scheduler.stop()
        release_holder["release"].set()
        await settle()

    asyncio.run(scenario())
    assert applied == []


def test_result_discarded_when_stopped_during_fetch():
    applied = []
    holder = {}

    async def fetch():
        # stop() from inside the running tick does not cancel it
        holder["scheduler"].stop()
        return "late"

    async def scenario():
        scheduler = SyncScheduler("run:r1")
        holder["scheduler"] = scheduler
        scheduler.start(60.0, fetch, applied.append)
        await settle()
        return scheduler

    scheduler = asyncio.run(scenario())
    assert applied == []
    assert scheduler.stopped
    assert not scheduler.running


def test_overlapping_ticks_are_skipped(wait_until):
    calls = []
    holder = {}

    async def fetch():
        calls.append(len(calls) + 1)
        await holder["release"].wait()
        return len(calls)

    async def scenario():
        holder["release"] = asyncio.Event()
        applied = []
        scheduler = SyncScheduler("jobs")
        scheduler.start(0.01, fetch, applied.append)

        await wait_until(lambda: scheduler.skipped_ticks >= 2)
        assert calls == [1]

        holder["release"].set()
        await wait_until(lambda: applied)
        scheduler.stop()
        return applied

    applied = asyncio.run(scenario())
    assert applied[0] == 1


def test_fetch_errors_go_to_sink_and_polling_continues(wait_until):
    errors = []
    applied = []
    attempts = []

    async def fetch():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("connection refused")
        return "recovered"

    async def scenario():
        scheduler = SyncScheduler("jobs", error_sink=lambda source, e: errors.append((source, str(e))))
        scheduler.start(0.01, fetch, applied.append)
        await wait_until(lambda: applied)
        scheduler.stop()

    asyncio.run(scenario())
    assert errors[0] == ("jobs", "connection refused")
    assert applied[0] == "recovered"


def test_apply_errors_go_to_sink():
    errors = []

    async def fetch():
        return 1

    def apply(result):
        raise ValueError("bad state")

    async def scenario():
        scheduler = SyncScheduler("jobs", error_sink=lambda source, e: errors.append(type(e)))
        scheduler.start(60.0, fetch, apply)
        await settle()
        scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())
    assert errors == [ValueError]
    assert scheduler.applied_ticks == 0


def test_manual_tick_applies_when_idle(wait_until):
    applied = []
    counter = iter(range(100))

    async def fetch():
        return next(counter)

    async def scenario():
        scheduler = SyncScheduler("jobs")
        scheduler.start(60.0, fetch, applied.append)
        await wait_until(lambda: applied)
        result = await scheduler.tick()
        scheduler.stop()
        after_stop = await scheduler.tick()
        return result, after_stop

    result, after_stop = asyncio.run(scenario())
    assert result is True
    assert after_stop is False
    assert applied == [0, 1]


def test_manual_tick_waits_for_inflight_fetch():
    calls = []
    applied = []
    holder = {}

    async def fetch():
        calls.append(len(calls) + 1)
        await holder["release"].wait()
        return len(calls)

    async def scenario():
        holder["release"] = asyncio.Event()
        scheduler = SyncScheduler("jobs")
        scheduler.start(60.0, fetch, applied.append)
        await settle()

        skipped = await scheduler.tick()
        waiting = asyncio.ensure_future(scheduler.tick(wait=True))
        await settle()
        assert not waiting.done()

        holder["release"].set()
        result = await waiting
        scheduler.stop()
        return scheduler, skipped, result

    scheduler, skipped, result = asyncio.run(scenario())
    assert skipped is False
    assert scheduler.skipped_ticks == 1
    assert result is True
    assert calls == [1, 2]
    assert applied == [1, 2]


def test_waiting_tick_gives_up_when_stopped():
    holder = {}

    async def fetch():
        await holder["release"].wait()
        return "late"

    async def scenario():
        holder["release"] = asyncio.Event()
        scheduler = SyncScheduler("jobs")
        scheduler.start(60.0, fetch, lambda result: None)
        await settle()

        waiting = asyncio.ensure_future(scheduler.tick(wait=True))
        await settle()
        scheduler.stop()
        return await waiting, scheduler.last_tick_id

    result, last_tick_id = asyncio.run(scenario())
    assert result is False
    assert last_tick_id == 1


def test_start_twice_and_bad_interval_raise():
    async def fetch():
        return None

    async def scenario():
        scheduler = SyncScheduler("jobs")
        with pytest.raises(SchedulerError):
            scheduler.start(0, fetch, lambda r: None)

        scheduler.start(60.0, fetch, lambda r: None)
        with pytest.raises(SchedulerError):
            scheduler.start(60.0, fetch, lambda r: None)
        scheduler.stop()

    asyncio.run(scenario())


def test_stop_is_idempotent_and_safe_before_start():
    scheduler = SyncScheduler("jobs")
    scheduler.stop()
    scheduler.stop()
    assert scheduler.stopped
    assert not scheduler.running
