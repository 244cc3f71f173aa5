import json

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from nanobot.cron import CRON_CHANNEL, CronJob, CronSchedule, CronService, ExecutedJob


async def _echo(job: CronJob) -> ExecutedJob:
    return ExecutedJob(job.id, job.message, f"ran {job.name}", 0)


@pytest.fixture
def store(tmp_path):
    return tmp_path / "cron" / "jobs.json"


def test_schedule_periods():
    assert CronSchedule.every(90_000).period_ms() == 90_000
    assert CronSchedule.from_cron("15").period_ms() == 15 * 60 * 1000
    assert CronSchedule.from_cron("15").describe() == "every 15 min"
    assert CronSchedule.every(1500).describe() == "every 1.5s"


@pytest.mark.parametrize(
    "schedule",
    [
        CronSchedule.every(0),
        CronSchedule.every(-5),
        CronSchedule.from_cron("*/5 * * * *"),
        CronSchedule.from_cron("0"),
        CronSchedule.from_cron("abc"),
        CronSchedule(kind="weekly"),
    ],
)
def test_unsupported_schedules_are_rejected(schedule, store):
    service = CronService(store, _echo)

    with pytest.raises(ValueError):
        service.add_job("bad", schedule, "message")
    assert service.get_jobs() == []
    assert not store.exists()


def test_jobs_are_persisted_with_camel_case_keys(store):
    service = CronService(store, _echo)
    job = service.add_job(
        "standup",
        CronSchedule.every(3_600_000),
        "Remind the team",
        deliver=True,
        channel="slack",
        chat_id="C123",
    )

    [record] = json.loads(store.read_text())
    assert record == {
        "id": job.id,
        "name": "standup",
        "message": "Remind the team",
        "deliver": True,
        "enabled": True,
        "channel": "slack",
        "chatId": "C123",
        "createdAt": job.created_at,
        "lastRunAt": 0,
        "schedule": {"kind": "every", "everyMs": 3_600_000},
    }

    reloaded = CronService(store, _echo)
    assert reloaded.get_job("standup").to_dict() == job.to_dict()


def test_jobs_without_a_target_deliver_on_the_cron_channel(store):
    service = CronService(store, _echo)
    job = service.add_job("nightly", CronSchedule.every(60_000), "Summarize")

    assert job.channel == CRON_CHANNEL
    assert job.chat_id == ""

    # Records written before jobs carried a target
    store.write_text(json.dumps([{"name": "old", "message": "hi", "schedule": {"kind": "every", "everyMs": 60_000}}]))
    [old] = CronService(store, _echo).get_jobs()
    assert (old.channel, old.chat_id) == (CRON_CHANNEL, "")


def test_add_replaces_a_job_with_the_same_name(store):
    service = CronService(store, _echo)
    first = service.add_job("check", CronSchedule.every(60_000), "old")
    second = service.add_job("check", CronSchedule.from_cron("5"), "new")

    assert first.id != second.id
    assert [j.message for j in service.get_jobs()] == ["new"]
    assert len(json.loads(store.read_text())) == 1


def test_remove_job(store):
    service = CronService(store, _echo)
    service.add_job("check", CronSchedule.every(60_000), "msg")

    assert service.remove_job("check") is True
    assert service.remove_job("check") is False
    assert json.loads(store.read_text()) == []


def test_invalid_stored_jobs_are_skipped(store):
    store.parent.mkdir(parents=True)
    store.write_text(json.dumps([
        {"name": "good", "message": "hi", "schedule": {"kind": "every", "everyMs": 1000}},
        {"name": "bad-cron", "message": "hi", "schedule": {"kind": "cron", "cron": "* * * * *"}},
        {"message": "no name"},
        "not a job",
    ]))

    service = CronService(store, _echo)

    assert [j.name for j in service.get_jobs()] == ["good"]


def test_corrupt_store_loads_nothing(store):
    store.parent.mkdir(parents=True)
    store.write_text("{not json")

    assert CronService(store, _echo).get_jobs() == []


@pytest.mark.parametrize("content", ["null", "5", '{"name": "x"}'])
def test_store_without_a_job_list_loads_nothing(store, content):
    store.parent.mkdir(parents=True)
    store.write_text(content)

    service = CronService(store, _echo)

    assert service.get_jobs() == []
    assert service.get_stats()["total_jobs"] == 0


@pytest.mark.asyncio
async def test_start_schedules_enabled_jobs_on_a_shared_scheduler(store):
    scheduler = AsyncIOScheduler()
    scheduler.start()
    try:
        service = CronService(store, _echo, scheduler)
        service.add_job("before-start", CronSchedule.every(60_000), "msg")
        assert scheduler.get_job("cron:before-start") is None

        service.start()
        service.add_job("after-start", CronSchedule.from_cron("10"), "msg")

        assert scheduler.get_job("cron:before-start") is not None
        assert scheduler.get_job("cron:after-start") is not None
        assert service.get_stats()["scheduled_jobs"] == 2

        service.remove_job("after-start")
        assert scheduler.get_job("cron:after-start") is None

        service.stop()
        assert scheduler.get_jobs() == []
        assert scheduler.running
    finally:
        scheduler.shutdown(wait=False)


@pytest.mark.asyncio
async def test_run_job_records_the_execution(store):
    fired = []

    async def executor(job):
        fired.append(job.name)
        return await _echo(job)

    service = CronService(store, executor)
    service.add_job("ping", CronSchedule.every(1000), "ping")

    executed = await service._run_job("ping")

    assert fired == ["ping"]
    assert executed.result == "ran ping"
    assert service.get_job("ping").last_run_at > 0
    assert json.loads(store.read_text())[0]["lastRunAt"] > 0


@pytest.mark.asyncio
async def test_failing_execution_is_counted_and_job_kept(store):
    async def executor(job):
        raise RuntimeError("agent down")

    service = CronService(store, executor)
    service.add_job("ping", CronSchedule.every(1000), "ping")

    assert await service._run_job("ping") is None

    stats = service.get_stats()
    assert stats["executions"] == 1
    assert stats["failures"] == 1
    assert service.get_job("ping").last_run_at == 0
