"""Tests for the cron-driven cycle scheduler."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from praxis.engine.service import Envelope, PraxisService
from praxis.handlers.scheduler import CronJob, CycleScheduler
from tests.conftest import agent_input, make_settings


def _job(scheduler: CycleScheduler, name: str) -> CronJob:
    return next(j for j in scheduler.jobs if j.name == name)


def test_jobs_built_from_settings(service, settings):
    scheduler = CycleScheduler(service, settings)
    assert [j.name for j in scheduler.jobs] == ["behaviors", "sync", "reflect", "cycle"]
    assert _job(scheduler, "cycle").expression == settings.cycle_cron
    assert all(j.next_fire_at > datetime.now(UTC) - timedelta(seconds=1) for j in scheduler.jobs)


def test_invalid_cron_rejected(service):
    with pytest.raises(ValueError, match="reflect"):
        CycleScheduler(service, make_settings(reflect_cron="every tuesday"))


def test_advance_moves_to_next_slot():
    job = CronJob("x", "0 6 * * *", lambda: None, datetime(2026, 1, 1, tzinfo=UTC))
    job.advance(datetime(2026, 1, 1, 7, 0, tzinfo=UTC))
    assert job.next_fire_at == datetime(2026, 1, 2, 6, 0, tzinfo=UTC)


async def test_nothing_due(service, settings):
    scheduler = CycleScheduler(service, settings)
    assert await scheduler.fire_due(datetime.now(UTC)) == 0


async def test_due_behaviors_job_runs_triggered(repo, providers, provider):
    settings = make_settings(behavior_trigger="hourly")
    service = PraxisService(repo, providers, settings)
    await service.register_agent(agent_input("agent_a"))
    await service.create_behavior("agent_a", "analyze", trigger_type="hourly")
    scheduler = CycleScheduler(service, settings)
    now = datetime.now(UTC)
    job = _job(scheduler, "behaviors")
    job.next_fire_at = now - timedelta(minutes=1)

    fired = await scheduler.fire_due(now)

    assert fired == 1
    assert len(provider.calls) == 1
    assert len(repo.runs) == 1
    assert job.next_fire_at > now


async def test_cycle_job_runs_metrics_leaderboard_feedback(service, settings, repo):
    await service.reflect("agent_a", {"summary": "s", "impact": 0.5})
    scheduler = CycleScheduler(service, settings)
    now = datetime.now(UTC)
    _job(scheduler, "cycle").next_fire_at = now

    assert await scheduler.fire_due(now) == 1
    assert len(repo.snapshots) == 1
    assert [r.agent_id for r in repo.leaderboard] == ["agent_a"]


async def test_failing_job_still_advances(service, settings):
    scheduler = CycleScheduler(service, settings)
    now = datetime.now(UTC)
    job = _job(scheduler, "reflect")

    async def explode() -> Envelope:
        raise RuntimeError("boom")

    job.action = explode
    job.next_fire_at = now - timedelta(hours=1)

    assert await scheduler.fire_due(now) == 1
    assert job.next_fire_at > now


async def test_start_and_stop(service):
    scheduler = CycleScheduler(service, make_settings(scheduler_check_interval=3600))
    await scheduler.start()
    assert scheduler._task is not None
    await scheduler.stop()
    assert scheduler._task is None


async def test_cycle_job_order_and_failed_stage_continues(settings):
    service = AsyncMock()
    calls: list[str] = []

    def stage(name: str, success: bool = True):
        async def run(*args):
            calls.append(name)
            return Envelope(success=success, error=None if success else "PERSISTENCE_FAILED", message=name)

        return run

    service.recompute_metrics = stage("metrics", success=False)
    service.rank_leaderboard = stage("leaderboard")
    service.tune_behaviors = stage("feedback")
    scheduler = CycleScheduler(service, settings)
    now = datetime.now(UTC)
    _job(scheduler, "cycle").next_fire_at = now

    await scheduler.fire_due(now)

    assert calls == ["metrics", "leaderboard", "feedback"]
    service.reflect_all.assert_not_awaited()
    service.sync_memory.assert_not_awaited()


async def test_sync_job_copies_insights_into_memory(service, repo):
    await service.reflect("agent_a", {"summary": "s", "impact": 0.5})
    await service.recompute_metrics()
    await service.rank_leaderboard()
    scheduler = CycleScheduler(service, make_settings(memory_sync_cron="0 0 1 1 *"))
    now = datetime.now(UTC)
    job = _job(scheduler, "sync")
    assert job.expression == "0 0 1 1 *"
    job.next_fire_at = now

    assert await scheduler.fire_due(now) == 1
    assert repo.memory
    assert {m.metadata["source"] for m in repo.memory} == {"agent_insights"}
