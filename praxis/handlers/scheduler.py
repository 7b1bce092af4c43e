"""Cycle scheduler: runs the improvement loop on cron expressions.

Four jobs, each with its own cron expression from Settings:
  behaviors - run enabled behaviors whose trigger_type matches behavior_trigger
  sync      - copy recent insights into agent memory
  reflect   - reflect every agent that owns an enabled behavior
  cycle     - metrics -> leaderboard -> feedback tuning

A single asyncio task wakes every scheduler_check_interval seconds and
fires whatever is due. A failed job is logged and retried at its next slot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from croniter import croniter

from praxis.config import Settings
from praxis.utils import utcnow

if TYPE_CHECKING:
    from praxis.engine.service import Envelope, PraxisService

logger = logging.getLogger(__name__)


@dataclass
class CronJob:
    name: str
    expression: str
    action: Callable[[], Awaitable["Envelope"]]
    next_fire_at: datetime

    def advance(self, now: datetime) -> None:
        self.next_fire_at = croniter(self.expression, now).get_next(datetime)


class CycleScheduler:
    def __init__(self, service: PraxisService, settings: Settings) -> None:
        self._service = service
        self._settings = settings
        self._task: asyncio.Task | None = None
        self._running = False
        self.jobs = self._build_jobs(utcnow())

    def _build_jobs(self, now: datetime) -> list[CronJob]:
        specs: list[tuple[str, str, Callable[[], Awaitable[Envelope]]]] = [
            (
                "behaviors",
                self._settings.behavior_cron,
                lambda: self._service.run_triggered(self._settings.behavior_trigger),
            ),
            ("sync", self._settings.memory_sync_cron, self._service.sync_memory),
            ("reflect", self._settings.reflect_cron, self._service.reflect_all),
            ("cycle", self._settings.cycle_cron, self._run_cycle),
        ]
        jobs = []
        for name, expression, action in specs:
            if not croniter.is_valid(expression):
                raise ValueError(f"Invalid cron expression for {name}: {expression!r}")
            jobs.append(CronJob(name, expression, action, croniter(expression, now).get_next(datetime)))
        return jobs

    async def _run_cycle(self) -> Envelope:
        # Reflection runs on its own schedule, so the cycle job starts at metrics.
        for stage in (self._service.recompute_metrics, self._service.rank_leaderboard):
            envelope = await stage()
            if not envelope.success:
                logger.warning("Cycle stage %s failed: %s", stage.__name__, envelope.message)
        return await self._service.tune_behaviors()

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._check_loop(), name="praxis-cycle-scheduler")
        logger.info(
            "Cycle scheduler started (check_interval=%ds, jobs=%s)",
            self._settings.scheduler_check_interval,
            ", ".join(f"{j.name}@{j.expression}" for j in self.jobs),
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cycle scheduler stopped")

    async def _check_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._settings.scheduler_check_interval)
                fired = await self.fire_due(utcnow())
                if fired:
                    logger.info("Fired %d scheduled job(s)", fired)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Scheduler check failed")

    async def fire_due(self, now: datetime) -> int:
        """Run every job whose next slot is at or before ``now``. Returns how many ran."""
        fired = 0
        for job in self.jobs:
            if job.next_fire_at > now:
                continue
            try:
                envelope = await job.action()
                if envelope.success:
                    logger.info("Scheduled job %s finished", job.name)
                else:
                    logger.warning("Scheduled job %s failed: %s %s", job.name, envelope.error, envelope.message)
            except Exception:
                logger.exception("Scheduled job %s raised", job.name)
            finally:
                job.advance(now)
            fired += 1
        return fired
