"""Metrics aggregator: reflections + behaviors -> per-agent snapshots."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING

from praxis.engine.schemas import MetricSnapshot, MetricSnapshotRecord
from praxis.utils import clamp, coerce_number, utcnow

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)


def summarize_impacts(samples: Iterable[float]) -> tuple[float, float]:
    """Return (average_impact, consistency) for a set of impact samples.

    consistency = 1 - min(1, sqrt(population variance)); no samples gives (0, 1).
    """
    values = [v for v in samples if math.isfinite(v)]
    if not values:
        return 0.0, 1.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, clamp(1.0 - min(1.0, math.sqrt(variance)))


class MetricsAggregator:
    """Per-agent impact snapshots from the newest ``reflection_window`` reflections."""

    def __init__(self, repo: Repository, reflection_window: int = 500) -> None:
        self.repo = repo
        self.reflection_window = reflection_window

    async def recompute(self) -> list[MetricSnapshot]:
        """Append one snapshot per agent that has reflections or behaviors."""
        reflections = await self.repo.list_reflections(limit=self.reflection_window)
        behaviors = await self.repo.list_behaviors()

        reflection_counts: dict[str, int] = defaultdict(int)
        samples: dict[str, list[float]] = defaultdict(list)
        for reflection in reflections:
            reflection_counts[reflection.agent_id] += 1
            impact = coerce_number(reflection.metadata.get("impact"))
            if impact is not None:
                samples[reflection.agent_id].append(impact)

        behavior_counts: dict[str, int] = defaultdict(int)
        for behavior in behaviors:
            behavior_counts[behavior.agent_id] += 1

        calculated_at = utcnow()
        records = []
        for agent_id in sorted(set(reflection_counts) | set(behavior_counts)):
            average, consistency = summarize_impacts(samples[agent_id])
            records.append(
                MetricSnapshotRecord(
                    agent_id=agent_id,
                    average_impact=average,
                    consistency=consistency,
                    reflection_count=reflection_counts[agent_id],
                    behavior_count=behavior_counts[agent_id],
                    impact_samples=len(samples[agent_id]),
                    calculated_at=calculated_at,
                )
            )

        if not records:
            logger.info("No agents with reflections or behaviors; no snapshots written")
            return []
        snapshots = await self.repo.add_metric_snapshots(records)
        logger.info("Recomputed metrics for %d agent(s) from %d reflection(s)", len(snapshots), len(reflections))
        return snapshots

    async def list(self, limit: int = 200) -> list[MetricSnapshot]:
        return await self.repo.list_metric_snapshots(limit=limit)

    async def latest(self) -> list[MetricSnapshot]:
        return await self.repo.latest_metric_snapshots()
