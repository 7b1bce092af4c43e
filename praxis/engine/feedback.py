"""Feedback optimizer: flips behaviors on/off from their recent impact.

Only transitions are written and counted, so running the optimizer twice
over the same reflections changes nothing the second time.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import UUID

from praxis.engine.schemas import InsightRecord, TuneReport
from praxis.network.behaviors import BehaviorStore
from praxis.utils import coerce_number, utcnow

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

INSIGHT_SOURCE = "feedback"
SCAN_LIMIT = 5000


class FeedbackOptimizer:
    """Turns behaviors off (and back on) from their mean reflected impact."""

    def __init__(
        self,
        repo: Repository,
        behaviors: BehaviorStore,
        window_days: int = 7,
        low_threshold: float = 0.2,
        high_threshold: float = 0.8,
        min_samples: int = 2,
    ) -> None:
        self.repo = repo
        self.behaviors = behaviors
        self.window_days = window_days
        self.low_threshold = low_threshold
        self.high_threshold = high_threshold
        self.min_samples = min_samples

    async def behavior_impacts(self) -> dict[UUID, list[float]]:
        """Numeric impact samples per behavior over the trailing window."""
        since = utcnow() - timedelta(days=self.window_days)
        reflections = await self.repo.list_reflections(limit=SCAN_LIMIT, since=since, behavior_linked=True)
        samples: dict[UUID, list[float]] = defaultdict(list)
        for reflection in reflections:
            impact = coerce_number(reflection.metadata.get("impact"))
            if reflection.behavior_id is not None and impact is not None:
                samples[reflection.behavior_id].append(impact)
        return dict(samples)

    async def tune(self) -> TuneReport:
        """Disable behaviors whose mean impact is below the low threshold and
        re-enable disabled ones at or above the high threshold.

        ``analyzed`` counts behaviors with at least ``min_samples`` samples.
        """
        report = TuneReport()
        for behavior_id, samples in sorted((await self.behavior_impacts()).items(), key=lambda kv: str(kv[0])):
            if len(samples) < self.min_samples:
                logger.debug("Behavior %s has %d sample(s), skipping", behavior_id, len(samples))
                continue
            behavior = await self.repo.get_behavior(behavior_id)
            if behavior is None:
                logger.debug("Reflections reference unknown behavior %s", behavior_id)
                continue
            report.analyzed += 1
            mean = sum(samples) / len(samples)

            if mean < self.low_threshold and behavior.enabled:
                target, verb = False, "disabled"
            elif mean >= self.high_threshold and not behavior.enabled:
                target, verb = True, "re-enabled"
            else:
                continue

            updated = await self.behaviors.set_enabled(behavior_id, target)
            if target:
                report.boosted += 1
            else:
                report.disabled += 1
            await self.repo.add_insights(
                [
                    InsightRecord(
                        agent_id=updated.agent_id,
                        source=INSIGHT_SOURCE,
                        category="behavior_feedback",
                        summary=(
                            f"Behavior {updated.name} {verb}: "
                            f"mean impact {mean:.2f} over {len(samples)} reflection(s)."
                        ),
                        confidence=0.95,
                        metadata={
                            "behavior_id": str(behavior_id),
                            "impact": round(mean, 4),
                            "samples": len(samples),
                            "enabled": target,
                        },
                    )
                ]
            )
            logger.info("Behavior %s %s (mean impact %.3f, n=%d)", behavior_id, verb, mean, len(samples))

        logger.info(
            "Feedback tuning: analyzed=%d boosted=%d disabled=%d",
            report.analyzed,
            report.boosted,
            report.disabled,
        )
        return report
