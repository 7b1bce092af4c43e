"""Tests for the metrics aggregator."""

import math

import pytest

from praxis.engine.metrics import MetricsAggregator, summarize_impacts
from praxis.engine.schemas import ReflectionRecord
from praxis.network.schemas import BehaviorInput


async def _reflect(repo, agent_id: str, impact, **extra):
    metadata = {} if impact is None else {"impact": impact}
    return await repo.add_reflection(
        ReflectionRecord(
            agent_id=agent_id, kind="manual", summary="s", content="c", confidence=0.5, metadata=metadata, **extra
        )
    )


class TestSummarizeImpacts:
    def test_mean(self):
        average, _ = summarize_impacts([0.9, 0.85])
        assert average == pytest.approx(0.875)

    def test_repeated_value_is_perfectly_consistent(self):
        assert summarize_impacts([0.4, 0.4, 0.4]) == (pytest.approx(0.4), 1.0)

    def test_no_samples(self):
        assert summarize_impacts([]) == (0.0, 1.0)

    @pytest.mark.parametrize(
        "samples",
        [[0.0, 1.0], [-5.0, 5.0], [0.1], [100.0, -100.0, 3.0], [0.2, 0.3, 0.25, 0.9]],
    )
    def test_consistency_bounded(self, samples):
        _, consistency = summarize_impacts(samples)
        assert 0.0 <= consistency <= 1.0

    def test_large_variance_floors_at_zero(self):
        assert summarize_impacts([-5.0, 5.0])[1] == 0.0

    def test_known_variance(self):
        # population std of [0, 1] is 0.5
        assert summarize_impacts([0.0, 1.0])[1] == pytest.approx(0.5)

    def test_non_finite_ignored(self):
        average, consistency = summarize_impacts([0.5, math.nan, math.inf])
        assert average == 0.5
        assert consistency == 1.0


class TestMetricsAggregator:
    async def test_snapshot_per_agent(self, repo):
        await _reflect(repo, "agent_a", 0.9)
        await _reflect(repo, "agent_a", "0.85")
        await _reflect(repo, "agent_a", None)
        await repo.add_behavior(BehaviorInput(agent_id="agent_a", action_type="analyze"))

        snapshots = await MetricsAggregator(repo).recompute()

        assert len(snapshots) == 1
        snap = snapshots[0]
        assert snap.agent_id == "agent_a"
        assert snap.average_impact == pytest.approx(0.875)
        assert snap.reflection_count == 3
        assert snap.impact_samples == 2
        assert snap.behavior_count == 1
        assert 0.0 <= snap.consistency <= 1.0

    async def test_agent_with_only_behaviors_included(self, repo):
        await repo.add_behavior(BehaviorInput(agent_id="agent_b", action_type="relay"))
        snapshots = await MetricsAggregator(repo).recompute()
        assert [(s.agent_id, s.average_impact, s.reflection_count) for s in snapshots] == [("agent_b", 0.0, 0)]

    async def test_empty_store_writes_nothing(self, repo):
        assert await MetricsAggregator(repo).recompute() == []
        assert repo.snapshots == []

    async def test_snapshots_are_appended(self, repo):
        await _reflect(repo, "agent_a", 0.5)
        aggregator = MetricsAggregator(repo)
        await aggregator.recompute()
        await _reflect(repo, "agent_a", 0.9)
        await aggregator.recompute()

        history = await aggregator.list()
        assert len(history) == 2
        assert history[0].average_impact == pytest.approx(0.7)
        latest = await aggregator.latest()
        assert len(latest) == 1
        assert latest[0].average_impact == pytest.approx(0.7)

    async def test_window_bounds_reflections(self, repo):
        await _reflect(repo, "agent_old", 0.1)
        for _ in range(3):
            await _reflect(repo, "agent_new", 0.6)
        snapshots = await MetricsAggregator(repo, reflection_window=3).recompute()
        assert [s.agent_id for s in snapshots] == ["agent_new"]
