"""Leaderboard ranker: composite score over impact, consistency, collaboration.

rank_score = w_impact * impact_avg
           + w_consistency * consistency / max(consistency)
           + w_collaboration * weight / max(weight)

Scores are relative to the current run. The table and the leaderboard
insights are replaced wholesale on every ranking.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from praxis.engine.schemas import InsightRecord, LeaderboardReport, LeaderboardRow, MetricSnapshot
from praxis.network.graph import CollaborationGraph
from praxis.utils import utcnow

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

INSIGHT_SOURCE = "leaderboard"
SCORE_PRECISION = 4


@dataclass(frozen=True)
class RankWeights:
    impact: float = 0.5
    consistency: float = 0.3
    collaboration: float = 0.2


def _share(value: float, maximum: float) -> float:
    return value / maximum if maximum > 0 else 0.0


def _ranks(agent_ids: Sequence[str], key: Callable[[str], float]) -> dict[str, int]:
    """1-based rank by ``key`` descending, ties broken by agent id."""
    ordered = sorted(agent_ids, key=lambda a: (-key(a), a))
    return {agent_id: position for position, agent_id in enumerate(ordered, start=1)}


def compute_leaderboard(
    latest: Mapping[str, MetricSnapshot],
    collaboration: Mapping[str, float],
    weights: RankWeights = RankWeights(),
    computed_at: datetime | None = None,
) -> list[LeaderboardRow]:
    """Rank the union of agents with a snapshot or a link. Missing values count as 0."""
    computed_at = computed_at or utcnow()
    agent_ids = sorted(set(latest) | set(collaboration))
    if not agent_ids:
        return []

    def impact(a: str) -> float:
        return latest[a].average_impact if a in latest else 0.0

    def consistency(a: str) -> float:
        return latest[a].consistency if a in latest else 0.0

    def weight(a: str) -> float:
        return collaboration.get(a, 0.0)

    max_consistency = max(consistency(a) for a in agent_ids)
    max_weight = max(weight(a) for a in agent_ids)

    impact_ranks = _ranks(agent_ids, impact)
    consistency_ranks = _ranks(agent_ids, consistency)
    collaboration_ranks = _ranks(agent_ids, weight)

    rows = [
        LeaderboardRow(
            agent_id=a,
            rank_score=round(
                weights.impact * impact(a)
                + weights.consistency * _share(consistency(a), max_consistency)
                + weights.collaboration * _share(weight(a), max_weight),
                SCORE_PRECISION,
            ),
            impact_rank=impact_ranks[a],
            consistency_rank=consistency_ranks[a],
            collaboration_rank=collaboration_ranks[a],
            impact_avg=impact(a),
            consistency=consistency(a),
            collaboration_weight_sum=weight(a),
            computed_at=computed_at,
        )
        for a in agent_ids
    ]
    rows.sort(key=lambda r: (-r.rank_score, r.agent_id))
    return rows


def build_insights(
    rows: Sequence[LeaderboardRow],
    previous_leader: str | None = None,
    history: Mapping[str, Sequence[MetricSnapshot]] | None = None,
) -> list[InsightRecord]:
    """Advisory insights for the new table.

    ``history`` maps agent id to its latest snapshots, newest first; the two
    most recent are compared for the consistency swing.
    """
    if not rows:
        return []
    insights: list[InsightRecord] = []

    def add(row: LeaderboardRow, kind: str, summary: str, **metric: object) -> None:
        insights.append(
            InsightRecord(
                agent_id=row.agent_id,
                source=INSIGHT_SOURCE,
                category="leaderboard",
                summary=summary,
                confidence=0.9,
                metadata={"kind": kind, **metric},
            )
        )

    top_impact = min(rows, key=lambda r: r.impact_rank)
    add(
        top_impact,
        "top_performer",
        f"Top Performer: {top_impact.agent_id} leads with impact {top_impact.impact_avg:.2f}.",
        rank=top_impact.impact_rank,
        impact_avg=round(top_impact.impact_avg, 3),
    )
    top_consistency = min(rows, key=lambda r: r.consistency_rank)
    add(
        top_consistency,
        "most_consistent",
        f"Most Consistent: {top_consistency.agent_id} holds consistency at {top_consistency.consistency:.3f}.",
        rank=top_consistency.consistency_rank,
        consistency=round(top_consistency.consistency, 4),
    )
    top_collaboration = min(rows, key=lambda r: r.collaboration_rank)
    if top_collaboration.collaboration_weight_sum > 0:
        add(
            top_collaboration,
            "most_collaborative",
            f"Most Collaborative: {top_collaboration.agent_id} leads with collaboration weight "
            f"{top_collaboration.collaboration_weight_sum:.2f}.",
            rank=top_collaboration.collaboration_rank,
            collaboration_weight_sum=round(top_collaboration.collaboration_weight_sum, 3),
        )

    leader = rows[0]
    if previous_leader is not None and previous_leader != leader.agent_id:
        add(
            leader,
            "new_leader",
            f"New #1: {leader.agent_id} overtook {previous_leader} with score {leader.rank_score:.4f}.",
            previous_leader=previous_leader,
            rank_score=leader.rank_score,
        )

    swings: list[tuple[float, str, float]] = []
    for agent_id, snapshots in (history or {}).items():
        if len(snapshots) >= 2:
            delta = snapshots[0].consistency - snapshots[1].consistency
            if delta != 0:
                swings.append((abs(delta), agent_id, delta))
    if swings:
        _, agent_id, delta = min(swings, key=lambda s: (-s[0], s[1]))
        row = next((r for r in rows if r.agent_id == agent_id), None)
        if row is not None:
            direction = "up" if delta > 0 else "down"
            add(
                row,
                "consistency_swing",
                f"Largest consistency swing: {agent_id} moved {direction} by {abs(delta):.3f}.",
                delta=round(delta, 4),
            )
    return insights


class LeaderboardRanker:
    """Ranks agents from their latest snapshots and the collaboration graph.

    Each ``rank`` replaces the whole leaderboard and the leaderboard insights.
    """

    def __init__(self, repo: Repository, graph: CollaborationGraph, weights: RankWeights = RankWeights()) -> None:
        self.repo = repo
        self.graph = graph
        self.weights = weights

    async def rank(self) -> LeaderboardReport:
        previous = await self.repo.list_leaderboard(limit=1)
        recent = await self.repo.latest_metric_snapshots(per_agent=2)
        history: dict[str, list[MetricSnapshot]] = {}
        for snapshot in recent:
            history.setdefault(snapshot.agent_id, []).append(snapshot)
        latest = {agent_id: snaps[0] for agent_id, snaps in history.items()}
        collaboration = await self.graph.collaboration_weights()

        rows = compute_leaderboard(latest, collaboration, self.weights)
        await self.repo.replace_leaderboard(rows)
        records = build_insights(rows, previous[0].agent_id if previous else None, history)
        insights = await self.repo.replace_insights(INSIGHT_SOURCE, records)
        logger.info("Leaderboard ranked %d agent(s), %d insight(s)", len(rows), len(insights))
        return LeaderboardReport(rows=rows, insights=insights)

    async def get(self, limit: int = 10) -> LeaderboardReport:
        rows = await self.repo.list_leaderboard(limit=limit)
        insights = await self.repo.list_insights(source=INSIGHT_SOURCE)
        return LeaderboardReport(rows=rows, insights=insights)
