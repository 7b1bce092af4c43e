"""Pydantic DTOs for the engine: runs, reflections, memory, metrics, rankings.

Records (``*Record``) are what components hand to the repository; the
matching detail models are what the repository hands back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from praxis.network.schemas import Behavior
from praxis.utils import coerce_number

ReflectionKind = Literal["auto", "manual"]


# --- Runs + messages ---


class RunRecord(BaseModel):
    agent_id: str
    behavior_id: UUID | None = None
    conversation_id: str | None = None
    input: str
    output: str | None = None
    provider: str
    model: str
    duration_ms: int = 0
    success: bool
    error: str | None = None


class Run(RunRecord):
    id: UUID
    created_at: datetime


class Outcome(BaseModel):
    """Result of one successful behavior execution."""

    run_id: UUID
    behavior_id: UUID
    agent_id: str
    action_type: str
    summary: str
    output: str
    provider: str
    model: str
    duration_ms: int
    success: bool = True


class MessageRecord(BaseModel):
    conversation_id: str
    sender_agent: str
    receiver_agent: str
    content: str


class Message(MessageRecord):
    id: UUID
    created_at: datetime


# --- Reflections ---


class ReflectionOverride(BaseModel):
    """Caller-supplied reflection fields; bypasses the provider entirely."""

    summary: str | None = None
    content: str | None = None
    confidence: float = 0.5
    impact: float | None = None
    behavior_id: UUID | None = None
    metadata: dict[str, Any] = {}


class ReflectionRecord(BaseModel):
    agent_id: str
    behavior_id: UUID | None = None
    kind: ReflectionKind
    summary: str
    content: str
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: dict[str, Any] = {}


class Reflection(ReflectionRecord):
    id: UUID
    created_at: datetime

    @property
    def impact(self) -> float | None:
        return coerce_number(self.metadata.get("impact"))


# --- Metrics + leaderboard ---


class MetricSnapshotRecord(BaseModel):
    agent_id: str
    average_impact: float
    consistency: float = Field(ge=0.0, le=1.0)
    reflection_count: int
    behavior_count: int
    impact_samples: int
    calculated_at: datetime


class MetricSnapshot(MetricSnapshotRecord):
    id: UUID


class LeaderboardRow(BaseModel):
    agent_id: str
    rank_score: float
    impact_rank: int
    consistency_rank: int
    collaboration_rank: int
    impact_avg: float
    consistency: float
    collaboration_weight_sum: float
    computed_at: datetime


# --- Insights ---


class InsightRecord(BaseModel):
    agent_id: str
    source: str  # leaderboard, feedback, behavior
    category: str
    summary: str
    confidence: float = 0.9
    metadata: dict[str, Any] = {}


class Insight(InsightRecord):
    id: UUID
    created_at: datetime


# --- Agent memory ---


class MemoryRecord(BaseModel):
    agent_id: str
    topic: str
    summary: str | None = None
    content: str
    importance: float | None = None
    metadata: dict[str, Any] = {}


class MemoryInput(BaseModel):
    """Create (no ``id``) or revise (with ``id``) one memory entry."""

    id: UUID | None = None
    agent_id: str = ""
    topic: str = ""
    summary: str | None = None
    content: str = ""
    importance: float | None = None
    metadata: dict[str, Any] | None = None


class MemoryEntry(MemoryRecord):
    id: UUID
    created_at: datetime
    updated_at: datetime


# --- Reports ---


class CollaborationResult(BaseModel):
    link_id: UUID
    target_agent: str
    kind: str
    action_type: str
    success: bool
    outcome: Outcome | None = None
    error: str | None = None


class CollaborationReport(BaseModel):
    source_agent: str
    links_executed: int
    results: list[CollaborationResult]


class LeaderboardReport(BaseModel):
    rows: list[LeaderboardRow]
    insights: list[Insight]


class MemorySyncReport(BaseModel):
    added: int = 0
    skipped: int = 0


class TuneReport(BaseModel):
    analyzed: int = 0
    boosted: int = 0
    disabled: int = 0


class BatchItem(BaseModel):
    key: str  # behavior id or agent id
    success: bool
    error: str | None = None


class BatchReport(BaseModel):
    label: str
    completed: int = 0
    failed: int = 0
    results: list[BatchItem] = []


class BehaviorRun(BaseModel):
    behavior: Behavior
    outcome: Outcome
