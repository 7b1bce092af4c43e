"""SQLAlchemy ORM models for the 10 Praxis tables.

Column types are dialect-portable (JSONB on PostgreSQL, JSON elsewhere) so
the same metadata drives production Postgres and the SQLite test database.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from praxis.utils import utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Single declarative base for all tables."""

    pass


# =============================================================================
# REGISTRY (operator-managed)
# =============================================================================


class AgentDefinitionRow(Base):
    __tablename__ = "agent_definitions"
    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_agent_definitions_version"),
        CheckConstraint("temperature >= 0 AND temperature <= 1", name="ck_agent_definitions_temperature"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str | None] = mapped_column(String(200))
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.7)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class AgentLinkRow(Base):
    __tablename__ = "agent_links"
    __table_args__ = (
        CheckConstraint("kind IN ('relay', 'assist', 'analyze')", name="ck_agent_links_kind"),
        CheckConstraint("strength >= 0 AND strength <= 1", name="ck_agent_links_strength"),
        Index("ix_agent_links_source", "source_agent", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    target_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="relay")
    strength: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    context: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# =============================================================================
# BEHAVIORS (mutable only on `enabled` + `last_run`)
# =============================================================================


class BehaviorRow(Base):
    __tablename__ = "agent_behaviors"
    __table_args__ = (Index("ix_agent_behaviors_lookup", "agent_id", "action_type", "enabled"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger_type: Mapped[str | None] = mapped_column(String(50))
    config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# =============================================================================
# APPEND-ONLY LOGS
# =============================================================================


class RunRow(Base):
    __tablename__ = "agent_runs"
    __table_args__ = (Index("ix_agent_runs_agent", "agent_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[str] = mapped_column(String(100), nullable=False)
    behavior_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("agent_behaviors.id"))
    conversation_id: Mapped[str | None] = mapped_column(String(100))
    input: Mapped[str] = mapped_column(Text, nullable=False)
    output: Mapped[str | None] = mapped_column(Text)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class MessageRow(Base):
    __tablename__ = "agent_messages"
    __table_args__ = (Index("ix_agent_messages_conversation", "conversation_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sender_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    receiver_agent: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ReflectionRow(Base):
    __tablename__ = "agent_reflections"
    __table_args__ = (
        CheckConstraint("kind IN ('auto', 'manual')", name="ck_agent_reflections_kind"),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_agent_reflections_confidence"),
        Index("ix_agent_reflections_created", "created_at"),
        Index("ix_agent_reflections_behavior", "behavior_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[str] = mapped_column(String(100), nullable=False)
    behavior_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    # `metadata` is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class MetricSnapshotRow(Base):
    __tablename__ = "agent_metrics"
    __table_args__ = (Index("ix_agent_metrics_agent", "agent_id", "calculated_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[str] = mapped_column(String(100), nullable=False)
    average_impact: Mapped[float] = mapped_column(Float, nullable=False)
    consistency: Mapped[float] = mapped_column(Float, nullable=False)
    reflection_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    behavior_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impact_samples: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class InsightRow(Base):
    __tablename__ = "agent_insights"
    __table_args__ = (Index("ix_agent_insights_source", "source", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[str] = mapped_column(String(100), nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.9)
    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# =============================================================================
# AGENT MEMORY (operator upserts + insight sync)
# =============================================================================


class AgentMemoryRow(Base):
    __tablename__ = "agent_memory"
    __table_args__ = (
        Index("ix_agent_memory_agent", "agent_id", "created_at"),
        Index("ix_agent_memory_topic", "topic", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[str] = mapped_column(String(100), nullable=False)
    topic: Mapped[str] = mapped_column(String(100), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    importance: Mapped[float | None] = mapped_column(Float)
    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# =============================================================================
# DERIVED (replaced wholesale)
# =============================================================================


class LeaderboardRowModel(Base):
    __tablename__ = "agent_leaderboard"

    agent_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    rank_score: Mapped[float] = mapped_column(Float, nullable=False)
    impact_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    consistency_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    collaboration_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    impact_avg: Mapped[float] = mapped_column(Float, nullable=False)
    consistency: Mapped[float] = mapped_column(Float, nullable=False)
    collaboration_weight_sum: Mapped[float] = mapped_column(Float, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
