"""Repository protocol and its SQLAlchemy implementation.

Every read that the engine needs is expressed here as "most recent N rows",
optionally narrowed to one agent, plus "latest snapshot per agent". Store
failures surface as PersistenceError; callers never see SQLAlchemy types.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from praxis.engine.schemas import (
    Insight,
    InsightRecord,
    LeaderboardRow,
    MemoryEntry,
    MemoryRecord,
    Message,
    MessageRecord,
    MetricSnapshot,
    MetricSnapshotRecord,
    Reflection,
    ReflectionRecord,
    Run,
    RunRecord,
)
from praxis.errors import PersistenceError
from praxis.network.schemas import (
    AgentDefinition,
    Behavior,
    BehaviorInput,
    CollaborationLink,
    LinkInput,
)
from praxis.storage.database import Database
from praxis.storage.models import (
    AgentDefinitionRow,
    AgentLinkRow,
    AgentMemoryRow,
    BehaviorRow,
    InsightRow,
    LeaderboardRowModel,
    MessageRow,
    MetricSnapshotRow,
    ReflectionRow,
    RunRow,
)
from praxis.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


class Repository(Protocol):
    """Storage contract shared by the SQL and in-memory backends."""

    # Agents
    async def save_agent(self, definition: AgentDefinition) -> AgentDefinition: ...
    async def get_agent(self, agent_id: str) -> AgentDefinition | None: ...
    async def list_agents(self) -> list[AgentDefinition]: ...

    # Links
    async def add_link(self, link: LinkInput) -> CollaborationLink: ...
    async def list_links(
        self, source_agent: str | None = None, limit: int | None = None
    ) -> list[CollaborationLink]: ...

    # Behaviors
    async def add_behavior(self, behavior: BehaviorInput) -> Behavior: ...
    async def get_behavior(self, behavior_id: UUID) -> Behavior | None: ...
    async def list_behaviors(
        self,
        agent_id: str | None = None,
        enabled: bool | None = None,
        trigger_type: str | None = None,
    ) -> list[Behavior]: ...
    async def find_active_behavior(self, agent_id: str, action_type: str) -> Behavior | None: ...
    async def set_behavior_enabled(self, behavior_id: UUID, enabled: bool) -> Behavior | None: ...
    async def touch_behavior(self, behavior_id: UUID, when: datetime) -> None: ...

    # Runs + messages
    async def add_run(self, run: RunRecord) -> Run: ...
    async def list_runs(self, agent_id: str | None = None, limit: int = 20) -> list[Run]: ...
    async def add_message(self, message: MessageRecord) -> Message: ...
    async def list_messages(self, conversation_id: str, limit: int = 5) -> list[Message]: ...

    # Reflections
    async def add_reflection(self, reflection: ReflectionRecord) -> Reflection: ...
    async def list_reflections(
        self,
        limit: int = 50,
        agent_id: str | None = None,
        since: datetime | None = None,
        behavior_linked: bool = False,
    ) -> list[Reflection]: ...

    # Metrics
    async def add_metric_snapshots(self, snapshots: Sequence[MetricSnapshotRecord]) -> list[MetricSnapshot]: ...
    async def list_metric_snapshots(self, limit: int = 200, agent_id: str | None = None) -> list[MetricSnapshot]: ...
    async def latest_metric_snapshots(self, per_agent: int = 1) -> list[MetricSnapshot]: ...

    # Leaderboard
    async def replace_leaderboard(self, rows: Sequence[LeaderboardRow]) -> None: ...
    async def list_leaderboard(self, limit: int | None = None) -> list[LeaderboardRow]: ...

    # Insights
    async def add_insights(self, records: Sequence[InsightRecord]) -> list[Insight]: ...
    async def replace_insights(self, source: str, records: Sequence[InsightRecord]) -> list[Insight]: ...
    async def list_insights(
        self, source: str | None = None, limit: int = 50, since: datetime | None = None
    ) -> list[Insight]: ...

    # Agent memory
    async def add_memory(self, records: Sequence[MemoryRecord]) -> list[MemoryEntry]: ...
    async def update_memory(self, memory_id: UUID, record: MemoryRecord) -> MemoryEntry | None: ...
    async def list_memory(
        self,
        agent_id: str | None = None,
        topic: str | None = None,
        search: str | None = None,
        since: datetime | None = None,
        limit: int | None = 50,
    ) -> list[MemoryEntry]: ...


class SqlRepository:
    """Repository backed by SQLAlchemy async sessions."""

    def __init__(self, db: Database) -> None:
        self.db = db

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.db.session() as session:
                yield session
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Database operation failed: %s", e)
            raise PersistenceError(str(e)) from e

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    async def save_agent(self, definition: AgentDefinition) -> AgentDefinition:
        async with self._session() as session:
            row = await session.get(AgentDefinitionRow, definition.id)
            now = utcnow()
            if row is None:
                row = AgentDefinitionRow(id=definition.id, created_at=definition.created_at or now)
                session.add(row)
            row.name = definition.name
            row.role = definition.role
            row.prompt = definition.prompt
            row.provider = definition.provider
            row.model = definition.model
            row.temperature = definition.temperature
            row.enabled = definition.enabled
            row.version = definition.version
            row.updated_at = now
            await session.flush()
            return _to_agent(row)

    async def get_agent(self, agent_id: str) -> AgentDefinition | None:
        async with self._session() as session:
            row = await session.get(AgentDefinitionRow, agent_id)
            return _to_agent(row) if row else None

    async def list_agents(self) -> list[AgentDefinition]:
        async with self._session() as session:
            result = await session.execute(select(AgentDefinitionRow).order_by(AgentDefinitionRow.id))
            return [_to_agent(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    async def add_link(self, link: LinkInput) -> CollaborationLink:
        async with self._session() as session:
            row = AgentLinkRow(
                source_agent=link.source_agent,
                target_agent=link.target_agent,
                kind=link.kind,
                strength=link.strength if link.strength is not None else 0.5,
                context=link.context,
                created_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return _to_link(row)

    async def list_links(self, source_agent: str | None = None, limit: int | None = None) -> list[CollaborationLink]:
        async with self._session() as session:
            stmt = select(AgentLinkRow).order_by(AgentLinkRow.created_at.desc())
            if source_agent is not None:
                stmt = stmt.where(AgentLinkRow.source_agent == source_agent)
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [_to_link(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Behaviors
    # ------------------------------------------------------------------

    async def add_behavior(self, behavior: BehaviorInput) -> Behavior:
        async with self._session() as session:
            row = BehaviorRow(
                agent_id=behavior.agent_id,
                name=behavior.name or behavior.action_type,
                description=behavior.description,
                action_type=behavior.action_type,
                trigger_type=behavior.trigger_type,
                config=behavior.config,
                enabled=behavior.enabled,
                created_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return _to_behavior(row)

    async def get_behavior(self, behavior_id: UUID) -> Behavior | None:
        async with self._session() as session:
            row = await session.get(BehaviorRow, behavior_id)
            return _to_behavior(row) if row else None

    async def list_behaviors(
        self,
        agent_id: str | None = None,
        enabled: bool | None = None,
        trigger_type: str | None = None,
    ) -> list[Behavior]:
        async with self._session() as session:
            stmt = select(BehaviorRow).order_by(BehaviorRow.created_at.desc())
            if agent_id is not None:
                stmt = stmt.where(BehaviorRow.agent_id == agent_id)
            if enabled is not None:
                stmt = stmt.where(BehaviorRow.enabled == enabled)
            if trigger_type is not None:
                stmt = stmt.where(BehaviorRow.trigger_type == trigger_type)
            result = await session.execute(stmt)
            return [_to_behavior(r) for r in result.scalars().all()]

    async def find_active_behavior(self, agent_id: str, action_type: str) -> Behavior | None:
        async with self._session() as session:
            stmt = (
                select(BehaviorRow)
                .where(
                    BehaviorRow.agent_id == agent_id,
                    BehaviorRow.action_type == action_type,
                    BehaviorRow.enabled.is_(True),
                )
                .order_by(BehaviorRow.created_at.desc())
                .limit(1)
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_behavior(row) if row else None

    async def set_behavior_enabled(self, behavior_id: UUID, enabled: bool) -> Behavior | None:
        async with self._session() as session:
            row = await session.get(BehaviorRow, behavior_id)
            if row is None:
                return None
            row.enabled = enabled
            await session.flush()
            return _to_behavior(row)

    async def touch_behavior(self, behavior_id: UUID, when: datetime) -> None:
        async with self._session() as session:
            await session.execute(update(BehaviorRow).where(BehaviorRow.id == behavior_id).values(last_run=when))

    # ------------------------------------------------------------------
    # Runs + messages
    # ------------------------------------------------------------------

    async def add_run(self, run: RunRecord) -> Run:
        async with self._session() as session:
            row = RunRow(**run.model_dump(), created_at=utcnow())
            session.add(row)
            await session.flush()
            return _to_run(row)

    async def list_runs(self, agent_id: str | None = None, limit: int = 20) -> list[Run]:
        async with self._session() as session:
            stmt = select(RunRow).order_by(RunRow.created_at.desc()).limit(limit)
            if agent_id is not None:
                stmt = stmt.where(RunRow.agent_id == agent_id)
            result = await session.execute(stmt)
            return [_to_run(r) for r in result.scalars().all()]

    async def add_message(self, message: MessageRecord) -> Message:
        async with self._session() as session:
            row = MessageRow(**message.model_dump(), created_at=utcnow())
            session.add(row)
            await session.flush()
            return _to_message(row)

    async def list_messages(self, conversation_id: str, limit: int = 5) -> list[Message]:
        async with self._session() as session:
            stmt = (
                select(MessageRow)
                .where(MessageRow.conversation_id == conversation_id)
                .order_by(MessageRow.created_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [_to_message(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Reflections
    # ------------------------------------------------------------------

    async def add_reflection(self, reflection: ReflectionRecord) -> Reflection:
        async with self._session() as session:
            row = ReflectionRow(
                agent_id=reflection.agent_id,
                behavior_id=reflection.behavior_id,
                kind=reflection.kind,
                summary=reflection.summary,
                content=reflection.content,
                confidence=reflection.confidence,
                meta=reflection.metadata,
                created_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return _to_reflection(row)

    async def list_reflections(
        self,
        limit: int = 50,
        agent_id: str | None = None,
        since: datetime | None = None,
        behavior_linked: bool = False,
    ) -> list[Reflection]:
        async with self._session() as session:
            stmt = select(ReflectionRow).order_by(ReflectionRow.created_at.desc()).limit(limit)
            if agent_id is not None:
                stmt = stmt.where(ReflectionRow.agent_id == agent_id)
            if since is not None:
                stmt = stmt.where(ReflectionRow.created_at >= since)
            if behavior_linked:
                stmt = stmt.where(ReflectionRow.behavior_id.is_not(None))
            result = await session.execute(stmt)
            return [_to_reflection(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def add_metric_snapshots(self, snapshots: Sequence[MetricSnapshotRecord]) -> list[MetricSnapshot]:
        async with self._session() as session:
            rows = [MetricSnapshotRow(**s.model_dump()) for s in snapshots]
            session.add_all(rows)
            await session.flush()
            return [_to_snapshot(r) for r in rows]

    async def list_metric_snapshots(self, limit: int = 200, agent_id: str | None = None) -> list[MetricSnapshot]:
        async with self._session() as session:
            stmt = select(MetricSnapshotRow).order_by(MetricSnapshotRow.calculated_at.desc()).limit(limit)
            if agent_id is not None:
                stmt = stmt.where(MetricSnapshotRow.agent_id == agent_id)
            result = await session.execute(stmt)
            return [_to_snapshot(r) for r in result.scalars().all()]

    async def latest_metric_snapshots(self, per_agent: int = 1) -> list[MetricSnapshot]:
        """Most recent ``per_agent`` snapshots for every agent, newest first within an agent."""
        async with self._session() as session:
            position = (
                func.row_number()
                .over(
                    partition_by=MetricSnapshotRow.agent_id,
                    order_by=MetricSnapshotRow.calculated_at.desc(),
                )
                .label("position")
            )
            ranked = select(MetricSnapshotRow.id, position).subquery()
            stmt = (
                select(MetricSnapshotRow)
                .join(ranked, ranked.c.id == MetricSnapshotRow.id)
                .where(ranked.c.position <= per_agent)
                .order_by(MetricSnapshotRow.agent_id, MetricSnapshotRow.calculated_at.desc())
            )
            result = await session.execute(stmt)
            return [_to_snapshot(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Leaderboard
    # ------------------------------------------------------------------

    async def replace_leaderboard(self, rows: Sequence[LeaderboardRow]) -> None:
        async with self._session() as session:
            await session.execute(delete(LeaderboardRowModel))
            session.add_all([LeaderboardRowModel(**r.model_dump()) for r in rows])

    async def list_leaderboard(self, limit: int | None = None) -> list[LeaderboardRow]:
        async with self._session() as session:
            stmt = select(LeaderboardRowModel).order_by(
                LeaderboardRowModel.rank_score.desc(), LeaderboardRowModel.agent_id
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [_to_leaderboard_row(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def add_insights(self, records: Sequence[InsightRecord]) -> list[Insight]:
        async with self._session() as session:
            rows = self._insight_rows(records)
            session.add_all(rows)
            await session.flush()
            return [_to_insight(r) for r in rows]

    async def replace_insights(self, source: str, records: Sequence[InsightRecord]) -> list[Insight]:
        """Delete every insight from ``source`` and insert ``records`` in one transaction."""
        async with self._session() as session:
            await session.execute(delete(InsightRow).where(InsightRow.source == source))
            rows = self._insight_rows(records)
            session.add_all(rows)
            await session.flush()
            return [_to_insight(r) for r in rows]

    async def list_insights(
        self, source: str | None = None, limit: int = 50, since: datetime | None = None
    ) -> list[Insight]:
        async with self._session() as session:
            stmt = select(InsightRow).order_by(InsightRow.created_at.desc()).limit(limit)
            if source is not None:
                stmt = stmt.where(InsightRow.source == source)
            if since is not None:
                stmt = stmt.where(InsightRow.created_at >= since)
            result = await session.execute(stmt)
            return [_to_insight(r) for r in result.scalars().all()]

    @staticmethod
    def _insight_rows(records: Sequence[InsightRecord]) -> list[InsightRow]:
        now = utcnow()
        return [
            InsightRow(
                agent_id=r.agent_id,
                source=r.source,
                category=r.category,
                summary=r.summary,
                confidence=r.confidence,
                meta=r.metadata,
                created_at=now,
            )
            for r in records
        ]

    # ------------------------------------------------------------------
    # Agent memory
    # ------------------------------------------------------------------

    async def add_memory(self, records: Sequence[MemoryRecord]) -> list[MemoryEntry]:
        async with self._session() as session:
            now = utcnow()
            rows = [
                AgentMemoryRow(
                    agent_id=r.agent_id,
                    topic=r.topic,
                    summary=r.summary,
                    content=r.content,
                    importance=r.importance,
                    meta=r.metadata,
                    created_at=now,
                    updated_at=now,
                )
                for r in records
            ]
            session.add_all(rows)
            await session.flush()
            return [_to_memory(r) for r in rows]

    async def update_memory(self, memory_id: UUID, record: MemoryRecord) -> MemoryEntry | None:
        """Revise summary, content, importance and metadata. Owner and topic stay fixed."""
        async with self._session() as session:
            row = await session.get(AgentMemoryRow, memory_id)
            if row is None:
                return None
            row.summary = record.summary
            row.content = record.content
            row.importance = record.importance
            row.meta = record.metadata
            row.updated_at = utcnow()
            await session.flush()
            return _to_memory(row)

    async def list_memory(
        self,
        agent_id: str | None = None,
        topic: str | None = None,
        search: str | None = None,
        since: datetime | None = None,
        limit: int | None = 50,
    ) -> list[MemoryEntry]:
        async with self._session() as session:
            stmt = select(AgentMemoryRow).order_by(AgentMemoryRow.created_at.desc())
            if agent_id is not None:
                stmt = stmt.where(AgentMemoryRow.agent_id == agent_id)
            if topic is not None:
                stmt = stmt.where(AgentMemoryRow.topic == topic)
            if search:
                stmt = stmt.where(
                    or_(
                        AgentMemoryRow.summary.icontains(search, autoescape=True),
                        AgentMemoryRow.content.icontains(search, autoescape=True),
                    )
                )
            if since is not None:
                stmt = stmt.where(AgentMemoryRow.created_at >= since)
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [_to_memory(r) for r in result.scalars().all()]


# ------------------------------------------------------------------
# Row -> DTO converters
# ------------------------------------------------------------------


def _to_agent(row: AgentDefinitionRow) -> AgentDefinition:
    return AgentDefinition(
        id=row.id,
        name=row.name,
        role=row.role,
        prompt=row.prompt,
        provider=row.provider,
        model=row.model,
        temperature=row.temperature,
        enabled=row.enabled,
        version=row.version,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_link(row: AgentLinkRow) -> CollaborationLink:
    return CollaborationLink(
        id=row.id,
        source_agent=row.source_agent,
        target_agent=row.target_agent,
        kind=row.kind,
        strength=row.strength,
        context=row.context or {},
        created_at=as_utc(row.created_at),
    )


def _to_behavior(row: BehaviorRow) -> Behavior:
    return Behavior(
        id=row.id,
        agent_id=row.agent_id,
        name=row.name,
        description=row.description,
        action_type=row.action_type,
        trigger_type=row.trigger_type,
        config=row.config or {},
        enabled=row.enabled,
        last_run=as_utc(row.last_run),
        created_at=as_utc(row.created_at),
    )


def _to_run(row: RunRow) -> Run:
    return Run(
        id=row.id,
        agent_id=row.agent_id,
        behavior_id=row.behavior_id,
        conversation_id=row.conversation_id,
        input=row.input,
        output=row.output,
        provider=row.provider,
        model=row.model,
        duration_ms=row.duration_ms,
        success=row.success,
        error=row.error,
        created_at=as_utc(row.created_at),
    )


def _to_message(row: MessageRow) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_agent=row.sender_agent,
        receiver_agent=row.receiver_agent,
        content=row.content,
        created_at=as_utc(row.created_at),
    )


def _to_reflection(row: ReflectionRow) -> Reflection:
    return Reflection(
        id=row.id,
        agent_id=row.agent_id,
        behavior_id=row.behavior_id,
        kind=row.kind,
        summary=row.summary,
        content=row.content,
        confidence=row.confidence,
        metadata=row.meta or {},
        created_at=as_utc(row.created_at),
    )


def _to_snapshot(row: MetricSnapshotRow) -> MetricSnapshot:
    return MetricSnapshot(
        id=row.id,
        agent_id=row.agent_id,
        average_impact=row.average_impact,
        consistency=row.consistency,
        reflection_count=row.reflection_count,
        behavior_count=row.behavior_count,
        impact_samples=row.impact_samples,
        calculated_at=as_utc(row.calculated_at),
    )


def _to_leaderboard_row(row: LeaderboardRowModel) -> LeaderboardRow:
    return LeaderboardRow(
        agent_id=row.agent_id,
        rank_score=row.rank_score,
        impact_rank=row.impact_rank,
        consistency_rank=row.consistency_rank,
        collaboration_rank=row.collaboration_rank,
        impact_avg=row.impact_avg,
        consistency=row.consistency,
        collaboration_weight_sum=row.collaboration_weight_sum,
        computed_at=as_utc(row.computed_at),
    )


def _to_insight(row: InsightRow) -> Insight:
    return Insight(
        id=row.id,
        agent_id=row.agent_id,
        source=row.source,
        category=row.category,
        summary=row.summary,
        confidence=row.confidence,
        metadata=row.meta or {},
        created_at=as_utc(row.created_at),
    )


def _to_memory(row: AgentMemoryRow) -> MemoryEntry:
    return MemoryEntry(
        id=row.id,
        agent_id=row.agent_id,
        topic=row.topic,
        summary=row.summary,
        content=row.content,
        importance=row.importance,
        metadata=row.meta or {},
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
