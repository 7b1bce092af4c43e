"""In-process repository for tests and the ``memory`` storage backend.

Mirrors SqlRepository's ordering rules: "newest first" everywhere, with
insertion order breaking timestamp ties.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TypeVar
from uuid import UUID, uuid4

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
from praxis.network.schemas import (
    AgentDefinition,
    Behavior,
    BehaviorInput,
    CollaborationLink,
    LinkInput,
)
from praxis.utils import utcnow

T = TypeVar("T")


def _newest_first(items: Iterable[T], key: Callable[[T], datetime]) -> list[T]:
    return sorted(reversed(list(items)), key=key, reverse=True)


class InMemoryRepository:
    """Dict/list backed Repository. ``clock`` lets tests place rows in time."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock
        self.agents: dict[str, AgentDefinition] = {}
        self.links: list[CollaborationLink] = []
        self.behaviors: dict[UUID, Behavior] = {}
        self.runs: list[Run] = []
        self.messages: list[Message] = []
        self.reflections: list[Reflection] = []
        self.snapshots: list[MetricSnapshot] = []
        self.leaderboard: list[LeaderboardRow] = []
        self.insights: list[Insight] = []
        self.memory: list[MemoryEntry] = []

    # Agents

    async def save_agent(self, definition: AgentDefinition) -> AgentDefinition:
        now = self.clock()
        existing = self.agents.get(definition.id)
        created = existing.created_at if existing else (definition.created_at or now)
        saved = definition.model_copy(update={"created_at": created, "updated_at": now})
        self.agents[saved.id] = saved
        return saved

    async def get_agent(self, agent_id: str) -> AgentDefinition | None:
        return self.agents.get(agent_id)

    async def list_agents(self) -> list[AgentDefinition]:
        return sorted(self.agents.values(), key=lambda a: a.id)

    # Links

    async def add_link(self, link: LinkInput) -> CollaborationLink:
        saved = CollaborationLink(
            id=uuid4(),
            source_agent=link.source_agent,
            target_agent=link.target_agent,
            kind=link.kind,
            strength=link.strength if link.strength is not None else 0.5,
            context=link.context,
            created_at=self.clock(),
        )
        self.links.append(saved)
        return saved

    async def list_links(self, source_agent: str | None = None, limit: int | None = None) -> list[CollaborationLink]:
        links = [lk for lk in self.links if source_agent is None or lk.source_agent == source_agent]
        links = _newest_first(links, lambda lk: lk.created_at)
        return links if limit is None else links[:limit]

    # Behaviors

    async def add_behavior(self, behavior: BehaviorInput) -> Behavior:
        saved = Behavior(
            id=uuid4(),
            agent_id=behavior.agent_id,
            name=behavior.name or behavior.action_type,
            description=behavior.description,
            action_type=behavior.action_type,
            trigger_type=behavior.trigger_type,
            config=behavior.config,
            enabled=behavior.enabled,
            created_at=self.clock(),
        )
        self.behaviors[saved.id] = saved
        return saved

    async def get_behavior(self, behavior_id: UUID) -> Behavior | None:
        return self.behaviors.get(behavior_id)

    async def list_behaviors(
        self,
        agent_id: str | None = None,
        enabled: bool | None = None,
        trigger_type: str | None = None,
    ) -> list[Behavior]:
        found = [
            b
            for b in self.behaviors.values()
            if (agent_id is None or b.agent_id == agent_id)
            and (enabled is None or b.enabled == enabled)
            and (trigger_type is None or b.trigger_type == trigger_type)
        ]
        return _newest_first(found, lambda b: b.created_at)

    async def find_active_behavior(self, agent_id: str, action_type: str) -> Behavior | None:
        for b in await self.list_behaviors(agent_id=agent_id, enabled=True):
            if b.action_type == action_type:
                return b
        return None

    async def set_behavior_enabled(self, behavior_id: UUID, enabled: bool) -> Behavior | None:
        current = self.behaviors.get(behavior_id)
        if current is None:
            return None
        updated = current.model_copy(update={"enabled": enabled})
        self.behaviors[behavior_id] = updated
        return updated

    async def touch_behavior(self, behavior_id: UUID, when: datetime) -> None:
        current = self.behaviors.get(behavior_id)
        if current is not None:
            self.behaviors[behavior_id] = current.model_copy(update={"last_run": when})

    # Runs + messages

    async def add_run(self, run: RunRecord) -> Run:
        saved = Run(**run.model_dump(), id=uuid4(), created_at=self.clock())
        self.runs.append(saved)
        return saved

    async def list_runs(self, agent_id: str | None = None, limit: int = 20) -> list[Run]:
        runs = [r for r in self.runs if agent_id is None or r.agent_id == agent_id]
        return _newest_first(runs, lambda r: r.created_at)[:limit]

    async def add_message(self, message: MessageRecord) -> Message:
        saved = Message(**message.model_dump(), id=uuid4(), created_at=self.clock())
        self.messages.append(saved)
        return saved

    async def list_messages(self, conversation_id: str, limit: int = 5) -> list[Message]:
        msgs = [m for m in self.messages if m.conversation_id == conversation_id]
        return _newest_first(msgs, lambda m: m.created_at)[:limit]

    # Reflections

    async def add_reflection(self, reflection: ReflectionRecord) -> Reflection:
        saved = Reflection(**reflection.model_dump(), id=uuid4(), created_at=self.clock())
        self.reflections.append(saved)
        return saved

    async def list_reflections(
        self,
        limit: int = 50,
        agent_id: str | None = None,
        since: datetime | None = None,
        behavior_linked: bool = False,
    ) -> list[Reflection]:
        found = [
            r
            for r in self.reflections
            if (agent_id is None or r.agent_id == agent_id)
            and (since is None or r.created_at >= since)
            and (not behavior_linked or r.behavior_id is not None)
        ]
        return _newest_first(found, lambda r: r.created_at)[:limit]

    # Metrics

    async def add_metric_snapshots(self, snapshots: Sequence[MetricSnapshotRecord]) -> list[MetricSnapshot]:
        saved = [MetricSnapshot(**s.model_dump(), id=uuid4()) for s in snapshots]
        self.snapshots.extend(saved)
        return saved

    async def list_metric_snapshots(self, limit: int = 200, agent_id: str | None = None) -> list[MetricSnapshot]:
        found = [s for s in self.snapshots if agent_id is None or s.agent_id == agent_id]
        return _newest_first(found, lambda s: s.calculated_at)[:limit]

    async def latest_metric_snapshots(self, per_agent: int = 1) -> list[MetricSnapshot]:
        by_agent: dict[str, list[MetricSnapshot]] = {}
        for snap in _newest_first(self.snapshots, lambda s: s.calculated_at):
            bucket = by_agent.setdefault(snap.agent_id, [])
            if len(bucket) < per_agent:
                bucket.append(snap)
        return [s for agent_id in sorted(by_agent) for s in by_agent[agent_id]]

    # Leaderboard

    async def replace_leaderboard(self, rows: Sequence[LeaderboardRow]) -> None:
        self.leaderboard = list(rows)

    async def list_leaderboard(self, limit: int | None = None) -> list[LeaderboardRow]:
        rows = sorted(self.leaderboard, key=lambda r: (-r.rank_score, r.agent_id))
        return rows if limit is None else rows[:limit]

    # Insights

    async def add_insights(self, records: Sequence[InsightRecord]) -> list[Insight]:
        now = self.clock()
        saved = [Insight(**r.model_dump(), id=uuid4(), created_at=now) for r in records]
        self.insights.extend(saved)
        return saved

    async def replace_insights(self, source: str, records: Sequence[InsightRecord]) -> list[Insight]:
        self.insights = [i for i in self.insights if i.source != source]
        return await self.add_insights(records)

    async def list_insights(
        self, source: str | None = None, limit: int = 50, since: datetime | None = None
    ) -> list[Insight]:
        found = [
            i
            for i in self.insights
            if (source is None or i.source == source) and (since is None or i.created_at >= since)
        ]
        return _newest_first(found, lambda i: i.created_at)[:limit]

    # Agent memory

    async def add_memory(self, records: Sequence[MemoryRecord]) -> list[MemoryEntry]:
        now = self.clock()
        saved = [MemoryEntry(**r.model_dump(), id=uuid4(), created_at=now, updated_at=now) for r in records]
        self.memory.extend(saved)
        return saved

    async def update_memory(self, memory_id: UUID, record: MemoryRecord) -> MemoryEntry | None:
        for position, entry in enumerate(self.memory):
            if entry.id == memory_id:
                updated = entry.model_copy(
                    update={
                        "summary": record.summary,
                        "content": record.content,
                        "importance": record.importance,
                        "metadata": record.metadata,
                        "updated_at": self.clock(),
                    }
                )
                self.memory[position] = updated
                return updated
        return None

    async def list_memory(
        self,
        agent_id: str | None = None,
        topic: str | None = None,
        search: str | None = None,
        since: datetime | None = None,
        limit: int | None = 50,
    ) -> list[MemoryEntry]:
        needle = (search or "").lower()
        found = [
            m
            for m in self.memory
            if (agent_id is None or m.agent_id == agent_id)
            and (topic is None or m.topic == topic)
            and (not needle or needle in (m.summary or "").lower() or needle in m.content.lower())
            and (since is None or m.created_at >= since)
        ]
        found = _newest_first(found, lambda m: m.created_at)
        return found if limit is None else found[:limit]
