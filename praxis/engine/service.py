"""PraxisService: the facade every transport (REST, scheduler, handlers) calls.

Each public method returns an Envelope and never raises. Components below it
raise typed PraxisErrors; this layer turns them into ``{success, data,
error, message}``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from praxis.config import Settings
from praxis.engine.agent_memory import AgentMemoryStore
from praxis.engine.collaborate import CollaborationFanout
from praxis.engine.feedback import FeedbackOptimizer
from praxis.engine.leaderboard import LeaderboardRanker, RankWeights
from praxis.engine.metrics import MetricsAggregator
from praxis.engine.reflection import ReflectionEngine
from praxis.engine.relay import ExecutionRelay
from praxis.engine.schemas import BatchItem, BatchReport, BehaviorRun, MemoryInput, ReflectionOverride
from praxis.errors import NotFoundError, PraxisError
from praxis.events import EventBus
from praxis.network.behaviors import BehaviorCache, BehaviorStore
from praxis.network.graph import CollaborationGraph
from praxis.network.registry import AgentRegistry
from praxis.network.schemas import AgentInput, BehaviorInput, LinkInput
from praxis.providers.base import ProviderRegistry

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

CYCLE_STAGES = ("sync", "reflect", "metrics", "leaderboard", "feedback")


class Envelope(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> "Envelope":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str) -> "Envelope":
        return cls(success=False, error=error, message=message)


def _parse_uuid(value: str | UUID, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise NotFoundError(f"{label} not found: {value}") from e


class PraxisService:
    """Wires the engine components over one repository and provider registry."""

    def __init__(
        self,
        repo: Repository,
        providers: ProviderRegistry,
        settings: Settings,
        bus: EventBus | None = None,
        cache: BehaviorCache | None = None,
    ) -> None:
        self.repo = repo
        self.providers = providers
        self.settings = settings
        self.bus = bus
        self.cache = cache or BehaviorCache(ttl_seconds=settings.behavior_cache_ttl)

        self.registry = AgentRegistry(repo, settings)
        self.graph = CollaborationGraph(repo)
        self.behaviors = BehaviorStore(repo, self.cache)
        self.relay_engine = ExecutionRelay(
            repo, self.registry, providers, bus=bus, history_limit=settings.relay_history_limit
        )
        self.fanout = CollaborationFanout(
            self.graph, self.behaviors, self.relay_engine, concurrency=settings.collaboration_concurrency
        )
        self.memory = AgentMemoryStore(
            repo, sync_limit=settings.memory_sync_limit, sync_window_hours=settings.memory_sync_window_hours
        )
        self.reflection = ReflectionEngine(
            repo,
            self.registry,
            providers,
            reflection_agent=settings.reflection_agent,
            default_limit=settings.reflection_memory_limit,
        )
        self.metrics = MetricsAggregator(repo, reflection_window=settings.metrics_reflection_window)
        self.ranker = LeaderboardRanker(
            repo,
            self.graph,
            RankWeights(
                impact=settings.rank_weight_impact,
                consistency=settings.rank_weight_consistency,
                collaboration=settings.rank_weight_collaboration,
            ),
        )
        self.optimizer = FeedbackOptimizer(
            repo,
            self.behaviors,
            window_days=settings.feedback_window_days,
            low_threshold=settings.feedback_low_threshold,
            high_threshold=settings.feedback_high_threshold,
            min_samples=settings.feedback_min_samples,
        )

    async def _guard(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Envelope:
        try:
            return Envelope.ok(await call())
        except PraxisError as e:
            logger.warning("%s failed (%s): %s", operation, e.code, e)
            return Envelope.fail(e.code, str(e))
        except SchemaError as e:
            return Envelope.fail("INVALID_INPUT", str(e))
        except Exception as e:
            logger.exception("%s failed unexpectedly", operation)
            return Envelope.fail("INTERNAL_ERROR", str(e))

    # ------------------------------------------------------------------
    # Registry + graph
    # ------------------------------------------------------------------

    async def register_agent(self, payload: AgentInput | dict[str, Any]) -> Envelope:
        async def call():
            data = payload if isinstance(payload, AgentInput) else AgentInput.model_validate(payload)
            return await self.registry.register(data)

        return await self._guard("register_agent", call)

    async def list_agents(self) -> Envelope:
        return await self._guard("list_agents", self.registry.list)

    async def link_agents(self, payload: LinkInput | dict[str, Any]) -> Envelope:
        async def call():
            data = payload if isinstance(payload, LinkInput) else LinkInput.model_validate(payload)
            return await self.graph.link(data)

        return await self._guard("link_agents", call)

    async def list_links(self) -> Envelope:
        return await self._guard("list_links", self.graph.list)

    async def network(self) -> Envelope:
        return await self._guard("network", self.graph.network)

    # ------------------------------------------------------------------
    # Behaviors
    # ------------------------------------------------------------------

    async def create_behavior(
        self,
        agent_id: str | None,
        action_type: str | None,
        config: dict[str, Any] | None = None,
        name: str | None = None,
        description: str | None = None,
        trigger_type: str | None = None,
        enabled: bool = True,
    ) -> Envelope:
        async def call():
            return await self.behaviors.create(
                BehaviorInput(
                    agent_id=agent_id or "",
                    action_type=action_type or "",
                    name=name,
                    description=description,
                    trigger_type=trigger_type,
                    config=config or {},
                    enabled=enabled,
                )
            )

        return await self._guard("create_behavior", call)

    async def list_behaviors(self, agent_id: str | None = None) -> Envelope:
        return await self._guard("list_behaviors", lambda: self.behaviors.list(agent_id=agent_id))

    async def run_behavior(self, behavior_id: str | UUID, parameters: dict[str, Any] | None = None) -> Envelope:
        """Operator-initiated run. Disabled behaviors may still be run by hand."""
        try:
            behavior = await self.behaviors.get(_parse_uuid(behavior_id, "Behavior"))
        except NotFoundError as e:
            return Envelope.fail("NOT_FOUND", str(e))
        except Exception as e:
            logger.exception("run_behavior lookup failed for %s", behavior_id)
            return Envelope.fail("EXECUTION_FAILED", str(e))
        try:
            outcome = await self.relay_engine.run_behavior(behavior, parameters or {})
        except Exception as e:
            if not isinstance(e, PraxisError):
                logger.exception("run_behavior %s failed unexpectedly", behavior_id)
            return Envelope.fail("EXECUTION_FAILED", str(e))
        return Envelope.ok(BehaviorRun(behavior=behavior, outcome=outcome))

    async def relay(
        self,
        conversation_id: str | None,
        sender_agent: str,
        receiver_agent: str,
        content: str,
    ) -> Envelope:
        return await self._guard(
            "relay",
            lambda: self.relay_engine.relay(conversation_id, sender_agent, receiver_agent, content),
        )

    async def collaborate(self, source_agent: str | None, max_links: int | None = None) -> Envelope:
        return await self._guard("collaborate", lambda: self.fanout.collaborate(source_agent or "", max_links))

    async def run_triggered(self, trigger_type: str | None = None) -> Envelope:
        """Run every enabled behavior with this trigger type, isolating failures."""
        trigger = trigger_type or self.settings.behavior_trigger

        async def call() -> BatchReport:
            report = BatchReport(label=f"trigger:{trigger}")
            for behavior in await self.behaviors.list(enabled=True, trigger_type=trigger):
                try:
                    await self.relay_engine.run_behavior(behavior, {"trigger": trigger}, autonomous=True)
                except Exception as e:
                    logger.warning("Triggered behavior %s failed: %s", behavior.id, e)
                    report.failed += 1
                    report.results.append(BatchItem(key=str(behavior.id), success=False, error=str(e)))
                else:
                    report.completed += 1
                    report.results.append(BatchItem(key=str(behavior.id), success=True))
            logger.info("Trigger %s: %d completed, %d failed", trigger, report.completed, report.failed)
            return report

        return await self._guard("run_triggered", call)

    # ------------------------------------------------------------------
    # Reflection
    # ------------------------------------------------------------------

    async def reflect(
        self,
        agent_id: str | None,
        override: ReflectionOverride | dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> Envelope:
        async def call():
            data = override
            if isinstance(data, dict):
                data = ReflectionOverride.model_validate(data)
            return await self.reflection.reflect(agent_id or "", limit=limit, override=data)

        return await self._guard("reflect", call)

    async def list_reflections(self, limit: int = 50) -> Envelope:
        return await self._guard("list_reflections", lambda: self.reflection.list_reflections(limit))

    async def reflect_all(self) -> Envelope:
        return await self._guard("reflect_all", self.reflection.reflect_all)

    # ------------------------------------------------------------------
    # Agent memory
    # ------------------------------------------------------------------

    async def list_memory(
        self,
        agent_id: str | None = None,
        topic: str | None = None,
        search: str | None = None,
        limit: int = 50,
    ) -> Envelope:
        return await self._guard(
            "list_memory", lambda: self.memory.list(agent_id=agent_id, topic=topic, search=search, limit=limit)
        )

    async def upsert_memory(self, payload: MemoryInput | dict[str, Any]) -> Envelope:
        async def call():
            data = payload if isinstance(payload, MemoryInput) else MemoryInput.model_validate(payload)
            return await self.memory.upsert(data)

        return await self._guard("upsert_memory", call)

    async def sync_memory(self) -> Envelope:
        async def call():
            return (await self.memory.sync_insights()).model_dump()

        return await self._guard("sync_memory", call)

    # ------------------------------------------------------------------
    # Metrics, leaderboard, feedback
    # ------------------------------------------------------------------

    async def recompute_metrics(self) -> Envelope:
        async def call():
            rows = await self.metrics.recompute()
            return {"updated": len(rows), "rows": rows}

        return await self._guard("recompute_metrics", call)

    async def list_metrics(self, limit: int = 200) -> Envelope:
        return await self._guard("list_metrics", lambda: self.metrics.list(limit))

    async def latest_metrics(self) -> Envelope:
        return await self._guard("latest_metrics", self.metrics.latest)

    async def rank_leaderboard(self) -> Envelope:
        async def call():
            report = await self.ranker.rank()
            return {"updated": len(report.rows), "rows": report.rows, "insights": report.insights}

        return await self._guard("rank_leaderboard", call)

    async def get_leaderboard(self, limit: int = 10) -> Envelope:
        async def call():
            report = await self.ranker.get(limit)
            return {"rows": report.rows, "insights": report.insights}

        return await self._guard("get_leaderboard", call)

    async def tune_behaviors(self) -> Envelope:
        async def call():
            return (await self.optimizer.tune()).model_dump()

        return await self._guard("tune_behaviors", call)

    async def run_cycle(self) -> Envelope:
        """sync_memory -> reflect_all -> recompute_metrics -> rank_leaderboard -> tune_behaviors.

        A failing stage is reported and the next one still runs.
        """
        stages = dict(
            zip(
                CYCLE_STAGES,
                (
                    self.sync_memory,
                    self.reflect_all,
                    self.recompute_metrics,
                    self.rank_leaderboard,
                    self.tune_behaviors,
                ),
            )
        )
        results: dict[str, Envelope] = {}
        for name, stage in stages.items():
            results[name] = await stage()
        failed = [name for name, env in results.items() if not env.success]
        message = f"cycle finished, failed stages: {', '.join(failed)}" if failed else "cycle finished"
        logger.info("Improvement %s", message)
        return Envelope.ok({"stages": results, "failed": failed}, message=message)
