"""Reflection engine: turns recent runs and memory into a scored self-evaluation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from praxis.engine.parsing import ParseError, ParsedReflection, parse_reflection
from praxis.engine.schemas import (
    BatchItem,
    BatchReport,
    MemoryEntry,
    Reflection,
    ReflectionOverride,
    ReflectionRecord,
    Run,
)
from praxis.errors import UpstreamError, ValidationError
from praxis.network.registry import AgentRegistry
from praxis.network.schemas import Behavior
from praxis.providers.base import ProviderRegistry
from praxis.utils import clamp

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.2
FALLBACK_IMPACT = 0.0
SNIPPET_CHARS = 280


def neutral_reflection_text(agent_id: str) -> str:
    return "\n".join(
        [
            f"Agent {agent_id} reviewed recent logs but found no new memory entries.",
            "Reflection: No new information to summarize.",
            "Impact: 0.0",
            "Confidence: 0.5",
        ]
    )


def _run_snippet(run: Run) -> str:
    status = "ok" if run.success else "failed"
    body = run.output if run.success else run.error
    text = " ".join((body or "").split())[:SNIPPET_CHARS]
    return f"[{status}] behavior={run.behavior_id or '-'} {text}"


def build_reflection_prompt(
    agent_id: str,
    runs: list[Run],
    behaviors: list[Behavior],
    memory: Sequence[MemoryEntry] = (),
) -> str:
    lines = [
        f"You are analyzing the latest work done by agent {agent_id}.",
        "Summarize the key learnings succinctly and identify which autonomous behaviors produced the most impact.",
        "Format your response as:",
        "- Reflection: <summary>",
        "- Impact Score: <0-1>",
        "- Confidence: <0-1>",
        "- Behavior: <behavior name or id if known>",
        "",
        "Behaviors:",
    ]
    lines += [f"- {b.id} ({b.name}) [{'enabled' if b.enabled else 'disabled'}]" for b in behaviors] or ["- none"]
    lines += ["", "Recent runs:"]
    lines += [f"{i}. {_run_snippet(run)}" for i, run in enumerate(runs, start=1)] or ["- none"]
    if memory:
        lines += ["", "Memory:"]
        lines += [f"- Topic: {m.topic} | Summary: {m.summary or m.content}" for m in memory]
    return "\n".join(lines)


class ReflectionEngine:
    """Writes auto and manual reflections.

    Auto reflections read the agent's recent runs and memory entries and ask
    a provider (the configured reflection agent, else the agent itself) to
    score them. The row is written whatever the provider does.
    """

    def __init__(
        self,
        repo: Repository,
        registry: AgentRegistry,
        providers: ProviderRegistry,
        reflection_agent: str = "",
        default_limit: int = 20,
    ) -> None:
        self.repo = repo
        self.registry = registry
        self.providers = providers
        self.reflection_agent = reflection_agent
        self.default_limit = default_limit

    async def reflect(
        self,
        agent_id: str,
        limit: int | None = None,
        override: ReflectionOverride | None = None,
    ) -> Reflection:
        """Write one reflection for ``agent_id``.

        With an override the provider is bypassed and the row is ``manual``.
        Otherwise the agent's recent runs and memory are summarized by a provider; when
        that provider fails, a low-confidence fallback row is written instead.
        """
        agent_id = (agent_id or "").strip()
        if not agent_id:
            raise ValidationError("agent_id is required", code="MISSING_FIELDS")
        if override is not None:
            return await self._reflect_manual(agent_id, override)

        runs = await self.repo.list_runs(agent_id=agent_id, limit=limit or self.default_limit)
        memory = await self.repo.list_memory(agent_id=agent_id, limit=limit or self.default_limit)
        behaviors = await self.repo.list_behaviors(agent_id=agent_id)
        metadata: dict[str, Any] = {
            "memory_count": len(memory),
            "run_count": len(runs),
            "behavior_count": len(behaviors),
        }

        if not (runs or memory):
            parsed = self._unwrap(parse_reflection(neutral_reflection_text(agent_id), behaviors), metadata)
            metadata["source"] = "neutral"
        else:
            prompt = build_reflection_prompt(agent_id, runs, behaviors, memory)
            try:
                text = await self._generate(agent_id, prompt)
            except UpstreamError as e:
                logger.warning("Reflection provider failed for %s, storing fallback: %s", agent_id, e)
                parsed = ParsedReflection(
                    summary="Reflection provider unavailable. Unable to generate reflection.",
                    content=f"Reflection provider unavailable: {e}",
                    impact=FALLBACK_IMPACT,
                    confidence=FALLBACK_CONFIDENCE,
                )
                metadata.update(source="fallback", error=str(e))
            else:
                parsed = self._unwrap(parse_reflection(text, behaviors), metadata)
                metadata["source"] = "provider"

        metadata["impact"] = parsed.impact
        if parsed.defaulted:
            metadata["defaulted"] = parsed.defaulted
        if parsed.behavior_ref is not None:
            metadata["behavior_ref"] = parsed.behavior_ref

        reflection = await self.repo.add_reflection(
            ReflectionRecord(
                agent_id=agent_id,
                behavior_id=parsed.behavior_id,
                kind="auto",
                summary=parsed.summary,
                content=parsed.content,
                confidence=clamp(parsed.confidence),
                metadata=metadata,
            )
        )
        logger.info(
            "Reflection %s for %s (impact=%.2f, confidence=%.2f, source=%s)",
            reflection.id,
            agent_id,
            parsed.impact,
            reflection.confidence,
            metadata["source"],
        )
        return reflection

    async def _reflect_manual(self, agent_id: str, override: ReflectionOverride) -> Reflection:
        if not (override.summary or override.content):
            raise ValidationError("Reflection override needs a summary or content", code="MISSING_FIELDS")
        metadata = dict(override.metadata)
        if override.impact is not None:
            metadata["impact"] = override.impact
        summary = override.summary or "Manual reflection"
        return await self.repo.add_reflection(
            ReflectionRecord(
                agent_id=agent_id,
                behavior_id=override.behavior_id,
                kind="manual",
                summary=summary,
                content=override.content or summary,
                confidence=clamp(override.confidence),
                metadata=metadata,
            )
        )

    @staticmethod
    def _unwrap(result: ParsedReflection | ParseError, metadata: dict[str, Any]) -> ParsedReflection:
        if isinstance(result, ParseError):
            metadata["parse_error"] = result.reason
            return result.fallback
        return result

    async def _generate(self, agent_id: str, prompt: str) -> str:
        writer = await self.registry.resolve(self.reflection_agent or agent_id)
        return await self.providers.generate(writer.provider, prompt, writer.model, writer.temperature)

    async def list_reflections(self, limit: int = 50) -> list[Reflection]:
        return await self.repo.list_reflections(limit=limit)

    async def reflect_all(self) -> BatchReport:
        """Reflect every agent that owns at least one enabled behavior."""
        behaviors = await self.repo.list_behaviors(enabled=True)
        agent_ids = sorted({b.agent_id for b in behaviors})
        report = BatchReport(label="reflect")
        for agent_id in agent_ids:
            try:
                await self.reflect(agent_id)
            except Exception as e:
                logger.exception("Reflection sweep failed for %s", agent_id)
                report.failed += 1
                report.results.append(BatchItem(key=agent_id, success=False, error=str(e)))
            else:
                report.completed += 1
                report.results.append(BatchItem(key=agent_id, success=True))
        return report
