"""Collaboration fan-out: run each outgoing link's target behavior."""

from __future__ import annotations

import asyncio
import logging
import math

from praxis.engine.relay import ExecutionRelay
from praxis.engine.schemas import CollaborationReport, CollaborationResult
from praxis.errors import ValidationError
from praxis.network.behaviors import BehaviorStore
from praxis.network.graph import DEFAULT_STRENGTH, CollaborationGraph, action_for_kind, normalize_kind
from praxis.network.schemas import CollaborationLink

logger = logging.getLogger(__name__)


def link_window(total: int, max_links: int | float | None) -> int:
    """How many of ``total`` links to execute: all, or max(1, min(max_links, total))."""
    if max_links is None or isinstance(max_links, bool):
        return total
    if not math.isfinite(max_links):
        return total
    return max(1, min(int(max_links), total))


class CollaborationFanout:
    """Executes a source agent's outgoing links, at most ``concurrency`` at a time."""

    def __init__(
        self,
        graph: CollaborationGraph,
        behaviors: BehaviorStore,
        relay: ExecutionRelay,
        concurrency: int = 1,
    ) -> None:
        self.graph = graph
        self.behaviors = behaviors
        self.relay = relay
        self.concurrency = max(1, concurrency)

    async def collaborate(self, source_agent: str, max_links: int | None = None) -> CollaborationReport:
        """Execute the newest outgoing links of ``source_agent``.

        Per-link failures land in the report. Only a failure to load the
        link list propagates (as PersistenceError from the repository).
        """
        source = (source_agent or "").strip()
        if not source:
            raise ValidationError("source_agent is required", code="MISSING_SOURCE_AGENT")

        links = await self.graph.links_from(source)
        selected = links[: link_window(len(links), max_links)]

        if self.concurrency == 1:
            results = [await self._execute(source, link) for link in selected]
        else:
            gate = asyncio.Semaphore(self.concurrency)

            async def bounded(link: CollaborationLink) -> CollaborationResult:
                async with gate:
                    return await self._execute(source, link)

            results = list(await asyncio.gather(*(bounded(link) for link in selected)))

        failed = sum(1 for r in results if not r.success)
        logger.info("Collaboration from %s: %d link(s) executed, %d failed", source, len(results), failed)
        return CollaborationReport(source_agent=source, links_executed=len(results), results=results)

    async def _execute(self, source: str, link: CollaborationLink) -> CollaborationResult:
        kind = normalize_kind(link.kind)
        action_type = action_for_kind(kind)
        base = {"link_id": link.id, "target_agent": link.target_agent, "kind": kind, "action_type": action_type}
        try:
            behavior = await self.behaviors.find_active(link.target_agent, action_type)
            if behavior is None:
                return CollaborationResult(
                    **base,
                    success=False,
                    error=f"no enabled behavior for {link.target_agent} with action {action_type}",
                )
            outcome = await self.relay.run_behavior(
                behavior,
                {
                    "trigger": "collaborate",
                    "source_agent": source,
                    "strength": link.strength if link.strength is not None else DEFAULT_STRENGTH,
                    "context": link.context or {},
                },
                autonomous=True,
            )
            return CollaborationResult(**base, success=True, outcome=outcome)
        except Exception as e:
            logger.warning("Link %s (%s -> %s) failed: %s", link.id, source, link.target_agent, e)
            return CollaborationResult(**base, success=False, error=str(e))
