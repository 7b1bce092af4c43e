"""Collaboration graph: directed, weighted links between agents."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from praxis.errors import ValidationError
from praxis.network.schemas import CollaborationLink, LinkInput, NetworkGraph
from praxis.utils import clamp, coerce_number

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

LINK_KINDS = ("relay", "assist", "analyze")
DEFAULT_STRENGTH = 0.5


def normalize_kind(kind: str | None) -> str:
    """Unknown or empty kinds become ``relay``."""
    value = (kind or "").strip().lower()
    return value if value in LINK_KINDS else "relay"


def action_for_kind(kind: str | None) -> str:
    """Action type a link of this kind executes on its target (``assist`` runs as ``relay``)."""
    value = normalize_kind(kind)
    return "relay" if value == "assist" else value


def link_strength(value: object) -> float:
    number = coerce_number(value)
    return DEFAULT_STRENGTH if number is None else clamp(number)


class CollaborationGraph:
    """Directed links between agents. Link kinds and strengths are normalized on write."""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    async def link(self, input: LinkInput) -> CollaborationLink:
        source = input.source_agent.strip()
        target = input.target_agent.strip()
        if not source or not target:
            raise ValidationError("source_agent and target_agent are required", code="MISSING_FIELDS")
        if source == target:
            logger.warning("Self-loop link on agent %s", source)
        kind = normalize_kind(input.kind)
        if kind != (input.kind or "").strip().lower():
            logger.info("Link kind %r normalized to %s", input.kind, kind)

        saved = await self.repo.add_link(
            LinkInput(
                source_agent=source,
                target_agent=target,
                kind=kind,
                strength=link_strength(input.strength),
                context=input.context,
            )
        )
        logger.info("Linked %s -> %s (%s, %.2f)", source, target, kind, saved.strength)
        return saved

    async def list(self) -> list[CollaborationLink]:
        return await self.repo.list_links()

    async def links_from(self, source_agent: str, limit: int | None = None) -> list[CollaborationLink]:
        """Outgoing links, newest first."""
        return await self.repo.list_links(source_agent=source_agent, limit=limit)

    async def network(self) -> NetworkGraph:
        links = await self.repo.list_links()
        agents = await self.repo.list_agents()
        nodes = {a.id for a in agents}
        for lk in links:
            nodes.add(lk.source_agent)
            nodes.add(lk.target_agent)
        return NetworkGraph(nodes=sorted(nodes), links=links)

    async def collaboration_weights(self) -> dict[str, float]:
        """Sum of link strength per agent over incoming and outgoing links.

        A self-loop counts on both ends.
        """
        weights: dict[str, float] = defaultdict(float)
        for lk in await self.repo.list_links():
            weights[lk.source_agent] += lk.strength
            weights[lk.target_agent] += lk.strength
        return dict(weights)
