"""Behavior store plus the TTL lookup cache used by collaboration fan-out."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING
from uuid import UUID

from praxis.errors import NotFoundError, ValidationError
from praxis.network.schemas import Behavior, BehaviorInput

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)


class BehaviorCache:
    """(agent_id, action_type) -> active behavior, with TTL expiry.

    Misses are cached too (as None) so a link pointing at an agent with no
    matching behavior does not hit the store on every fan-out.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[float, Behavior | None]] = {}

    def get(self, agent_id: str, action_type: str) -> tuple[bool, Behavior | None]:
        """Return (hit, behavior). A hit may carry None for a cached miss."""
        entry = self._entries.get((agent_id, action_type))
        if entry is None:
            return False, None
        stored_at, behavior = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[(agent_id, action_type)]
            return False, None
        return True, behavior

    def put(self, agent_id: str, action_type: str, behavior: Behavior | None) -> None:
        self._entries[(agent_id, action_type)] = (self._clock(), behavior)

    def invalidate(self, agent_id: str | None = None) -> None:
        """Drop entries for one agent, or everything when agent_id is None."""
        if agent_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[0] == agent_id]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class BehaviorStore:
    """Behavior CRUD over the repository. Writes invalidate the owner's cache entries."""

    def __init__(self, repo: Repository, cache: BehaviorCache | None = None) -> None:
        self.repo = repo
        self.cache = cache or BehaviorCache()

    async def create(self, input: BehaviorInput) -> Behavior:
        missing = [f for f in ("agent_id", "action_type") if not getattr(input, f, "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", code="MISSING_FIELDS")
        cleaned = input.model_copy(
            update={"agent_id": input.agent_id.strip(), "action_type": input.action_type.strip()}
        )
        behavior = await self.repo.add_behavior(cleaned)
        self.cache.invalidate(behavior.agent_id)
        logger.info(
            "Created behavior %s (%s/%s, trigger=%s)",
            behavior.id,
            behavior.agent_id,
            behavior.action_type,
            behavior.trigger_type,
        )
        return behavior

    async def get(self, behavior_id: UUID) -> Behavior:
        behavior = await self.repo.get_behavior(behavior_id)
        if behavior is None:
            raise NotFoundError(f"Behavior not found: {behavior_id}")
        return behavior

    async def list(
        self,
        agent_id: str | None = None,
        enabled: bool | None = None,
        trigger_type: str | None = None,
    ) -> list[Behavior]:
        return await self.repo.list_behaviors(agent_id=agent_id, enabled=enabled, trigger_type=trigger_type)

    async def find_active(self, agent_id: str, action_type: str) -> Behavior | None:
        """Newest enabled behavior for (agent, action), served from the cache when fresh."""
        hit, behavior = self.cache.get(agent_id, action_type)
        if hit:
            return behavior
        behavior = await self.repo.find_active_behavior(agent_id, action_type)
        self.cache.put(agent_id, action_type, behavior)
        return behavior

    async def set_enabled(self, behavior_id: UUID, enabled: bool) -> Behavior:
        behavior = await self.repo.set_behavior_enabled(behavior_id, enabled)
        if behavior is None:
            raise NotFoundError(f"Behavior not found: {behavior_id}")
        self.cache.invalidate(behavior.agent_id)
        return behavior
