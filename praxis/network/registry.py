"""Agent registry: operator-managed agent definitions."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from praxis.config import Settings
from praxis.errors import NotFoundError, ValidationError
from praxis.network.schemas import AgentDefinition, AgentInput
from praxis.utils import clamp

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_REVISED_FIELDS = ("name", "role", "prompt", "provider", "model", "temperature", "enabled")


def slugify(name: str) -> str:
    return _SLUG_STRIP.sub("-", name.lower()).strip("-")


class AgentRegistry:
    """Versioned agent definitions, plus the settings-built fallback used when
    an agent that owns behaviors was never registered.
    """

    def __init__(self, repo: Repository, settings: Settings) -> None:
        self.repo = repo
        self.settings = settings

    async def register(self, input: AgentInput) -> AgentDefinition:
        """Create or revise an agent definition.

        Temperature is clamped to [0, 1]. Re-registering an existing id with a
        changed definition bumps its version unless the caller pins a higher
        one; an identical re-registration returns the stored row untouched.
        """
        if not input.name.strip() or not input.prompt.strip():
            raise ValidationError("Agent name and prompt are required", code="MISSING_FIELDS")
        agent_id = (input.id or slugify(input.name)).strip()
        if not agent_id:
            raise ValidationError("Agent id could not be derived from name", code="MISSING_FIELDS")

        existing = await self.repo.get_agent(agent_id)
        definition = AgentDefinition(
            id=agent_id,
            name=input.name.strip(),
            role=input.role,
            prompt=input.prompt,
            provider=input.provider.strip().lower() or self.settings.default_provider,
            model=input.model,
            temperature=clamp(input.temperature),
            enabled=input.enabled,
            version=max(1, input.version or 1),
            created_at=existing.created_at if existing else None,
        )
        if existing is not None:
            pinned = definition.version > existing.version
            if not pinned and all(getattr(definition, f) == getattr(existing, f) for f in _REVISED_FIELDS):
                logger.debug("Agent %s unchanged, keeping v%d", agent_id, existing.version)
                return existing
            definition.version = max(definition.version, existing.version + 1)
        saved = await self.repo.save_agent(definition)
        logger.info("Registered agent %s v%d (%s/%s)", saved.id, saved.version, saved.provider, saved.model)
        return saved

    async def get(self, agent_id: str) -> AgentDefinition:
        definition = await self.repo.get_agent(agent_id)
        if definition is None:
            raise NotFoundError(f"Agent not found: {agent_id}")
        return definition

    async def list(self) -> list[AgentDefinition]:
        return await self.repo.list_agents()

    async def resolve(self, agent_id: str) -> AgentDefinition:
        """Stored definition, or a default one built from settings when none exists."""
        definition = await self.repo.get_agent(agent_id)
        if definition is not None:
            return definition
        logger.debug("No definition for %s, using default provider %s", agent_id, self.settings.default_provider)
        return AgentDefinition(
            id=agent_id,
            name=agent_id,
            prompt=self.settings.default_prompt,
            provider=self.settings.default_provider,
            model=self.settings.default_model,
            temperature=self.settings.default_temperature,
        )
