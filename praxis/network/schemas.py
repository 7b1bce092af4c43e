"""Pydantic DTOs for the agent network: definitions, links, behaviors.

These models define the public contract for the network module.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

CollaborationKind = Literal["relay", "assist", "analyze"]


# --- Agents ---


class AgentInput(BaseModel):
    """Operator input for registering (or revising) an agent definition."""

    id: str | None = None
    name: str
    role: str | None = None
    prompt: str
    provider: str = "local"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7  # clamped to [0, 1] by the registry
    enabled: bool = True
    version: int | None = None


class AgentDefinition(BaseModel):
    id: str
    name: str
    role: str | None = None
    prompt: str
    provider: str
    model: str
    temperature: float = Field(ge=0.0, le=1.0)
    enabled: bool = True
    version: int = Field(default=1, ge=1)
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- Collaboration links ---


class LinkInput(BaseModel):
    source_agent: str
    target_agent: str
    kind: str = "relay"
    strength: float | None = None
    context: dict[str, Any] = {}


class CollaborationLink(BaseModel):
    id: UUID
    source_agent: str
    target_agent: str
    kind: CollaborationKind
    strength: float = Field(ge=0.0, le=1.0)
    context: dict[str, Any] = {}
    created_at: datetime


class NetworkGraph(BaseModel):
    nodes: list[str]
    links: list[CollaborationLink]


# --- Behaviors ---


class BehaviorInput(BaseModel):
    agent_id: str
    action_type: str
    name: str | None = None
    description: str | None = None
    trigger_type: str | None = None  # daily, manual, collaborate, ...
    config: dict[str, Any] = {}
    enabled: bool = True


class Behavior(BaseModel):
    id: UUID
    agent_id: str
    name: str
    description: str | None = None
    action_type: str
    trigger_type: str | None = None
    config: dict[str, Any] = {}
    enabled: bool = True
    last_run: datetime | None = None
    created_at: datetime
