"""Agent network: registry, collaboration graph, and behavior store.

Schemas:
    AgentInput, AgentDefinition, LinkInput, CollaborationLink,
    NetworkGraph, BehaviorInput, Behavior
"""

from praxis.network.schemas import (
    AgentDefinition,
    AgentInput,
    Behavior,
    BehaviorInput,
    CollaborationLink,
    LinkInput,
    NetworkGraph,
)

__all__ = [
    "AgentDefinition",
    "AgentInput",
    "Behavior",
    "BehaviorInput",
    "CollaborationLink",
    "LinkInput",
    "NetworkGraph",
]
