"""Tests for the agent registry, collaboration graph, and behavior store."""

from uuid import uuid4

import pytest

from praxis.errors import NotFoundError, ValidationError
from praxis.network.behaviors import BehaviorCache, BehaviorStore
from praxis.network.graph import CollaborationGraph, action_for_kind, link_strength, normalize_kind
from praxis.network.registry import AgentRegistry, slugify
from praxis.network.schemas import AgentInput, BehaviorInput, LinkInput
from tests.conftest import agent_input


class TestAgentRegistry:
    async def test_register_and_get(self, repo, settings):
        registry = AgentRegistry(repo, settings)
        saved = await registry.register(agent_input("agent_researcher", provider="OpenAI ", temperature=1.7))

        assert saved.version == 1
        assert saved.provider == "openai"
        assert saved.temperature == 1.0
        assert (await registry.get("agent_researcher")).id == "agent_researcher"

    async def test_id_derived_from_name(self, repo, settings):
        saved = await AgentRegistry(repo, settings).register(AgentInput(name="Chief Editor!", prompt="p"))
        assert saved.id == "chief-editor"

    async def test_reregister_bumps_version(self, repo, settings):
        registry = AgentRegistry(repo, settings)
        first = await registry.register(agent_input("agent_writer"))
        second = await registry.register(agent_input("agent_writer", prompt="New persona"))

        assert second.version == first.version + 1
        assert second.created_at == first.created_at
        assert second.prompt == "New persona"
        assert len(await registry.list()) == 1

    async def test_identical_reregister_keeps_version(self, repo, settings, clock):
        registry = AgentRegistry(repo, settings)
        first = await registry.register(agent_input("agent_writer", temperature=1.4))
        clock.advance(minutes=5)

        again = await registry.register(agent_input("agent_writer", provider=" SCRIPTED", temperature=3))

        assert again.version == 1
        assert again.updated_at == first.updated_at

        toggled = await registry.register(agent_input("agent_writer", enabled=False))
        assert toggled.version == 2

    async def test_pinned_version_respected_when_higher(self, repo, settings):
        registry = AgentRegistry(repo, settings)
        await registry.register(agent_input("agent_writer"))
        saved = await registry.register(agent_input("agent_writer", version=7))
        assert saved.version == 7

    @pytest.mark.parametrize("field", ["name", "prompt"])
    async def test_missing_fields(self, repo, settings, field):
        with pytest.raises(ValidationError) as exc:
            await AgentRegistry(repo, settings).register(agent_input("agent_x", **{field: "  "}))
        assert exc.value.code == "MISSING_FIELDS"

    async def test_get_unknown(self, repo, settings):
        with pytest.raises(NotFoundError):
            await AgentRegistry(repo, settings).get("nobody")

    async def test_resolve_falls_back_to_settings(self, repo, settings):
        resolved = await AgentRegistry(repo, settings).resolve("agent_ghost")
        assert resolved.provider == settings.default_provider
        assert resolved.model == settings.default_model
        assert repo.agents == {}

    def test_slugify(self):
        assert slugify("  Data  Analyst #2 ") == "data-analyst-2"


class TestCollaborationGraph:
    @pytest.mark.parametrize(
        "kind,expected",
        [("relay", "relay"), ("ASSIST", "assist"), ("analyze", "analyze"), ("gossip", "relay"), (None, "relay")],
    )
    def test_normalize_kind(self, kind, expected):
        assert normalize_kind(kind) == expected

    def test_assist_executes_as_relay(self):
        assert action_for_kind("assist") == "relay"
        assert action_for_kind("analyze") == "analyze"

    @pytest.mark.parametrize("value,expected", [(None, 0.5), ("0.3", 0.3), (2.0, 1.0), (-1, 0.0), ("strong", 0.5)])
    def test_link_strength(self, value, expected):
        assert link_strength(value) == expected

    async def test_link_normalizes(self, repo):
        link = await CollaborationGraph(repo).link(
            LinkInput(source_agent=" agent_a ", target_agent="agent_b", kind="unknown", strength=3)
        )
        assert link.source_agent == "agent_a"
        assert link.kind == "relay"
        assert link.strength == 1.0

    async def test_missing_endpoint_rejected(self, repo):
        with pytest.raises(ValidationError) as exc:
            await CollaborationGraph(repo).link(LinkInput(source_agent="agent_a", target_agent=""))
        assert exc.value.code == "MISSING_FIELDS"

    async def test_self_loop_allowed(self, repo):
        graph = CollaborationGraph(repo)
        await graph.link(LinkInput(source_agent="agent_a", target_agent="agent_a", strength=0.4))
        assert (await graph.collaboration_weights()) == {"agent_a": pytest.approx(0.8)}

    async def test_network_nodes_include_link_endpoints(self, repo, settings):
        await AgentRegistry(repo, settings).register(agent_input("agent_solo"))
        graph = CollaborationGraph(repo)
        await graph.link(LinkInput(source_agent="agent_b", target_agent="agent_a"))

        network = await graph.network()
        assert network.nodes == ["agent_a", "agent_b", "agent_solo"]
        assert len(network.links) == 1

    async def test_collaboration_weights_sum_both_directions(self, repo):
        graph = CollaborationGraph(repo)
        await graph.link(LinkInput(source_agent="agent_a", target_agent="agent_b", strength=0.8))
        await graph.link(LinkInput(source_agent="agent_c", target_agent="agent_a", strength=0.2))

        weights = await graph.collaboration_weights()
        assert weights == {"agent_a": pytest.approx(1.0), "agent_b": 0.8, "agent_c": 0.2}

    async def test_links_from_newest_first(self, repo):
        graph = CollaborationGraph(repo)
        for target in ("agent_b", "agent_c"):
            await graph.link(LinkInput(source_agent="agent_a", target_agent=target))
        await graph.link(LinkInput(source_agent="agent_x", target_agent="agent_b"))

        links = await graph.links_from("agent_a")
        assert [lk.target_agent for lk in links] == ["agent_c", "agent_b"]
        assert len(await graph.links_from("agent_a", limit=1)) == 1


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestBehaviorCache:
    def test_hit_and_expiry(self):
        clock = FakeMonotonic()
        cache = BehaviorCache(ttl_seconds=10, clock=clock)
        cache.put("agent_a", "relay", None)

        assert cache.get("agent_a", "relay") == (True, None)
        clock.now = 11
        assert cache.get("agent_a", "relay") == (False, None)
        assert len(cache) == 0

    def test_invalidate_one_agent(self):
        cache = BehaviorCache()
        cache.put("agent_a", "relay", None)
        cache.put("agent_b", "relay", None)
        cache.invalidate("agent_a")
        assert cache.get("agent_a", "relay") == (False, None)
        assert cache.get("agent_b", "relay") == (True, None)
        cache.invalidate()
        assert len(cache) == 0


class TestBehaviorStore:
    async def test_create_defaults_name_and_invalidates(self, repo):
        store = BehaviorStore(repo)
        await store.find_active("agent_a", "analyze")
        behavior = await store.create(BehaviorInput(agent_id=" agent_a ", action_type="analyze"))

        assert behavior.agent_id == "agent_a"
        assert behavior.name == "analyze"
        assert await store.find_active("agent_a", "analyze") == behavior

    @pytest.mark.parametrize("agent_id,action_type", [("", "analyze"), ("agent_a", " ")])
    async def test_create_missing_fields(self, repo, agent_id, action_type):
        with pytest.raises(ValidationError) as exc:
            await BehaviorStore(repo).create(BehaviorInput(agent_id=agent_id, action_type=action_type))
        assert exc.value.code == "MISSING_FIELDS"

    async def test_find_active_prefers_newest_enabled(self, repo):
        store = BehaviorStore(repo)
        await store.create(BehaviorInput(agent_id="agent_a", action_type="relay", name="old"))
        await store.create(BehaviorInput(agent_id="agent_a", action_type="relay", name="new"))
        await store.create(BehaviorInput(agent_id="agent_a", action_type="relay", name="off", enabled=False))

        assert (await store.find_active("agent_a", "relay")).name == "new"

    async def test_list_filters(self, repo):
        store = BehaviorStore(repo)
        await store.create(BehaviorInput(agent_id="agent_a", action_type="relay", trigger_type="daily"))
        await store.create(BehaviorInput(agent_id="agent_a", action_type="analyze", enabled=False))
        await store.create(BehaviorInput(agent_id="agent_b", action_type="relay", trigger_type="daily"))

        assert len(await store.list(agent_id="agent_a")) == 2
        assert len(await store.list(enabled=False)) == 1
        assert {b.agent_id for b in await store.list(trigger_type="daily")} == {"agent_a", "agent_b"}

    async def test_set_enabled(self, repo):
        store = BehaviorStore(repo)
        behavior = await store.create(BehaviorInput(agent_id="agent_a", action_type="relay"))
        await store.find_active("agent_a", "relay")

        updated = await store.set_enabled(behavior.id, False)

        assert updated.enabled is False
        assert await store.find_active("agent_a", "relay") is None

    async def test_unknown_behavior(self, repo):
        store = BehaviorStore(repo)
        with pytest.raises(NotFoundError):
            await store.get(uuid4())
        with pytest.raises(NotFoundError):
            await store.set_enabled(uuid4(), True)
