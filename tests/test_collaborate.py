"""Tests for collaboration fan-out over outgoing links."""

import asyncio

import pytest

from praxis.engine.collaborate import CollaborationFanout, link_window
from praxis.engine.relay import ExecutionRelay
from praxis.errors import ValidationError
from praxis.network.behaviors import BehaviorCache, BehaviorStore
from praxis.network.graph import CollaborationGraph
from praxis.network.registry import AgentRegistry
from praxis.network.schemas import BehaviorInput, LinkInput
from tests.conftest import agent_input


@pytest.fixture
def registry(repo, settings):
    return AgentRegistry(repo, settings)


@pytest.fixture
def graph(repo):
    return CollaborationGraph(repo)


@pytest.fixture
def store(repo):
    return BehaviorStore(repo, BehaviorCache())


@pytest.fixture
def fanout(repo, registry, providers, graph, store):
    return CollaborationFanout(graph, store, ExecutionRelay(repo, registry, providers))


async def _link(graph, target, kind="relay", **kwargs):
    return await graph.link(LinkInput(source_agent="agent_orchestrator", target_agent=target, kind=kind, **kwargs))


@pytest.mark.parametrize(
    "total,max_links,expected",
    [(5, None, 5), (5, 2, 2), (5, 0, 1), (5, -3, 1), (2, 10, 2), (3, float("inf"), 3)],
)
def test_link_window(total, max_links, expected):
    assert link_window(total, max_links) == expected


async def test_missing_behavior_reported_not_raised(fanout, graph):
    await _link(graph, "agent_writer")

    report = await fanout.collaborate("agent_orchestrator")

    assert report.links_executed == 1
    result = report.results[0]
    assert result.success is False
    assert result.error == "no enabled behavior for agent_writer with action relay"


async def test_blank_source_rejected(fanout):
    with pytest.raises(ValidationError) as exc:
        await fanout.collaborate("   ")
    assert exc.value.code == "MISSING_SOURCE_AGENT"


async def test_no_links_is_empty_report(fanout):
    report = await fanout.collaborate("agent_orchestrator")
    assert report.links_executed == 0
    assert report.results == []


async def test_runs_target_behavior_with_link_parameters(fanout, graph, store, registry, provider):
    await registry.register(
        agent_input("agent_writer", prompt="{{agent}} asked by {{source_agent}} via {{trigger}} at {{strength}}")
    )
    behavior = await store.create(BehaviorInput(agent_id="agent_writer", action_type="analyze"))
    await _link(graph, "agent_writer", kind="analyze", strength=0.8, context={"topic": "ai"})
    provider.queue("Analysis done.")

    report = await fanout.collaborate("agent_orchestrator")

    result = report.results[0]
    assert result.success is True
    assert result.action_type == "analyze"
    assert result.outcome.behavior_id == behavior.id
    assert provider.calls[0][0] == "agent_writer asked by agent_orchestrator via collaborate at 0.8"


async def test_assist_runs_relay_behavior(fanout, graph, store, registry):
    await registry.register(agent_input("agent_helper"))
    await store.create(BehaviorInput(agent_id="agent_helper", action_type="relay"))
    await _link(graph, "agent_helper", kind="assist")

    report = await fanout.collaborate("agent_orchestrator")

    assert report.results[0].kind == "assist"
    assert report.results[0].action_type == "relay"
    assert report.results[0].success is True


async def test_disabled_behavior_not_selected(fanout, graph, store, registry):
    await registry.register(agent_input("agent_writer"))
    await store.create(BehaviorInput(agent_id="agent_writer", action_type="relay", enabled=False))
    await _link(graph, "agent_writer")

    report = await fanout.collaborate("agent_orchestrator")
    assert report.results[0].success is False


async def test_max_links_takes_newest(fanout, graph):
    for target in ("agent_a", "agent_b", "agent_c"):
        await _link(graph, target)

    report = await fanout.collaborate("agent_orchestrator", max_links=2)

    assert [r.target_agent for r in report.results] == ["agent_c", "agent_b"]


async def test_provider_failure_captured_per_link(fanout, graph, store, registry, provider):
    for target in ("agent_a", "agent_b"):
        await registry.register(agent_input(target))
        await store.create(BehaviorInput(agent_id=target, action_type="relay"))
        await _link(graph, target)
    provider.error = "rate limited"

    report = await fanout.collaborate("agent_orchestrator")

    assert report.links_executed == 2
    assert all(not r.success for r in report.results)
    assert all("rate limited" in r.error for r in report.results)


async def test_missing_behavior_lookup_is_cached(repo, fanout, graph, store):
    await _link(graph, "agent_writer")
    await fanout.collaborate("agent_orchestrator")
    assert store.cache.get("agent_writer", "relay") == (True, None)

    # a behavior added behind the store's back is not seen until the cache expires
    await repo.add_behavior(BehaviorInput(agent_id="agent_writer", action_type="relay"))
    report = await fanout.collaborate("agent_orchestrator")
    assert report.results[0].success is False


async def test_concurrent_fanout(repo, registry, providers, graph, store):
    in_flight = 0
    peak = 0

    class SlowProvider:
        name = "slow"

        async def generate(self, prompt, model, temperature):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return "ok"

    providers.register(SlowProvider())
    for target in ("agent_a", "agent_b", "agent_c", "agent_d"):
        await registry.register(agent_input(target, provider="slow"))
        await store.create(BehaviorInput(agent_id=target, action_type="relay"))
        await _link(graph, target)

    fanout = CollaborationFanout(graph, store, ExecutionRelay(repo, registry, providers), concurrency=2)
    report = await fanout.collaborate("agent_orchestrator")

    assert report.links_executed == 4
    assert all(r.success for r in report.results)
    assert peak == 2
