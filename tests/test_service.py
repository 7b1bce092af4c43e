"""Tests for the PraxisService facade: envelopes and the improvement cycle."""

from uuid import uuid4

from praxis.engine.schemas import BehaviorRun
from praxis.errors import PersistenceError
from tests.conftest import agent_input


async def test_full_improvement_loop(service, provider):
    for agent_id in ("agent_orchestrator", "agent_researcher"):
        assert (await service.register_agent(agent_input(agent_id))).success
    link = await service.link_agents({"source_agent": "agent_orchestrator", "target_agent": "agent_researcher"})
    assert link.success
    behavior = await service.create_behavior("agent_researcher", "relay", trigger_type="daily")
    assert behavior.success

    provider.queue("Research summary ready.")
    collab = await service.collaborate("agent_orchestrator")
    assert collab.success
    assert collab.data.results[0].success is True

    provider.queue("Reflection: Useful relay\nImpact: 0.9\nConfidence: 0.8")
    reflection = await service.reflect("agent_researcher")
    assert reflection.success
    assert reflection.data.impact == 0.9

    metrics = await service.recompute_metrics()
    assert metrics.data["updated"] == 1

    board = await service.rank_leaderboard()
    assert board.success
    assert board.data["rows"][0].agent_id == "agent_researcher"

    fetched = await service.get_leaderboard()
    assert [r.agent_id for r in fetched.data["rows"]] == [r.agent_id for r in board.data["rows"]]
    assert fetched.data["insights"]


async def test_register_agent_invalid_payload(service):
    result = await service.register_agent({"name": "Nameless"})
    assert result.success is False
    assert result.error == "INVALID_INPUT"


async def test_register_agent_missing_fields(service):
    result = await service.register_agent({"name": " ", "prompt": "p"})
    assert result.error == "MISSING_FIELDS"


async def test_create_behavior_missing_fields(service):
    result = await service.create_behavior(None, "relay")
    assert result.success is False
    assert result.error == "MISSING_FIELDS"


async def test_run_behavior_not_found(service):
    assert (await service.run_behavior(uuid4())).error == "NOT_FOUND"
    assert (await service.run_behavior("not-a-uuid")).error == "NOT_FOUND"


async def test_run_behavior_success(service):
    await service.register_agent(agent_input("agent_researcher"))
    created = await service.create_behavior("agent_researcher", "analyze")

    result = await service.run_behavior(str(created.data.id), {"topic": "AI"})

    assert result.success
    assert isinstance(result.data, BehaviorRun)
    assert result.data.behavior.id == created.data.id


async def test_run_behavior_provider_failure(service, provider):
    await service.register_agent(agent_input("agent_researcher"))
    created = await service.create_behavior("agent_researcher", "analyze")
    provider.error = "upstream down"

    result = await service.run_behavior(created.data.id)

    assert result.success is False
    assert result.error == "EXECUTION_FAILED"
    assert "upstream down" in result.message


async def test_relay_provider_failure_surfaces_code(service, provider):
    await service.register_agent(agent_input("agent_writer"))
    provider.error = "bad gateway"
    result = await service.relay(None, "agent_researcher", "agent_writer", "hello")
    assert result.error == "UPSTREAM_FAILED"


async def test_collaborate_blank_source(service):
    result = await service.collaborate(None)
    assert result.error == "MISSING_SOURCE_AGENT"


async def test_reflect_with_override_dict(service):
    result = await service.reflect("agent_researcher", {"summary": "Manual", "impact": 0.4})
    assert result.success
    assert result.data.kind == "manual"

    bad = await service.reflect("agent_researcher", {"confidence": "high"})
    assert bad.error == "INVALID_INPUT"


async def test_run_triggered_isolates_failures(service, provider):
    await service.register_agent(agent_input("agent_a"))
    await service.register_agent(agent_input("agent_b", provider="missing"))
    await service.create_behavior("agent_a", "analyze", trigger_type="daily")
    await service.create_behavior("agent_b", "analyze", trigger_type="daily")
    await service.create_behavior("agent_a", "relay", trigger_type="daily", enabled=False)
    await service.create_behavior("agent_a", "relay", trigger_type="manual")

    result = await service.run_triggered("daily")

    assert result.success
    assert result.data.label == "trigger:daily"
    assert (result.data.completed, result.data.failed) == (1, 1)


async def test_tune_behaviors_returns_counts(service):
    result = await service.tune_behaviors()
    assert result.data == {"analyzed": 0, "boosted": 0, "disabled": 0}


async def test_run_cycle_runs_every_stage(service):
    result = await service.run_cycle()
    assert result.success
    assert list(result.data["stages"]) == ["sync", "reflect", "metrics", "leaderboard", "feedback"]
    assert result.data["failed"] == []


async def test_run_cycle_continues_past_failing_stage(service, repo, monkeypatch):
    async def broken(*args, **kwargs):
        raise PersistenceError("database unavailable")

    monkeypatch.setattr(repo, "add_metric_snapshots", broken)
    await service.create_behavior("agent_a", "analyze")
    await service.reflect("agent_a", {"summary": "s", "impact": 0.5})

    result = await service.run_cycle()

    assert result.success
    assert result.data["failed"] == ["metrics"]
    assert result.data["stages"]["metrics"].error == "PERSISTENCE_FAILED"
    assert result.data["stages"]["feedback"].success
    assert "metrics" in result.message


async def test_unexpected_error_is_internal(service, repo, monkeypatch):
    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(repo, "list_agents", explode)
    result = await service.list_agents()
    assert result.error == "INTERNAL_ERROR"


async def test_memory_envelopes(service):
    saved = await service.upsert_memory({"agent_id": "agent_a", "topic": "style", "content": "Keep it short"})
    assert saved.success

    missing = await service.upsert_memory({"agent_id": "agent_a", "content": "no topic"})
    assert (missing.success, missing.error) == (False, "MISSING_FIELDS")

    bad_id = await service.upsert_memory({"id": "not-a-uuid", "agent_id": "a", "topic": "t", "content": "c"})
    assert bad_id.error == "INVALID_INPUT"

    listed = await service.list_memory(agent_id="agent_a")
    assert [m.id for m in listed.data] == [saved.data.id]


async def test_synced_insights_feed_next_reflection(service, repo, provider):
    await service.register_agent(agent_input("agent_a"))
    await service.reflect("agent_a", {"summary": "s", "impact": 0.9})
    await service.recompute_metrics()
    await service.rank_leaderboard()

    synced = await service.sync_memory()
    assert synced.data["added"] >= 1

    provider.queue("Reflection: Holding rank\nImpact: 0.7\nConfidence: 0.6")
    reflection = await service.reflect("agent_a")

    assert reflection.data.metadata["source"] == "provider"
    assert reflection.data.metadata["memory_count"] == synced.data["added"]
    assert "Memory:" in provider.calls[-1][0]
