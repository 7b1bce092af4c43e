"""Tests for agent memory: listing, upserts and the insight sync."""

from uuid import uuid4

import pytest

from praxis.engine.agent_memory import SYNC_IMPORTANCE, AgentMemoryStore
from praxis.engine.schemas import InsightRecord, MemoryInput
from praxis.errors import NotFoundError, ValidationError


@pytest.fixture
def store(repo):
    return AgentMemoryStore(repo, sync_limit=25, sync_window_hours=24)


def _insight(agent_id="agent_a", category="leaderboard_rank", summary="Ranked #1 with score 0.91"):
    return InsightRecord(agent_id=agent_id, source="leaderboard", category=category, summary=summary)


class TestUpsert:
    async def test_insert_then_update_by_id(self, store, repo):
        entry = await store.upsert(
            MemoryInput(agent_id=" agent_a ", topic="sources", content="Prefers arXiv", importance=1.7)
        )

        assert entry.agent_id == "agent_a"
        assert entry.importance == 1.0
        assert entry.metadata == {}

        updated = await store.upsert(
            MemoryInput(
                id=entry.id,
                agent_id="agent_a",
                topic="sources",
                summary="arXiv first",
                content="Prefers arXiv, then blogs",
                metadata={"edited": True},
            )
        )

        assert updated.id == entry.id
        assert updated.summary == "arXiv first"
        assert updated.importance is None
        assert updated.metadata == {"edited": True}
        assert updated.updated_at > entry.updated_at
        assert updated.created_at == entry.created_at
        assert len(repo.memory) == 1

    async def test_update_keeps_agent_and_topic(self, store):
        entry = await store.upsert(MemoryInput(agent_id="agent_a", topic="sources", content="v1"))

        updated = await store.upsert(MemoryInput(id=entry.id, agent_id="agent_b", topic="other", content="v2"))

        assert (updated.agent_id, updated.topic, updated.content) == ("agent_a", "sources", "v2")

    @pytest.mark.parametrize(
        "payload",
        [
            {"topic": "t", "content": "c"},
            {"agent_id": "a", "content": "c"},
            {"agent_id": "a", "topic": "t", "content": "   "},
        ],
    )
    async def test_required_fields(self, store, repo, payload):
        with pytest.raises(ValidationError) as exc:
            await store.upsert(MemoryInput(**payload))
        assert exc.value.code == "MISSING_FIELDS"
        assert repo.memory == []

    async def test_unknown_id_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.upsert(MemoryInput(id=uuid4(), agent_id="a", topic="t", content="c"))


class TestList:
    async def test_filters_and_newest_first(self, store):
        await store.upsert(MemoryInput(agent_id="agent_a", topic="sources", content="Old SOURCE note"))
        await store.upsert(MemoryInput(agent_id="agent_a", topic="style", summary="Short answers", content="x"))
        await store.upsert(MemoryInput(agent_id="agent_b", topic="sources", content="Other agent source"))

        assert [m.content for m in await store.list()] == ["Other agent source", "x", "Old SOURCE note"]
        assert [m.content for m in await store.list(agent_id="agent_a", topic="sources")] == ["Old SOURCE note"]
        assert [m.content for m in await store.list(search="source")] == ["Other agent source", "Old SOURCE note"]
        assert [m.summary for m in await store.list(search="SHORT")] == ["Short answers"]

    async def test_non_positive_limit_uses_default(self, store):
        for n in range(3):
            await store.upsert(MemoryInput(agent_id="agent_a", topic="t", content=f"note {n}"))

        assert len(await store.list(limit=0)) == 3
        assert len(await store.list(limit=2)) == 2


class TestSyncInsights:
    async def test_recent_insights_copied_once(self, store, repo):
        [insight] = await repo.add_insights([_insight()])

        first = await store.sync_insights()
        second = await store.sync_insights()

        assert (first.added, first.skipped) == (1, 0)
        assert (second.added, second.skipped) == (0, 1)
        [entry] = repo.memory
        assert entry.agent_id == "agent_a"
        assert entry.topic == "leaderboard_rank"
        assert entry.summary == entry.content == "Ranked #1 with score 0.91"
        assert entry.importance == SYNC_IMPORTANCE
        assert entry.metadata == {"source": "agent_insights", "insight_id": str(insight.id)}

    async def test_insights_outside_window_ignored(self, store, repo, clock):
        clock.advance(hours=-30)
        await repo.add_insights([_insight(summary="stale")])
        clock.advance(hours=30)
        await repo.add_insights([_insight(summary="fresh")])

        report = await store.sync_insights()

        assert report.added == 1
        assert [m.content for m in repo.memory] == ["fresh"]

    async def test_blank_category_becomes_general(self, store, repo):
        await repo.add_insights([_insight(category="")])

        await store.sync_insights()

        assert repo.memory[0].topic == "general"

    async def test_sync_limit_caps_batch(self, repo):
        store = AgentMemoryStore(repo, sync_limit=2)
        await repo.add_insights([_insight(summary=f"insight {n}") for n in range(4)])

        report = await store.sync_insights()

        assert report.added == 2
        assert {m.content for m in repo.memory} == {"insight 3", "insight 2"}
