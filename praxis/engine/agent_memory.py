"""Long-lived agent memory: curated notes plus insights copied in by the sync job."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from praxis.engine.schemas import MemoryEntry, MemoryInput, MemoryRecord, MemorySyncReport
from praxis.errors import NotFoundError, ValidationError
from praxis.utils import clamp, utcnow

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
SYNC_SOURCE = "agent_insights"
SYNC_IMPORTANCE = 0.9


class AgentMemoryStore:
    """Reads and writes the ``agent_memory`` table.

    Entries are keyed by (agent_id, topic). Updates only touch the text,
    importance and metadata; an entry never moves to another agent or topic.
    """

    def __init__(self, repo: Repository, sync_limit: int = 25, sync_window_hours: int = 24) -> None:
        self.repo = repo
        self.sync_limit = sync_limit
        self.sync_window_hours = sync_window_hours

    async def list(
        self,
        agent_id: str | None = None,
        topic: str | None = None,
        search: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[MemoryEntry]:
        if limit <= 0:
            limit = DEFAULT_LIMIT
        return await self.repo.list_memory(
            agent_id=agent_id or None, topic=topic or None, search=search or None, limit=limit
        )

    async def upsert(self, input: MemoryInput) -> MemoryEntry:
        """Update the entry named by ``input.id``, or insert a new one."""
        if not (input.agent_id.strip() and input.topic.strip() and input.content.strip()):
            raise ValidationError("agent_id, topic and content are required", code="MISSING_FIELDS")
        record = MemoryRecord(
            agent_id=input.agent_id.strip(),
            topic=input.topic.strip(),
            summary=input.summary,
            content=input.content,
            importance=None if input.importance is None else clamp(input.importance),
            metadata=input.metadata or {},
        )
        if input.id is not None:
            entry = await self.repo.update_memory(input.id, record)
            if entry is None:
                raise NotFoundError(f"Memory entry not found: {input.id}")
            return entry
        [entry] = await self.repo.add_memory([record])
        logger.info("Stored memory %s for %s (topic=%s)", entry.id, entry.agent_id, entry.topic)
        return entry

    async def sync_insights(self) -> MemorySyncReport:
        """Copy recent insights into memory, once per insight."""
        since = utcnow() - timedelta(hours=self.sync_window_hours)
        insights = await self.repo.list_insights(limit=self.sync_limit, since=since)
        synced = {
            m.metadata.get("insight_id")
            for m in await self.repo.list_memory(since=since, limit=None)
            if m.metadata.get("source") == SYNC_SOURCE
        }
        records = [
            MemoryRecord(
                agent_id=i.agent_id,
                topic=i.category or "general",
                summary=i.summary,
                content=i.summary,
                importance=SYNC_IMPORTANCE,
                metadata={"source": SYNC_SOURCE, "insight_id": str(i.id)},
            )
            for i in insights
            if i.summary and str(i.id) not in synced
        ]
        if records:
            await self.repo.add_memory(records)
        report = MemorySyncReport(added=len(records), skipped=len(insights) - len(records))
        logger.info("Memory sync: added=%d skipped=%d", report.added, report.skipped)
        return report
