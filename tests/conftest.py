"""Shared fixtures: in-memory repository, scripted provider, service, SQLite repo."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from praxis.config import Settings
from praxis.engine.service import PraxisService
from praxis.errors import UpstreamError
from praxis.network.schemas import AgentInput
from praxis.providers.base import ProviderRegistry
from praxis.providers.local import LocalProvider
from praxis.storage.database import Database
from praxis.storage.memory import InMemoryRepository
from praxis.storage.repository import SqlRepository
from praxis.utils import utcnow

# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


class ScriptedProvider:
    """Returns queued responses in order, then ``default``. Records every call.

    Set ``error`` to make every call raise UpstreamError, or ``crash`` to raise
    that exception unchanged.
    """

    def __init__(self, name: str = "scripted", default: str = "Reflection: done\nImpact: 0.5\nConfidence: 0.7") -> None:
        self.name = name
        self.default = default
        self.responses: list[str] = []
        self.error: str | None = None
        self.crash: Exception | None = None
        self.calls: list[tuple[str, str, float]] = []

    def queue(self, *texts: str) -> None:
        self.responses.extend(texts)

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        self.calls.append((prompt, model, temperature))
        if self.crash is not None:
            raise self.crash
        if self.error is not None:
            raise UpstreamError(self.error, provider=self.name, status_code=503)
        if self.responses:
            return self.responses.pop(0)
        return self.default


class FakeClock:
    """Controllable clock for InMemoryRepository timestamps."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        self.now += timedelta(microseconds=1)
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = {"storage_backend": "memory", "cron_secret": "test-secret", "default_provider": "local"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def agent_input(agent_id: str, provider: str = "scripted", **overrides) -> AgentInput:
    values = {
        "id": agent_id,
        "name": agent_id.replace("_", " ").title(),
        "prompt": "You are {{agent}}. Perform {{action_type}} for {{topic}}.",
        "provider": provider,
        "model": "test-model",
        "temperature": 0.3,
    }
    values.update(overrides)
    return AgentInput(**values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo(clock) -> InMemoryRepository:
    return InMemoryRepository(clock=clock)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def providers(provider) -> ProviderRegistry:
    return ProviderRegistry([provider, LocalProvider()])


@pytest.fixture
def service(repo, providers, settings) -> PraxisService:
    return PraxisService(repo, providers, settings)


@pytest_asyncio.fixture
async def sqlite_db(tmp_path):
    """File-backed SQLite database with the schema created."""
    settings = make_settings(
        storage_backend="postgres",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'praxis.db'}",
        auto_create_schema=True,
    )
    database = Database(settings)
    await database.connect()
    yield database
    await database.disconnect()


@pytest.fixture
def sql_repo(sqlite_db) -> SqlRepository:
    return SqlRepository(sqlite_db)
