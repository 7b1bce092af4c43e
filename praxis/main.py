"""Praxis entry point.

Initializes all components and starts the server:
  Settings -> Repository -> Providers -> EventBus -> PraxisService -> Handlers -> App -> Uvicorn

Component lifecycle runs inside the Starlette lifespan so everything shares
uvicorn's event loop.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from praxis.config import Settings
from praxis.engine.service import PraxisService
from praxis.events import EventBus
from praxis.providers.factory import build_http_client, build_providers
from praxis.storage.database import Database
from praxis.storage.memory import InMemoryRepository
from praxis.storage.repository import SqlRepository

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    1. Database + SqlRepository (or InMemoryRepository for storage_backend=memory)
    2. httpx client + provider registry
    3. EventBus (when event_bus_enabled)
    4. PraxisService
    5. ReflectionTrigger (when reflect_after_run) and CycleScheduler (when scheduler_enabled)
    """
    database = None
    if settings.storage_backend == "memory":
        repo = InMemoryRepository()
        logger.warning("Using in-memory storage; nothing will survive a restart")
    else:
        database = Database(settings)
        await database.connect()
        repo = SqlRepository(database)

    http_client = build_http_client(settings)
    providers = build_providers(settings, http_client)

    bus = EventBus() if settings.event_bus_enabled else None
    service = PraxisService(repo, providers, settings, bus=bus)

    if bus is not None:
        if settings.reflect_after_run:
            from praxis.handlers.reflection_trigger import ReflectionTrigger

            ReflectionTrigger(service, bus)
        await bus.start()

    scheduler = None
    if settings.scheduler_enabled:
        from praxis.handlers.scheduler import CycleScheduler

        scheduler = CycleScheduler(service, settings)
        await scheduler.start()

    return {
        "database": database,
        "repo": repo,
        "http_client": http_client,
        "providers": providers,
        "bus": bus,
        "service": service,
        "scheduler": scheduler,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down Praxis...")

    scheduler = components.get("scheduler")
    if scheduler:
        await scheduler.stop()

    bus = components.get("bus")
    if bus:
        await bus.stop()

    http_client = components.get("http_client")
    if http_client:
        await http_client.aclose()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("Praxis shutdown complete.")


class _LazyProxy:
    """Forwards attribute access to a component created later in the lifespan.

    create_app() needs the service at import time; the service only exists
    once the lifespan has run.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not initialized; lifespan has not started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def build_app(settings: Settings) -> Starlette:
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components
        logger.info(
            "Praxis started (storage=%s, providers=%s, scheduler=%s)",
            settings.storage_backend,
            ", ".join(components["providers"].names()),
            "on" if components["scheduler"] else "off",
        )
        yield
        await shutdown_components(components)

    from praxis.api.rest import create_app

    return create_app(_LazyProxy(components, "service"), settings, lifespan=lifespan)


def main() -> None:
    """Entry point: read settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if settings.storage_backend == "postgres" and not settings.database_url:
        logger.info("Database: %s:%s/%s", settings.db_host, settings.db_port, settings.db_name)
    if not settings.cron_secret:
        logger.warning("PRAXIS_CRON_SECRET not set; /cron endpoints will reject every call")
    if settings.default_provider == "local":
        logger.info("Default provider is 'local'; unregistered agents get mock responses")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
