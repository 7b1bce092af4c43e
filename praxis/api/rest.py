"""REST API for Praxis.

Endpoints:
  GET  /agents                 - List agent definitions
  POST /agents                 - Register (or revise) an agent
  GET  /links                  - List collaboration links
  POST /links                  - Link two agents
  GET  /network                - Nodes + links of the collaboration graph
  GET  /behaviors              - List behaviors (?agent_id=)
  POST /behaviors              - Create a behavior
  POST /behaviors/{id}/run     - Run one behavior now
  POST /relay                  - Relay a message between agents
  POST /collaborate            - Fan out over a source agent's links
  GET  /reflections            - Recent reflections (?limit=)
  POST /reflections            - Reflect an agent (optional manual override)
  GET  /memory                 - Agent memory (?agent_id=, ?topic=, ?q=, ?limit=)
  POST /memory                 - Insert a memory entry, or update one by id
  GET  /metrics                - Metric snapshots (?limit=, ?latest=true)
  POST /metrics                - Recompute metric snapshots
  GET  /leaderboard            - Current leaderboard + insights (?limit=)
  POST /leaderboard            - Recompute the leaderboard
  POST /cron/behaviors         - Scheduled: run triggered behaviors
  POST /cron/reflect           - Scheduled: reflect all active agents
  POST /cron/sync              - Scheduled: copy recent insights into memory
  POST /cron/feedback          - Scheduled: tune behaviors
  POST /cron/cycle             - Scheduled: full improvement cycle
  GET  /health                 - Health check

Every response body is the service Envelope: {success, data, error, message}.
The /cron routes require ``Authorization: Bearer <cron_secret>``.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from praxis.config import Settings
from praxis.engine.service import Envelope, PraxisService

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "INVALID_INPUT": 400,
    "MISSING_FIELDS": 400,
    "MISSING_SOURCE_AGENT": 400,
    "UNAUTHORIZED": 401,
    "NOT_FOUND": 404,
    "UPSTREAM_FAILED": 502,
    "EXECUTION_FAILED": 502,
}


def status_for(envelope: Envelope) -> int:
    if envelope.success:
        return 200
    return _STATUS_BY_CODE.get(envelope.error or "", 500)


def respond(envelope: Envelope) -> JSONResponse:
    return JSONResponse(envelope.model_dump(mode="json"), status_code=status_for(envelope))


def _error(code: str, message: str) -> JSONResponse:
    return respond(Envelope.fail(code, message))


async def _json_body(request: Request) -> dict[str, Any] | None:
    """Parsed JSON object, {} for an empty body, None when the body is not a JSON object."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = await request.json()
    except Exception:
        return None
    return body if isinstance(body, dict) else None


def _int_param(request: Request, name: str, default: int) -> int | None:
    value = request.query_params.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return None


def create_app(service: PraxisService, settings: Settings, lifespan: Any | None = None) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    def cron_guarded(handler: Callable[[Request], Awaitable[JSONResponse]]):
        async def guarded(request: Request) -> JSONResponse:
            expected = settings.cron_secret
            supplied = request.headers.get("authorization", "")
            if not expected or not hmac.compare_digest(supplied.encode(), f"Bearer {expected}".encode()):
                logger.warning("Rejected cron call to %s", request.url.path)
                return _error("UNAUTHORIZED", "Invalid or missing cron secret")
            return await handler(request)

        return guarded

    # --- Agents + graph ---

    async def list_agents(request: Request) -> JSONResponse:
        return respond(await service.list_agents())

    async def register_agent(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        return respond(await service.register_agent(body))

    async def list_links(request: Request) -> JSONResponse:
        return respond(await service.list_links())

    async def link_agents(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        return respond(await service.link_agents(body))

    async def network(request: Request) -> JSONResponse:
        return respond(await service.network())

    # --- Behaviors ---

    async def list_behaviors(request: Request) -> JSONResponse:
        return respond(await service.list_behaviors(agent_id=request.query_params.get("agent_id")))

    async def create_behavior(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        config = body.get("config")
        return respond(
            await service.create_behavior(
                agent_id=body.get("agent_id"),
                action_type=body.get("action_type"),
                config=config if isinstance(config, dict) else None,
                name=body.get("name"),
                description=body.get("description"),
                trigger_type=body.get("trigger_type"),
                enabled=bool(body.get("enabled", True)),
            )
        )

    async def run_behavior(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        parameters = body.get("parameters")
        return respond(
            await service.run_behavior(
                request.path_params["behavior_id"],
                parameters if isinstance(parameters, dict) else None,
            )
        )

    async def relay(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        return respond(
            await service.relay(
                body.get("conversation_id"),
                body.get("sender_agent") or "",
                body.get("receiver_agent") or "",
                body.get("content") or "",
            )
        )

    async def collaborate(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        max_links = body.get("max_links")
        if max_links is not None and (isinstance(max_links, bool) or not isinstance(max_links, (int, float))):
            max_links = None
        return respond(await service.collaborate(body.get("source_agent"), max_links))

    # --- Reflection ---

    async def list_reflections(request: Request) -> JSONResponse:
        limit = _int_param(request, "limit", 50)
        if limit is None:
            return _error("INVALID_INPUT", "limit must be an integer")
        return respond(await service.list_reflections(limit))

    async def reflect(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        override = body.get("override")
        if override is not None and not isinstance(override, dict):
            return _error("INVALID_INPUT", "override must be an object")
        limit = body.get("limit")
        return respond(
            await service.reflect(body.get("agent_id"), override, limit if isinstance(limit, int) else None)
        )

    # --- Agent memory ---

    async def list_memory(request: Request) -> JSONResponse:
        params = request.query_params
        return respond(
            await service.list_memory(
                agent_id=params.get("agent_id"),
                topic=params.get("topic"),
                search=params.get("q"),
                limit=_int_param(request, "limit", 50) or 50,
            )
        )

    async def upsert_memory(request: Request) -> JSONResponse:
        body = await _json_body(request)
        if body is None:
            return _error("INVALID_INPUT", "Invalid JSON body")
        return respond(await service.upsert_memory(body))

    # --- Metrics, leaderboard ---

    async def list_metrics(request: Request) -> JSONResponse:
        if request.query_params.get("latest", "").lower() in ("1", "true", "yes"):
            return respond(await service.latest_metrics())
        limit = _int_param(request, "limit", 200)
        if limit is None:
            return _error("INVALID_INPUT", "limit must be an integer")
        return respond(await service.list_metrics(limit))

    async def recompute_metrics(request: Request) -> JSONResponse:
        return respond(await service.recompute_metrics())

    async def get_leaderboard(request: Request) -> JSONResponse:
        limit = _int_param(request, "limit", 10)
        if limit is None:
            return _error("INVALID_INPUT", "limit must be an integer")
        return respond(await service.get_leaderboard(limit))

    async def rank_leaderboard(request: Request) -> JSONResponse:
        return respond(await service.rank_leaderboard())

    # --- Scheduled ---

    async def cron_behaviors(request: Request) -> JSONResponse:
        trigger = request.query_params.get("trigger") or settings.behavior_trigger
        return respond(await service.run_triggered(trigger))

    async def cron_reflect(request: Request) -> JSONResponse:
        return respond(await service.reflect_all())

    async def cron_sync(request: Request) -> JSONResponse:
        return respond(await service.sync_memory())

    async def cron_feedback(request: Request) -> JSONResponse:
        return respond(await service.tune_behaviors())

    async def cron_cycle(request: Request) -> JSONResponse:
        return respond(await service.run_cycle())

    async def health(request: Request) -> JSONResponse:
        """GET /health - storage reachability."""
        envelope = await service.list_agents()
        if envelope.success:
            return JSONResponse({"status": "healthy", "storage": settings.storage_backend})
        return JSONResponse(
            {"status": "unhealthy", "storage": settings.storage_backend, "error": envelope.message},
            status_code=503,
        )

    routes = [
        Route("/agents", list_agents, methods=["GET"]),
        Route("/agents", register_agent, methods=["POST"]),
        Route("/links", list_links, methods=["GET"]),
        Route("/links", link_agents, methods=["POST"]),
        Route("/network", network, methods=["GET"]),
        Route("/behaviors", list_behaviors, methods=["GET"]),
        Route("/behaviors", create_behavior, methods=["POST"]),
        Route("/behaviors/{behavior_id}/run", run_behavior, methods=["POST"]),
        Route("/relay", relay, methods=["POST"]),
        Route("/collaborate", collaborate, methods=["POST"]),
        Route("/reflections", list_reflections, methods=["GET"]),
        Route("/reflections", reflect, methods=["POST"]),
        Route("/memory", list_memory, methods=["GET"]),
        Route("/memory", upsert_memory, methods=["POST"]),
        Route("/metrics", list_metrics, methods=["GET"]),
        Route("/metrics", recompute_metrics, methods=["POST"]),
        Route("/leaderboard", get_leaderboard, methods=["GET"]),
        Route("/leaderboard", rank_leaderboard, methods=["POST"]),
        Route("/cron/behaviors", cron_guarded(cron_behaviors), methods=["POST"]),
        Route("/cron/reflect", cron_guarded(cron_reflect), methods=["POST"]),
        Route("/cron/sync", cron_guarded(cron_sync), methods=["POST"]),
        Route("/cron/feedback", cron_guarded(cron_feedback), methods=["POST"]),
        Route("/cron/cycle", cron_guarded(cron_cycle), methods=["POST"]),
        Route("/health", health, methods=["GET"]),
    ]

    return Starlette(routes=routes, lifespan=lifespan)
