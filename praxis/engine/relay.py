"""Execution relay: runs behaviors and relays messages through providers.

Every provider call produces exactly one Run row, successful or not. Provider
failures are recorded, turned into a ``<action>_failed`` insight, and then
re-raised as UpstreamError to the caller. There are no retries.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from praxis.engine.schemas import InsightRecord, Message, MessageRecord, Outcome, RunRecord
from praxis.errors import UpstreamError, ValidationError
from praxis.events import BEHAVIOR_EXECUTED, BEHAVIOR_FAILED, Event, EventBus
from praxis.network.registry import AgentRegistry
from praxis.network.schemas import AgentDefinition, Behavior
from praxis.providers.base import ProviderRegistry
from praxis.utils import render_prompt, utcnow

if TYPE_CHECKING:
    from praxis.storage.repository import Repository

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 200

_RELAY_CONTEXT = """{history}

New message from {sender}:
{content}

Reply as {receiver}."""


def merge_parameters(behavior: Behavior, parameters: dict[str, Any] | None) -> dict[str, Any]:
    """``config["parameters"]`` overlaid by call parameters."""
    base = behavior.config.get("parameters")
    merged = dict(base) if isinstance(base, dict) else {}
    merged.update(parameters or {})
    return merged


def build_behavior_prompt(agent: AgentDefinition, behavior: Behavior, parameters: dict[str, Any]) -> str:
    """Render the agent template (or a behavior-level ``config["prompt"]``) with call variables."""
    template = behavior.config.get("prompt")
    if not isinstance(template, str) or not template.strip():
        template = agent.prompt
    variables = {
        **parameters,
        "agent": agent.id,
        "behavior": behavior.name,
        "action_type": behavior.action_type,
        "parameters": json.dumps(parameters, default=str, sort_keys=True),
    }
    return render_prompt(template, variables)


def summarize(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()[:SUMMARY_CHARS]
    return "(empty response)"


class ExecutionRelay:
    """Runs behaviors and relays messages, one provider call and one Run row each.

    Behavior runs publish executed/failed events when a bus is attached.
    Autonomous calls refuse disabled behaviors; operator calls do not.
    """

    def __init__(
        self,
        repo: Repository,
        registry: AgentRegistry,
        providers: ProviderRegistry,
        bus: EventBus | None = None,
        history_limit: int = 5,
    ) -> None:
        self.repo = repo
        self.registry = registry
        self.providers = providers
        self.bus = bus
        self.history_limit = history_limit

    async def _resolve_enabled(self, agent_id: str) -> AgentDefinition:
        agent = await self.registry.resolve(agent_id)
        if not agent.enabled:
            raise ValidationError(f"Agent {agent_id} is disabled")
        return agent

    async def _generate(self, agent: AgentDefinition, prompt: str) -> str:
        return await self.providers.generate(agent.provider, prompt, agent.model, agent.temperature)

    async def _emit(self, event_type: str, agent_id: str, data: dict[str, Any]) -> None:
        if self.bus is not None:
            await self.bus.emit(Event(type=event_type, agent_id=agent_id, data=data))

    # ------------------------------------------------------------------
    # run_behavior()
    # ------------------------------------------------------------------

    async def run_behavior(
        self,
        behavior: Behavior,
        parameters: dict[str, Any] | None = None,
        autonomous: bool = False,
    ) -> Outcome:
        """Execute one behavior on its owning agent's provider.

        Args:
            behavior: The behavior to run. Must exist; the caller loads it.
            parameters: Call parameters, overlaid on ``config["parameters"]``.
            autonomous: Scheduler/fan-out call. Disabled behaviors are refused.

        Raises:
            ValidationError: Disabled behavior on an autonomous call, or disabled agent.
            UpstreamError: Provider failure, after the failed run is recorded.
        """
        if autonomous and not behavior.enabled:
            raise ValidationError(f"Behavior {behavior.id} is disabled")

        agent = await self._resolve_enabled(behavior.agent_id)
        merged = merge_parameters(behavior, parameters)
        prompt = build_behavior_prompt(agent, behavior, merged)

        started = time.perf_counter()
        try:
            output = await self._generate(agent, prompt)
        except UpstreamError as e:
            duration_ms = int((time.perf_counter() - started) * 1000)
            await self.repo.add_run(
                RunRecord(
                    agent_id=agent.id,
                    behavior_id=behavior.id,
                    input=prompt,
                    provider=agent.provider,
                    model=agent.model,
                    duration_ms=duration_ms,
                    success=False,
                    error=str(e),
                )
            )
            await self.repo.add_insights(
                [
                    InsightRecord(
                        agent_id=agent.id,
                        source="behavior",
                        category=f"{behavior.action_type}_failed",
                        summary=f"Behavior '{behavior.name}' failed: {e}",
                        confidence=0.9,
                        metadata={"behavior_id": str(behavior.id), "provider": agent.provider},
                    )
                ]
            )
            logger.warning("Behavior %s (%s) failed on %s: %s", behavior.id, behavior.action_type, agent.provider, e)
            await self._emit(
                BEHAVIOR_FAILED,
                agent.id,
                {"behavior_id": str(behavior.id), "action_type": behavior.action_type, "error": str(e)},
            )
            raise

        duration_ms = int((time.perf_counter() - started) * 1000)
        run = await self.repo.add_run(
            RunRecord(
                agent_id=agent.id,
                behavior_id=behavior.id,
                input=prompt,
                output=output,
                provider=agent.provider,
                model=agent.model,
                duration_ms=duration_ms,
                success=True,
            )
        )
        await self.repo.touch_behavior(behavior.id, utcnow())
        summary = summarize(output)
        await self.repo.add_insights(
            [
                InsightRecord(
                    agent_id=agent.id,
                    source="behavior",
                    category=behavior.action_type,
                    summary=summary,
                    confidence=0.9,
                    metadata={"behavior_id": str(behavior.id), "run_id": str(run.id)},
                )
            ]
        )
        logger.info(
            "Behavior %s (%s) ran on %s in %dms", behavior.id, behavior.action_type, agent.provider, duration_ms
        )
        await self._emit(
            BEHAVIOR_EXECUTED,
            agent.id,
            {"behavior_id": str(behavior.id), "action_type": behavior.action_type, "run_id": str(run.id)},
        )
        return Outcome(
            run_id=run.id,
            behavior_id=behavior.id,
            agent_id=agent.id,
            action_type=behavior.action_type,
            summary=summary,
            output=output,
            provider=agent.provider,
            model=agent.model,
            duration_ms=duration_ms,
        )

    # ------------------------------------------------------------------
    # relay()
    # ------------------------------------------------------------------

    async def relay(
        self,
        conversation_id: str | None,
        sender_agent: str,
        receiver_agent: str,
        content: str,
    ) -> Message:
        """Deliver ``content`` to the receiver and return its reply message.

        The receiver sees the last ``history_limit`` messages of the
        conversation, oldest first.
        """
        sender_agent = (sender_agent or "").strip()
        receiver_agent = (receiver_agent or "").strip()
        if not sender_agent or not receiver_agent or not (content or "").strip():
            raise ValidationError("sender_agent, receiver_agent and content are required", code="MISSING_FIELDS")
        conversation_id = (conversation_id or "").strip() or str(uuid4())

        receiver = await self._resolve_enabled(receiver_agent)
        history = list(reversed(await self.repo.list_messages(conversation_id, limit=self.history_limit)))
        transcript = "\n".join(f"{m.sender_agent}: {m.content}" for m in history) or "(no previous messages)"
        persona = render_prompt(
            receiver.prompt,
            {"agent": receiver.id, "action_type": "relay", "sender": sender_agent, "content": content},
        )
        prompt = persona + "\n\n" + _RELAY_CONTEXT.format(
            history=f"Conversation so far:\n{transcript}",
            sender=sender_agent,
            content=content,
            receiver=receiver.id,
        )

        await self.repo.add_message(
            MessageRecord(
                conversation_id=conversation_id,
                sender_agent=sender_agent,
                receiver_agent=receiver.id,
                content=content,
            )
        )

        started = time.perf_counter()
        try:
            reply = await self._generate(receiver, prompt)
        except UpstreamError as e:
            await self.repo.add_run(
                RunRecord(
                    agent_id=receiver.id,
                    conversation_id=conversation_id,
                    input=prompt,
                    provider=receiver.provider,
                    model=receiver.model,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                    success=False,
                    error=str(e),
                )
            )
            logger.warning("Relay %s -> %s failed: %s", sender_agent, receiver.id, e)
            raise

        await self.repo.add_run(
            RunRecord(
                agent_id=receiver.id,
                conversation_id=conversation_id,
                input=prompt,
                output=reply,
                provider=receiver.provider,
                model=receiver.model,
                duration_ms=int((time.perf_counter() - started) * 1000),
                success=True,
            )
        )
        message = await self.repo.add_message(
            MessageRecord(
                conversation_id=conversation_id,
                sender_agent=receiver.id,
                receiver_agent=sender_agent,
                content=reply,
            )
        )
        logger.info("Relayed %s -> %s in conversation %s", sender_agent, receiver.id, conversation_id)
        return message
