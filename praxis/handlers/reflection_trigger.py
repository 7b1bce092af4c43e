"""Reflection trigger: reflects an agent right after one of its behaviors ran.

Listens to: behavior_executed
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from praxis.events import BEHAVIOR_EXECUTED, Event, EventBus

if TYPE_CHECKING:
    from praxis.engine.service import PraxisService

logger = logging.getLogger(__name__)


class ReflectionTrigger:
    def __init__(self, service: PraxisService, bus: EventBus) -> None:
        self._service = service
        bus.on(BEHAVIOR_EXECUTED, self.handle)

    async def handle(self, event: Event) -> None:
        envelope = await self._service.reflect(event.agent_id)
        if envelope.success:
            logger.debug("Post-run reflection stored for %s", event.agent_id)
        else:
            logger.warning(
                "Post-run reflection failed for %s: %s %s", event.agent_id, envelope.error, envelope.message
            )
