from __future__ import annotations

import logging
from typing import Dict, List, Optional

from travel_agent.agent import intents
from travel_agent.agent.handlers import HandlerRequest, IntentHandler
from travel_agent.agent.schemas import ResponseEnvelope

logger = logging.getLogger(__name__)


class IntentRouter:
    """Stateless intent label -> handler lookup; unknown labels go to general_question."""

    def __init__(self, handlers: Dict[str, IntentHandler], default_intent: str = intents.GENERAL_QUESTION) -> None:
        if default_intent not in handlers:
            raise ValueError(f"No handler registered for default intent {default_intent!r}")
        self._handlers = dict(handlers)
        self._default_intent = default_intent

    def routes(self) -> List[str]:
        return list(self._handlers.keys())

    def resolve(self, intent: Optional[str]) -> IntentHandler:
        handler = self._handlers.get(intent or "")
        if handler is None:
            logger.warning("No handler for intent %r, defaulting to %s", intent, self._default_intent)
            return self._handlers[self._default_intent]
        return handler

    async def route(self, request: HandlerRequest) -> ResponseEnvelope:
        logger.info("Routing to handler for intent: %s", request.params.intent)
        return await self.resolve(request.params.intent).handle(request)
