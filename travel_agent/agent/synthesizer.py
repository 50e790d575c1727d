from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from travel_agent.agent import intents, prompts
from travel_agent.agent.llm import CompletionService
from travel_agent.agent.schemas import ConversationTurn
from travel_agent.policy.validation import format_validation_errors
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)


class ResponseKind(str, Enum):
    RESULTS_FOUND = "results_found"
    NO_RESULTS = "no_results"
    CLARIFICATION = "clarification"
    TRIP_SUMMARY = "trip_summary"
    GENERAL_ANSWER = "general_answer"


@dataclass
class SynthesisContext:
    message: str
    intent: str = intents.GENERAL_QUESTION
    params: Dict[str, Any] = field(default_factory=dict)
    history: Sequence[ConversationTurn] = ()
    time_context: Optional[str] = None
    result_count: int = 0
    missing: Sequence[str] = ()
    problems: Sequence[str] = ()
    plan: Dict[str, Any] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)


def fallback_clarification(intent: Optional[str]) -> str:
    config = intents.get_intent_config(intent)
    if config is None or not config.examples:
        return "I'd love to help you plan your trip! Could you tell me more about what you're looking for?"
    examples = "' or '".join(config.examples)
    return f"I'd be happy to help with {intent.replace('_', ' ')}! Could you provide more details? For example: '{examples}'"


def fallback_text(kind: ResponseKind, ctx: SynthesisContext) -> str:
    if kind is ResponseKind.RESULTS_FOUND:
        return (
            f"I found {ctx.result_count} results for your request! Take a look at the options below and let me "
            "know if you'd like me to search for something else or help you add any of these to your itinerary."
        )
    if kind is ResponseKind.NO_RESULTS:
        return (
            "I couldn't find any results for that search. Would you like to try different dates "
            "or a nearby destination?"
        )
    if kind is ResponseKind.CLARIFICATION:
        if ctx.problems:
            return format_validation_errors(list(ctx.problems))
        return fallback_clarification(ctx.intent)
    if kind is ResponseKind.TRIP_SUMMARY:
        origin = ctx.plan.get("origin") or "your starting point"
        final = ctx.plan.get("finalDestination") or "your destination"
        stops = [s for s in ctx.plan.get("intermediateStops") or [] if s != final]
        via = f" via {', '.join(stops)}" if stops else ""
        c = ctx.counts
        return (
            f"Here's your trip from {origin} to {final}{via}! I found {c.get('flights', 0)} flights, "
            f"{c.get('hotels', 0)} hotels, {c.get('rentalCars', 0)} rental car options and "
            f"{c.get('activities', 0)} activity ideas. Take a look at the cards below and tell me what you'd like to book."
        )
    return "I'd be happy to help answer your travel question! Could you please rephrase it or provide more details?"


class ResponseSynthesizer:
    """Natural-language replies with a deterministic string for every failure."""

    def __init__(
        self,
        completion: CompletionService,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._completion = completion
        self._temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self._max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.LLM_TIMEOUT_SECONDS

    def _prompt(self, kind: ResponseKind, ctx: SynthesisContext) -> Tuple[str, str]:
        if kind is ResponseKind.RESULTS_FOUND or kind is ResponseKind.NO_RESULTS:
            return prompts.RESULTS_SYSTEM, prompts.results_user_prompt(ctx.message, ctx.params, ctx.result_count)
        if kind is ResponseKind.CLARIFICATION:
            return prompts.CLARIFICATION_SYSTEM, prompts.clarification_user_prompt(
                ctx.message, ctx.intent, ctx.params, ctx.missing, ctx.problems
            )
        if kind is ResponseKind.TRIP_SUMMARY:
            return prompts.TRIP_SUMMARY_SYSTEM, prompts.trip_summary_user_prompt(ctx.message, ctx.plan, ctx.counts)
        return prompts.GENERAL_SYSTEM, ctx.message

    async def synthesize(self, kind: ResponseKind, ctx: SynthesisContext) -> str:
        system, user_text = self._prompt(kind, ctx)
        turns: List[ConversationTurn] = [*ctx.history, ConversationTurn(role="user", text=user_text)]
        try:
            text = await asyncio.wait_for(
                self._completion.complete(
                    system=prompts.with_time_context(system, ctx.time_context),
                    messages=turns,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                ),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("Response synthesis (%s) failed, using fallback: %s", kind.value, e)
            return fallback_text(kind, ctx)
        if not isinstance(text, str) or not text.strip():
            return fallback_text(kind, ctx)
        return text.strip()
