from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from opentelemetry import trace

from travel_agent.agent import intents, prompts
from travel_agent.agent.orchestrator import TripOrchestrator
from travel_agent.agent.schemas import (
    ConversationContext,
    ConversationTurn,
    ExtractedParameters,
    ResponseEnvelope,
    ResultCard,
    ValidationResult,
)
from travel_agent.agent.synthesizer import ResponseKind, ResponseSynthesizer, SynthesisContext
from travel_agent.agent.trip_parser import TRIP_CLARIFICATION, TripPlanParser
from travel_agent.policy.validation import ParameterValidator
from travel_agent.tools.cards import CardAggregator, ensure_unique_ids
from travel_agent.tools.mapping import ParameterMapper
from travel_agent.tools.providers import (
    FlightProviderError,
    FlightSearchProvider,
    HotelSearchProvider,
    PlaceSearchProvider,
)
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class HandlerError(Exception):
    """A handler failure whose message is safe to show the user."""


def timeout_error(kind: str) -> HandlerError:
    return HandlerError(f"The {kind} search took too long to respond. Please try again in a moment.")


@dataclass
class HandlerRequest:
    message: str
    params: ExtractedParameters
    context: ConversationContext = field(default_factory=ConversationContext)
    history: Sequence[ConversationTurn] = ()
    time_context: Optional[str] = None

    def synthesis(self, **kwargs) -> SynthesisContext:
        return SynthesisContext(
            message=self.context.original_message or self.message,
            intent=self.params.intent,
            params=self.params.to_payload(),
            history=self.history,
            time_context=self.time_context,
            **kwargs,
        )


class IntentHandler(Protocol):
    async def handle(self, request: HandlerRequest) -> ResponseEnvelope: ...


def is_provider_diagnostic(error: BaseException, marker: Optional[str] = None) -> bool:
    """True for flight-provider errors the user should see verbatim."""
    marker = marker or settings.FLIGHT_PROVIDER_MARKER
    return isinstance(error, FlightProviderError) or (bool(marker) and marker in str(error))


class _SearchHandler:
    intent: str = intents.GENERAL_QUESTION

    def __init__(
        self,
        synthesizer: ResponseSynthesizer,
        validator: Optional[ParameterValidator] = None,
        mapper: Optional[ParameterMapper] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._validator = validator or ParameterValidator()
        self._mapper = mapper or ParameterMapper()
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.PROVIDER_TIMEOUT_SECONDS

    async def _clarify(self, request: HandlerRequest, problems: Sequence[str] = ()) -> ResponseEnvelope:
        missing = prompts.missing_params(self.intent, request.params.to_payload())
        message = await self._synthesizer.synthesize(
            ResponseKind.CLARIFICATION,
            request.synthesis(missing=missing, problems=list(problems)),
        )
        return ResponseEnvelope(type="clarification", message=message, parameters=request.params)

    def _validate(self, request: HandlerRequest) -> ValidationResult:
        result = self._validator.validate(self.intent, request.params)
        if not result.is_valid:
            logger.warning("%s validation failed: %s", self.intent, result.errors)
        if result.warnings:
            logger.warning("%s validation warnings: %s", self.intent, result.warnings)
        return result

    async def _respond(self, request: HandlerRequest, cards: List[ResultCard]) -> ResponseEnvelope:
        cards = ensure_unique_ids(cards)
        if not cards:
            message = await self._synthesizer.synthesize(ResponseKind.NO_RESULTS, request.synthesis())
            return ResponseEnvelope(type="response", message=message, parameters=request.params)
        message = await self._synthesizer.synthesize(
            ResponseKind.RESULTS_FOUND, request.synthesis(result_count=len(cards))
        )
        return ResponseEnvelope(type="response_with_cards", message=message, cards=cards, parameters=request.params)

    async def _call(self, awaitable):
        with tracer.start_as_current_span(f"provider.{self.intent}"):
            return await asyncio.wait_for(awaitable, timeout=self._timeout)


# -------------------------
# Flights
# -------------------------
class FlightSearchHandler(_SearchHandler):
    intent = intents.FLIGHT_SEARCH

    def __init__(self, provider: FlightSearchProvider, synthesizer: ResponseSynthesizer, **kwargs) -> None:
        super().__init__(synthesizer, **kwargs)
        self._provider = provider

    async def handle(self, request: HandlerRequest) -> ResponseEnvelope:
        validation = self._validate(request)
        if not validation.is_valid:
            return await self._clarify(request, validation.errors)

        try:
            mapped = self._mapper.map_to_provider_request(self.intent, request.params)
            logger.debug("Mapped flight request: %s", mapped.params)
            cards = list(await self._call(self._provider.search(mapped)) or [])
        except asyncio.TimeoutError as e:
            logger.warning("Flight search timed out after %ss", self._timeout)
            raise timeout_error("flight") from e
        except Exception as e:
            if is_provider_diagnostic(e):
                raise
            logger.warning("Flight search failed: %s", e)
            raise HandlerError(f"I encountered an issue searching for flights: {e}") from e
        logger.info("Flight search completed: %d results found", len(cards))
        return await self._respond(request, cards)


# -------------------------
# Hotels
# -------------------------
class HotelSearchHandler(_SearchHandler):
    intent = intents.HOTEL_SEARCH

    def __init__(
        self,
        provider: HotelSearchProvider,
        synthesizer: ResponseSynthesizer,
        aggregator: Optional[CardAggregator] = None,
        max_results: Optional[int] = None,
        **kwargs,
    ) -> None:
        super().__init__(synthesizer, **kwargs)
        self._provider = provider
        self._aggregator = aggregator or CardAggregator()
        self._max_results = max_results or settings.MAX_HOTEL_CARDS

    async def handle(self, request: HandlerRequest) -> ResponseEnvelope:
        params = request.params
        # Stay dates and a destination are asked for before any validation error
        if not params.destination or not params.check_in_date or not params.check_out_date:
            logger.info("Hotel search missing destination or stay dates - asking for them")
            return await self._clarify(request)

        validation = self._validate(request)
        if not validation.is_valid:
            return await self._clarify(request, validation.errors)

        try:
            mapped = self._mapper.map_to_provider_request(self.intent, params)
            payload = await self._call(self._provider.search(mapped))
            cards = self._aggregator.hotel_cards(payload, limit=self._max_results)
        except asyncio.TimeoutError as e:
            logger.warning("Hotel search timed out after %ss", self._timeout)
            raise timeout_error("hotel") from e
        except Exception as e:
            logger.warning("Hotel search failed: %s", e)
            raise HandlerError(f"I encountered an issue searching for hotels: {e}") from e
        logger.info("Hotel search completed: %d results found", len(cards))
        return await self._respond(request, list(cards))


# -------------------------
# Places
# -------------------------
class PlaceSearchHandler(_SearchHandler):
    intent = intents.PLACE_SEARCH

    def __init__(
        self,
        provider: PlaceSearchProvider,
        synthesizer: ResponseSynthesizer,
        aggregator: Optional[CardAggregator] = None,
        **kwargs,
    ) -> None:
        super().__init__(synthesizer, **kwargs)
        self._provider = provider
        self._aggregator = aggregator or CardAggregator()

    async def handle(self, request: HandlerRequest) -> ResponseEnvelope:
        validation = self._validate(request)
        if not validation.is_valid:
            return await self._clarify(request, validation.errors)

        try:
            mapped = self._mapper.map_to_provider_request(self.intent, request.params)
            places = await self._call(self._provider.search(mapped))
            cards = [self._aggregator.place_card(p) for p in (places or []) if isinstance(p, dict)]
        except asyncio.TimeoutError as e:
            logger.warning("Place search timed out after %ss", self._timeout)
            raise timeout_error("place") from e
        except Exception as e:
            logger.warning("Place search failed: %s", e)
            raise HandlerError(f"I encountered an issue searching for places: {e}") from e
        logger.info("Place search completed: %d results found", len(cards))
        return await self._respond(request, cards)


# -------------------------
# General questions
# -------------------------
class GeneralQuestionHandler:
    def __init__(self, synthesizer: ResponseSynthesizer, validator: Optional[ParameterValidator] = None) -> None:
        self._synthesizer = synthesizer
        self._validator = validator or ParameterValidator()

    async def handle(self, request: HandlerRequest) -> ResponseEnvelope:
        # never blocks: problems here are only logged
        validation = self._validator.validate(intents.GENERAL_QUESTION, request.params)
        if validation.warnings:
            logger.info("General question warnings: %s", validation.warnings)
        message = await self._synthesizer.synthesize(
            ResponseKind.GENERAL_ANSWER,
            SynthesisContext(
                message=request.message,
                intent=intents.GENERAL_QUESTION,
                history=request.history,
                time_context=request.time_context,
            ),
        )
        return ResponseEnvelope(type="response", message=message, parameters=request.params)


# -------------------------
# Trip planning
# -------------------------
class TripPlanningHandler:
    def __init__(
        self,
        parser: TripPlanParser,
        orchestrator: TripOrchestrator,
        synthesizer: ResponseSynthesizer,
    ) -> None:
        self._parser = parser
        self._orchestrator = orchestrator
        self._synthesizer = synthesizer

    async def handle(self, request: HandlerRequest) -> ResponseEnvelope:
        plan = await self._parser.parse(request.message, request.params, request.history, request.time_context)
        if not plan.is_valid:
            return ResponseEnvelope(
                type="clarification",
                message=plan.clarification_message or TRIP_CLARIFICATION,
                parameters=request.params,
            )

        results = await self._orchestrator.execute(plan)
        cards = ensure_unique_ids(results.all_cards())
        plan_payload = plan.to_payload()
        message = await self._synthesizer.synthesize(
            ResponseKind.TRIP_SUMMARY,
            request.synthesis(result_count=len(cards), plan=plan_payload, counts=results.counts()),
        )
        parameters = ExtractedParameters.model_validate({**request.params.to_payload(), "tripPlan": plan_payload})
        return ResponseEnvelope(
            type="response_with_cards" if cards else "response",
            message=message,
            cards=cards,
            parameters=parameters,
        )
