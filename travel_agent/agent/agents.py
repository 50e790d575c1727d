from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, Dict, Optional

from opentelemetry import trace

from travel_agent.agent import intents
from travel_agent.agent.classifier import IntentExtractor
from travel_agent.agent.handlers import (
    FlightSearchHandler,
    GeneralQuestionHandler,
    HandlerError,
    HandlerRequest,
    HotelSearchHandler,
    IntentHandler,
    PlaceSearchHandler,
    TripPlanningHandler,
    is_provider_diagnostic,
)
from travel_agent.agent.llm import CompletionService, OpenAICompletionService
from travel_agent.agent.orchestrator import TripOrchestrator
from travel_agent.agent.router import IntentRouter
from travel_agent.agent.schemas import ConversationContext, ExtractedParameters, ResponseEnvelope
from travel_agent.agent.synthesizer import ResponseSynthesizer
from travel_agent.agent.time_context import (
    CompletionTimezoneDetector,
    TimezoneDetector,
    build_time_context,
    normalize_timezone,
)
from travel_agent.agent.trip_parser import TripPlanParser
from travel_agent.memory.context_window import ContextWindowBuilder
from travel_agent.memory.short_term import ConversationStore
from travel_agent.policy.validation import ParameterValidator
from travel_agent.tools.cards import CardAggregator
from travel_agent.tools.mapping import ParameterMapper
from travel_agent.tools.providers import (
    ActivitySuggester,
    CompletionActivitySuggester,
    FlightSearchProvider,
    HotelSearchProvider,
    MockFlightProvider,
    MockHotelProvider,
    MockPlaceProvider,
    PlaceSearchProvider,
)
from travel_agent.utils.config import settings

tracer = trace.get_tracer(__name__)

APOLOGY = "I'm sorry, I encountered an issue processing your request. Could you please try rephrasing it?"


class TravelAgentService:
    """Decision core of the travel assistant.

    One call to ``process_message`` runs: timezone detection, history
    retrieval, intent extraction, routing to the intent's handler, and
    returns a ``ResponseEnvelope``. It never raises.

    Collaborators default to the OpenAI completion service and the
    deterministic mock providers; tests inject fakes.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        completion: Optional[CompletionService] = None,
        flight_provider: Optional[FlightSearchProvider] = None,
        hotel_provider: Optional[HotelSearchProvider] = None,
        place_provider: Optional[PlaceSearchProvider] = None,
        activity_suggester: Optional[ActivitySuggester] = None,
        timezone_detector: Optional[TimezoneDetector] = None,
        conversation_store: Optional[ConversationStore] = None,
        context_builder: Optional[ContextWindowBuilder] = None,
        validator: Optional[ParameterValidator] = None,
        mapper: Optional[ParameterMapper] = None,
        aggregator: Optional[CardAggregator] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        completion = completion or OpenAICompletionService()
        aggregator = aggregator or CardAggregator()
        validator = validator or ParameterValidator(today=today)
        mapper = mapper or ParameterMapper()
        flight_provider = flight_provider or MockFlightProvider(aggregator)
        hotel_provider = hotel_provider or MockHotelProvider()
        place_provider = place_provider or MockPlaceProvider()

        self._timezone_detector = timezone_detector or CompletionTimezoneDetector(completion)
        self._store = conversation_store
        self._context_builder = context_builder or ContextWindowBuilder()
        self._extractor = IntentExtractor(completion)

        synthesizer = ResponseSynthesizer(completion)
        orchestrator = TripOrchestrator(
            flight_provider=flight_provider,
            hotel_provider=hotel_provider,
            activity_suggester=activity_suggester or CompletionActivitySuggester(completion),
            mapper=mapper,
            aggregator=aggregator,
        )
        handlers: Dict[str, IntentHandler] = {
            intents.FLIGHT_SEARCH: FlightSearchHandler(
                flight_provider, synthesizer, validator=validator, mapper=mapper
            ),
            intents.HOTEL_SEARCH: HotelSearchHandler(
                hotel_provider, synthesizer, aggregator=aggregator, validator=validator, mapper=mapper
            ),
            intents.PLACE_SEARCH: PlaceSearchHandler(
                place_provider, synthesizer, aggregator=aggregator, validator=validator, mapper=mapper
            ),
            intents.TRIP_PLANNING: TripPlanningHandler(
                TripPlanParser.default(completion, today=today), orchestrator, synthesizer
            ),
            intents.GENERAL_QUESTION: GeneralQuestionHandler(synthesizer, validator=validator),
        }
        self._router = IntentRouter(handlers)

    async def _detect_timezone(self, message: str, context: ConversationContext) -> None:
        try:
            detected = await asyncio.wait_for(
                self._timezone_detector.detect(message), timeout=settings.LLM_TIMEOUT_SECONDS
            )
        except Exception as e:
            self._logger.warning("Timezone detection failed: %s", e)
            return
        normalized = normalize_timezone(detected)
        if normalized:
            context.timezone_override = normalized
            self._logger.info("Detected timezone override: %s", normalized)

    def _error_envelope(self, error: Exception, params: Optional[ExtractedParameters]) -> ResponseEnvelope:
        parameters = params or ExtractedParameters()
        if is_provider_diagnostic(error):
            self._logger.warning("Flight provider error surfaced to user: %s", error)
            return ResponseEnvelope(type="error", message=str(error), parameters=parameters)
        if isinstance(error, HandlerError):
            self._logger.warning("Handler error: %s", error)
            return ResponseEnvelope(type="error", message=str(error), parameters=parameters)
        self._logger.exception("Unhandled error while processing message")
        return ResponseEnvelope(type="error", message=APOLOGY, parameters=parameters)

    async def process_message(
        self,
        message: str,
        conversation_context: Optional[ConversationContext] = None,
        user_id: Optional[str] = None,
        history_provider: Optional[ConversationStore] = None,
        frontend_timezone: Optional[str] = None,
    ) -> ResponseEnvelope:
        context = conversation_context if conversation_context is not None else ConversationContext()
        params: Optional[ExtractedParameters] = None
        with tracer.start_as_current_span("process_message") as span:
            span.set_attribute("conversation.id", context.conversation_id or "")
            span.set_attribute("user.id", user_id or "")
            try:
                self._logger.info("Processing message for user %s", user_id)
                await self._detect_timezone(message, context)
                time_context = build_time_context(context.timezone_override, frontend_timezone)
                self._logger.debug("Time context: %s", time_context)

                history = await self._context_builder.build(context.conversation_id, history_provider or self._store)
                outcome = await self._extractor.extract(message, history, time_context)
                params = outcome.parameters
                span.set_attribute("intent", params.intent)
                span.set_attribute("extraction.tier", outcome.tier.value)

                context.original_message = message
                envelope = await self._router.route(
                    HandlerRequest(
                        message=message,
                        params=params,
                        context=context,
                        history=history,
                        time_context=time_context,
                    )
                )
            except Exception as e:
                span.record_exception(e)
                envelope = self._error_envelope(e, params)
            span.set_attribute("response.type", envelope.type)
            span.set_attribute("response.cards", len(envelope.cards))
            return envelope
