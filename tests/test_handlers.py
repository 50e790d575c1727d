import asyncio

import pytest

from travel_agent.agent import intents
from travel_agent.agent.handlers import (
    FlightSearchHandler,
    GeneralQuestionHandler,
    HandlerError,
    HandlerRequest,
    HotelSearchHandler,
    PlaceSearchHandler,
    is_provider_diagnostic,
)
from travel_agent.agent.router import IntentRouter
from travel_agent.agent.schemas import ExtractedParameters, ResponseEnvelope
from travel_agent.agent.synthesizer import (
    ResponseKind,
    ResponseSynthesizer,
    SynthesisContext,
    fallback_clarification,
    fallback_text,
)
from travel_agent.tools.providers import FlightProviderError

from conftest import (
    CLARIFY,
    GENERAL,
    RESULTS,
    FakeFlightProvider,
    FakeHotelProvider,
    FakePlaceProvider,
    hotel_payload,
)


@pytest.fixture
def synthesizer(completion):
    return ResponseSynthesizer(completion)


class StalledProvider:
    async def search(self, request):
        await asyncio.sleep(5)


def flight_request(**kw):
    params = dict(intent=intents.FLIGHT_SEARCH, departure="NYC", destination="Paris", outbound_date="2030-06-01", adults=1)
    params.update(kw)
    return HandlerRequest(message="Find flights from NYC to Paris on 2030-06-01", params=ExtractedParameters(**params))


def hotel_request(**kw):
    params = dict(intent=intents.HOTEL_SEARCH, destination="Rome", check_in_date="2030-05-01", check_out_date="2030-05-04")
    params.update(kw)
    return HandlerRequest(message="Hotel in Rome", params=ExtractedParameters(**params))


def place_request(**kw):
    params = dict(intent=intents.PLACE_SEARCH, destination="Barcelona")
    params.update(kw)
    return HandlerRequest(message="Things to do in Barcelona", params=ExtractedParameters(**params))


# ---------- flights ----------
async def test_flight_search_returns_cards(completion, synthesizer):
    completion.on(RESULTS, "Here are 5 great flights to Paris!")
    provider = FakeFlightProvider()
    envelope = await FlightSearchHandler(provider, synthesizer).handle(flight_request())
    assert envelope.type == "response_with_cards"
    assert envelope.message == "Here are 5 great flights to Paris!"
    assert len(envelope.cards) == 5
    assert len({c.id for c in envelope.cards}) == 5
    request = provider.requests[0]
    assert (request.get("departure"), request.get("arrival"), request.get("adults")) == ("JFK", "CDG", 1)


async def test_flight_search_fallback_text_when_synthesis_fails(synthesizer):
    envelope = await FlightSearchHandler(FakeFlightProvider(count=2), synthesizer).handle(flight_request())
    assert envelope.message.startswith("I found 2 results for your request!")


async def test_flight_search_without_results(synthesizer):
    envelope = await FlightSearchHandler(FakeFlightProvider(count=0), synthesizer).handle(flight_request())
    assert envelope.type == "response"
    assert envelope.cards == []
    assert envelope.message.startswith("I couldn't find any results")


async def test_invalid_flight_request_asks_for_details(completion, synthesizer):
    provider = FakeFlightProvider()
    request = flight_request(departure=None, outbound_date=None)
    envelope = await FlightSearchHandler(provider, synthesizer).handle(request)
    assert envelope.type == "clarification"
    assert provider.requests == []
    prompt = completion.calls_for(CLARIFY)[0]["messages"][-1].text
    assert "departure" in prompt
    assert "outboundDate" in prompt
    assert "Departure location is required" in prompt


async def test_validation_problems_are_listed_when_synthesis_fails(synthesizer):
    envelope = await FlightSearchHandler(FakeFlightProvider(), synthesizer).handle(flight_request(departure=None))
    assert envelope.type == "clarification"
    assert envelope.message == "I need more information: Departure location is required"


async def test_flight_provider_diagnostic_is_reraised(synthesizer):
    provider = FakeFlightProvider(error=FlightProviderError("Invalid API key", status_code=401))
    with pytest.raises(FlightProviderError, match="SerpAPI error: Invalid API key"):
        await FlightSearchHandler(provider, synthesizer).handle(flight_request())


async def test_other_flight_failures_become_handler_errors(synthesizer):
    provider = FakeFlightProvider(error=RuntimeError("connection reset"))
    with pytest.raises(HandlerError, match="I encountered an issue searching for flights: connection reset"):
        await FlightSearchHandler(provider, synthesizer).handle(flight_request())


@pytest.mark.parametrize(
    "handler_cls, kind, request_factory",
    [
        (FlightSearchHandler, "flight", lambda: flight_request()),
        (HotelSearchHandler, "hotel", lambda: hotel_request()),
        (PlaceSearchHandler, "place", lambda: place_request()),
    ],
)
async def test_provider_timeout_gives_a_complete_sentence(synthesizer, handler_cls, kind, request_factory):
    handler = handler_cls(StalledProvider(), synthesizer, timeout_seconds=0.05)
    with pytest.raises(HandlerError) as exc:
        await handler.handle(request_factory())
    assert str(exc.value) == f"The {kind} search took too long to respond. Please try again in a moment."


def test_is_provider_diagnostic():
    assert is_provider_diagnostic(FlightProviderError("quota"))
    assert is_provider_diagnostic(RuntimeError("SerpAPI returned 500"))
    assert not is_provider_diagnostic(RuntimeError("boom"))
    assert is_provider_diagnostic(RuntimeError("Duffel down"), marker="Duffel")


# ---------- hotels ----------
async def test_hotel_search_caps_cards(synthesizer):
    hotels = FakeHotelProvider(payloads={"ROM": hotel_payload("ROM", count=8)})
    envelope = await HotelSearchHandler(hotels, synthesizer, max_results=5).handle(hotel_request())
    assert envelope.type == "response_with_cards"
    assert len(envelope.cards) == 5
    assert hotels.requests[0].get("cityCode") == "ROM"


@pytest.mark.parametrize("missing", ["destination", "check_in_date", "check_out_date"])
async def test_hotel_search_asks_for_destination_and_dates(synthesizer, missing):
    hotels = FakeHotelProvider()
    envelope = await HotelSearchHandler(hotels, synthesizer).handle(hotel_request(**{missing: None}))
    assert envelope.type == "clarification"
    assert envelope.message.startswith("I'd be happy to help with hotel search!")
    assert hotels.requests == []


async def test_hotel_search_rejects_inverted_stay(synthesizer):
    envelope = await HotelSearchHandler(FakeHotelProvider(), synthesizer).handle(
        hotel_request(check_in_date="2030-05-04", check_out_date="2030-05-01")
    )
    assert envelope.type == "clarification"


async def test_hotel_offers_with_bare_prices_become_cards(synthesizer):
    payload = {"data": [{"hotel": {"name": "Inn", "cityCode": "ROM"}, "offers": [{"id": "o1", "price": "99"}]}]}
    envelope = await HotelSearchHandler(FakeHotelProvider(payloads={"ROM": payload}), synthesizer).handle(hotel_request())
    assert envelope.type == "response_with_cards"
    assert [c.price.amount for c in envelope.cards] == [99.0]


async def test_hotel_failure_is_a_handler_error(synthesizer):
    hotels = FakeHotelProvider(failing=["ROM"])
    with pytest.raises(HandlerError, match="hotels"):
        await HotelSearchHandler(hotels, synthesizer).handle(hotel_request())


# ---------- places ----------
async def test_place_search(synthesizer):
    places = FakePlaceProvider()
    request = HandlerRequest(
        message="Things to do in Barcelona",
        params=ExtractedParameters(intent=intents.PLACE_SEARCH, destination="Barcelona"),
    )
    envelope = await PlaceSearchHandler(places, synthesizer).handle(request)
    assert envelope.type == "response_with_cards"
    assert [c.title for c in envelope.cards] == ["Sagrada Familia", "Park Guell"]
    assert places.requests[0].get("query") == "things to do in Barcelona"


async def test_place_search_without_destination_or_query(synthesizer):
    request = HandlerRequest(message="places", params=ExtractedParameters(intent=intents.PLACE_SEARCH))
    envelope = await PlaceSearchHandler(FakePlaceProvider(), synthesizer).handle(request)
    assert envelope.type == "clarification"


# ---------- general ----------
async def test_general_question_uses_history(completion, synthesizer):
    completion.on(GENERAL, "Spring is lovely in Japan.")
    request = HandlerRequest(
        message="When should I go to Japan?",
        params=ExtractedParameters(intent=intents.GENERAL_QUESTION),
        time_context="Current user time: Monday (UTC)",
    )
    envelope = await GeneralQuestionHandler(synthesizer).handle(request)
    assert envelope.type == "response"
    assert envelope.message == "Spring is lovely in Japan."
    assert completion.calls_for(GENERAL)[0]["system"].endswith("Current user time: Monday (UTC)")


async def test_general_question_fallback(synthesizer):
    request = HandlerRequest(message="asdkjasdk", params=ExtractedParameters())
    envelope = await GeneralQuestionHandler(synthesizer).handle(request)
    assert envelope.message == fallback_text(ResponseKind.GENERAL_ANSWER, SynthesisContext(message="asdkjasdk"))


# ---------- synthesizer ----------
async def test_blank_synthesis_uses_fallback(completion, synthesizer):
    completion.on(RESULTS, "   ")
    text = await synthesizer.synthesize(ResponseKind.RESULTS_FOUND, SynthesisContext(message="x", result_count=3))
    assert text.startswith("I found 3 results")


def test_fallback_clarification():
    assert fallback_clarification(intents.FLIGHT_SEARCH) == (
        "I'd be happy to help with flight search! Could you provide more details? "
        "For example: 'Find flights from NYC to Paris' or 'Book a flight to Tokyo'"
    )
    assert fallback_clarification("mystery").startswith("I'd love to help you plan your trip!")


def test_clarification_fallback_lists_problems():
    ctx = SynthesisContext(message="x", intent=intents.HOTEL_SEARCH, problems=["Check-out must be after check-in", "Bad date"])
    assert fallback_text(ResponseKind.CLARIFICATION, ctx) == (
        "I need more information:\n• Check-out must be after check-in\n• Bad date"
    )
    assert fallback_text(ResponseKind.CLARIFICATION, SynthesisContext(message="x", intent=intents.HOTEL_SEARCH)) == (
        fallback_clarification(intents.HOTEL_SEARCH)
    )


def test_trip_summary_fallback():
    ctx = SynthesisContext(
        message="trip",
        plan={"origin": "MSN", "finalDestination": "DEN", "intermediateStops": ["DEN", "Rocky Mountain National Park"]},
        counts={"flights": 6, "hotels": 2, "rentalCars": 3, "activities": 3},
    )
    text = fallback_text(ResponseKind.TRIP_SUMMARY, ctx)
    assert text.startswith("Here's your trip from MSN to DEN via Rocky Mountain National Park!")
    assert "6 flights" in text


# ---------- router ----------
class _Echo:
    def __init__(self, label):
        self.label = label

    async def handle(self, request):
        return ResponseEnvelope(type="response", message=self.label)


async def test_router_dispatches_and_defaults():
    router = IntentRouter({intents.GENERAL_QUESTION: _Echo("general"), intents.FLIGHT_SEARCH: _Echo("flights")})
    assert sorted(router.routes()) == [intents.FLIGHT_SEARCH, intents.GENERAL_QUESTION]

    flights = HandlerRequest(message="m", params=ExtractedParameters(intent=intents.FLIGHT_SEARCH))
    assert (await router.route(flights)).message == "flights"

    intents.register_intent("visa_question", "Visa rules")
    visa = HandlerRequest(message="m", params=ExtractedParameters(intent="visa_question"))
    assert (await router.route(visa)).message == "general"


def test_router_requires_default_handler():
    with pytest.raises(ValueError):
        IntentRouter({intents.FLIGHT_SEARCH: _Echo("flights")})
