from __future__ import annotations

import json
from collections import deque
from datetime import date
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from travel_agent.agent import intents
from travel_agent.agent.agents import TravelAgentService
from travel_agent.agent.llm import CompletionError
from travel_agent.agent.schemas import ConversationTurn, MappedSearchRequest
from travel_agent.memory.short_term import InMemoryConversationStore
from travel_agent.tools.cards import CardAggregator

FIXED_TODAY = date(2029, 12, 1)

# system-prompt markers, one per completion use
EXTRACT = "Extract travel parameters from the user's message"
CLASSIFY = "Classify this travel-related message"
TRIP_PLAN = "structured trip plan"
TIMEZONE = "extract any timezone information"
ACTIVITIES = "You respond only with valid JSON."
RESULTS = "you found search results"
CLARIFY = "you need more information"
TRIP_SUMMARY = "presenting a multi-leg trip plan"
GENERAL = "Answer the user's travel question"

Reply = Union[str, BaseException]


class FakeCompletionService:
    """Scripted completion service.

    ``on(marker, *replies)`` queues replies (or exceptions to raise) for calls whose
    system prompt contains ``marker``. Unscripted calls raise ``CompletionError``.
    """

    def __init__(self) -> None:
        self._rules: List[Tuple[str, Deque[Reply]]] = []
        self.calls: List[Dict[str, Any]] = []

    def on(self, marker: str, *replies: Reply) -> "FakeCompletionService":
        self._rules.append((marker, deque(replies)))
        return self

    def on_json(self, marker: str, payload: Any) -> "FakeCompletionService":
        return self.on(marker, json.dumps(payload))

    async def complete(
        self,
        *,
        system: str,
        messages: Sequence[ConversationTurn],
        temperature: float,
        max_tokens: int,
    ) -> str:
        self.calls.append(
            {"system": system, "messages": list(messages), "temperature": temperature, "max_tokens": max_tokens}
        )
        for marker, queue in self._rules:
            if marker in system and queue:
                reply = queue.popleft()
                if isinstance(reply, BaseException):
                    raise reply
                return reply
        raise CompletionError("no scripted reply")

    def calls_for(self, marker: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if marker in c["system"]]


def flight_payload(dep: str, arr: str, when: str, price: Any = 420.0, n: int = 0) -> Dict[str, Any]:
    return {
        "flights": [
            {
                "departure_airport": {"id": dep, "time": f"{when} 08:{n:02d}"},
                "arrival_airport": {"id": arr, "time": f"{when} 20:{n:02d}"},
                "airline": "Air France",
                "flight_number": f"AF {100 + n}",
            }
        ],
        "price": price,
        "total_duration": 480,
        "booking_token": f"tok{n}",
    }


def hotel_payload(city: str, count: int = 2, with_offers: bool = True) -> Dict[str, Any]:
    data = []
    for i in range(count):
        offers = [{"id": f"o{city}{i}", "price": {"total": f"{100 + i * 10}.00", "currency": "USD"}}] if with_offers else []
        data.append({"hotel": {"hotelId": f"{city}{i}", "name": f"Hotel {city} {i}", "cityCode": city}, "offers": offers})
    return {"data": data}


class FakeFlightProvider:
    def __init__(self, count: int = 5, error: Optional[BaseException] = None) -> None:
        self.count = count
        self.error = error
        self.requests: List[MappedSearchRequest] = []
        self._aggregator = CardAggregator()

    async def search(self, request: MappedSearchRequest):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        dep, arr, when = request.get("departure"), request.get("arrival"), request.get("outboundDate")
        return [self._aggregator.flight_card(flight_payload(dep, arr, when, n=i)) for i in range(self.count)]


class FakeHotelProvider:
    def __init__(self, payloads: Optional[Dict[str, Any]] = None, failing: Sequence[str] = ()) -> None:
        self.payloads = payloads or {}
        self.failing = set(failing)
        self.requests: List[MappedSearchRequest] = []

    async def search(self, request: MappedSearchRequest):
        self.requests.append(request)
        city = request.get("cityCode")
        if city in self.failing:
            raise RuntimeError(f"hotel provider down for {city}")
        return self.payloads.get(city, hotel_payload(city))


class FakePlaceProvider:
    def __init__(self, places: Optional[List[Dict[str, Any]]] = None) -> None:
        self.places = places if places is not None else [
            {"name": "Sagrada Familia", "place_id": "p1", "rating": 4.8, "formatted_address": "Barcelona"},
            {"name": "Park Guell", "place_id": "p2", "formatted_address": "Barcelona"},
        ]
        self.requests: List[MappedSearchRequest] = []

    async def search(self, request: MappedSearchRequest):
        self.requests.append(request)
        return self.places


class FakeActivitySuggester:
    def __init__(self, items: Optional[List[Dict[str, Any]]] = None, error: Optional[BaseException] = None) -> None:
        self.items = items if items is not None else [
            {"id": "a1", "title": "Bear Lake hike", "subtitle": "Easy alpine loop", "timing": "Morning"},
            {"id": "a2", "title": "Trail Ridge Road drive", "subtitle": "Highest paved road", "timing": "Afternoon"},
        ]
        self.error = error
        self.calls: List[Tuple[str, Optional[str], str]] = []

    async def suggest(self, location: str, date: Optional[str], time_of_day: str = "day"):
        self.calls.append((location, date, time_of_day))
        if self.error is not None:
            raise self.error
        return self.items


@pytest.fixture(autouse=True)
def _restore_intents():
    yield
    intents.reset_intents()


@pytest.fixture
def completion() -> FakeCompletionService:
    return FakeCompletionService()


@pytest.fixture
def flights() -> FakeFlightProvider:
    return FakeFlightProvider()


@pytest.fixture
def hotels() -> FakeHotelProvider:
    return FakeHotelProvider()


@pytest.fixture
def places() -> FakePlaceProvider:
    return FakePlaceProvider()


@pytest.fixture
def activities() -> FakeActivitySuggester:
    return FakeActivitySuggester()


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def service(completion, flights, hotels, places, activities, store) -> TravelAgentService:
    return TravelAgentService(
        completion=completion,
        flight_provider=flights,
        hotel_provider=hotels,
        place_provider=places,
        activity_suggester=activities,
        conversation_store=store,
        today=lambda: FIXED_TODAY,
    )
