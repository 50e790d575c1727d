from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from opentelemetry import trace

from travel_agent.agent import intents
from travel_agent.agent.schemas import ResultCard, TripPlan
from travel_agent.tools.cards import CardAggregator
from travel_agent.tools.locations import is_location_code, normalize_location, to_city_code
from travel_agent.tools.mapping import ParameterMapper
from travel_agent.tools.providers import (
    ActivitySuggester,
    FlightSearchProvider,
    HotelSearchProvider,
    placeholder_activities,
)
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_RENTAL_OPTIONS = (
    ("Enterprise", "Compact", 45.0),
    ("Hertz", "Midsize SUV", 68.0),
    ("Avis", "Full-size", 59.0),
)


@dataclass
class TripResults:
    flights: List[ResultCard] = field(default_factory=list)
    hotels: List[ResultCard] = field(default_factory=list)
    rental_cars: List[ResultCard] = field(default_factory=list)
    activities: List[ResultCard] = field(default_factory=list)

    def all_cards(self) -> List[ResultCard]:
        return [*self.flights, *self.hotels, *self.rental_cars, *self.activities]

    def counts(self) -> Dict[str, int]:
        return {
            "flights": len(self.flights),
            "hotels": len(self.hotels),
            "rentalCars": len(self.rental_cars),
            "activities": len(self.activities),
        }


def _code(value: Optional[str]) -> Optional[str]:
    normalized = normalize_location(value) if value else None
    return normalized if is_location_code(normalized) else None


def primary_destination(plan: TripPlan) -> Optional[str]:
    """First stop that is not an airport (a landmark, a park), else the final destination."""
    for stop in plan.intermediate_stops:
        if _code(stop) is None:
            return stop
    return plan.final_destination


class TripOrchestrator:
    """Runs every provider search a trip plan needs.

    Outbound flight, return flight, one hotel search per code stop, and activity
    suggestions run concurrently; rental cars are static placeholders. A failing
    or timed-out step yields an empty list for that step only.
    """

    def __init__(
        self,
        flight_provider: FlightSearchProvider,
        hotel_provider: HotelSearchProvider,
        activity_suggester: ActivitySuggester,
        mapper: Optional[ParameterMapper] = None,
        aggregator: Optional[CardAggregator] = None,
        max_flights: Optional[int] = None,
        max_hotels: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._flights = flight_provider
        self._hotels = hotel_provider
        self._activities = activity_suggester
        self._mapper = mapper or ParameterMapper()
        self._aggregator = aggregator or CardAggregator()
        self._max_flights = max_flights or settings.MAX_FLIGHT_CARDS
        self._max_hotels = max_hotels or settings.MAX_HOTEL_CARDS
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.PROVIDER_TIMEOUT_SECONDS

    async def execute(self, plan: TripPlan) -> TripResults:
        with tracer.start_as_current_span("trip.execute") as span:
            span.set_attribute("trip.origin", plan.origin or "")
            span.set_attribute("trip.final_destination", plan.final_destination or "")

            hotel_codes = self._hotel_codes(plan)
            outbound, inbound, activities, *hotel_lists = await asyncio.gather(
                self._step("outbound_flight", lambda: self._outbound_flight(plan)),
                self._step("return_flight", lambda: self._return_flight(plan)),
                self._step("activities", lambda: self._activity_cards(plan), bounded=False),
                *[self._step(f"hotels:{code}", lambda c=code: self._hotel_cards(c, plan)) for code in hotel_codes],
            )
            results = TripResults(
                flights=[*outbound, *inbound],
                hotels=[card for cards in hotel_lists for card in cards],
                rental_cars=self._rental_cars(plan),
                activities=activities,
            )
            for key, count in results.counts().items():
                span.set_attribute(f"trip.{key}", count)
            logger.info("Trip orchestration finished: %s", results.counts())
            return results

    async def _step(
        self,
        name: str,
        run: Callable[[], Awaitable[List[ResultCard]]],
        bounded: bool = True,
    ) -> List[ResultCard]:
        timeout = self._timeout if bounded else None
        with tracer.start_as_current_span(f"trip.step.{name}"):
            try:
                return await asyncio.wait_for(run(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Trip step %s timed out after %ss", name, timeout)
            except Exception as e:
                logger.warning("Trip step %s failed: %s", name, e)
            return []

    # ---------- flights ----------
    async def _search_flights(self, departure: Optional[str], arrival: Optional[str], when: Optional[str]) -> List[ResultCard]:
        dep, arr = _code(departure), _code(arrival)
        if dep is None or arr is None or not when:
            logger.info("Skipping flight %s -> %s: not both airport codes", departure, arrival)
            return []
        if dep == arr:
            return []
        request = self._mapper.map_to_provider_request(
            intents.FLIGHT_SEARCH,
            {"intent": intents.FLIGHT_SEARCH, "departure": dep, "destination": arr, "outboundDate": when},
        )
        cards = await self._flights.search(request)
        return list(cards or [])[: self._max_flights]

    async def _outbound_flight(self, plan: TripPlan) -> List[ResultCard]:
        first_stop = plan.intermediate_stops[0] if plan.intermediate_stops else plan.final_destination
        return await self._search_flights(plan.origin, first_stop, plan.dates.start_date)

    async def _return_flight(self, plan: TripPlan) -> List[ResultCard]:
        if _code(plan.origin) is not None and _code(plan.origin) == _code(plan.final_destination):
            return []
        return await self._search_flights(plan.final_destination, plan.origin, plan.dates.end_date or plan.dates.start_date)

    # ---------- hotels ----------
    def _hotel_codes(self, plan: TripPlan) -> List[str]:
        origin_city = to_city_code(_code(plan.origin)) if _code(plan.origin) else None
        codes: List[str] = []
        for stop in [*plan.intermediate_stops, plan.final_destination]:
            code = _code(stop)
            if code is None:
                continue
            city = to_city_code(code)
            if city == origin_city or city in codes:
                continue
            codes.append(city)
        return codes

    async def _hotel_cards(self, city_code: str, plan: TripPlan) -> List[ResultCard]:
        if not plan.dates.start_date or not plan.dates.end_date:
            return []
        request = self._mapper.map_to_provider_request(
            intents.HOTEL_SEARCH,
            {
                "intent": intents.HOTEL_SEARCH,
                "destination": city_code,
                "checkInDate": plan.dates.start_date,
                "checkOutDate": plan.dates.end_date,
            },
        )
        payload = await self._hotels.search(request)
        return list(self._aggregator.hotel_cards(payload, limit=self._max_hotels))

    # ---------- ground transport ----------
    def _rental_cars(self, plan: TripPlan) -> List[ResultCard]:
        origin = _code(plan.origin) or plan.origin
        pickup = _code(plan.final_destination) or plan.final_destination
        cards: List[ResultCard] = []
        for company, vehicle, rate in _RENTAL_OPTIONS:
            payload: Dict[str, Any] = {
                "id": f"car_{company.lower()}_{pickup}_{plan.dates.start_date}",
                "company": company,
                "vehicle_class": vehicle,
                "pickup": pickup,
                "dropoff": pickup,
                "trip_origin": origin,
                "trip_destination": pickup,
                "daily_rate": rate,
                "currency": "USD",
            }
            cards.append(self._aggregator.rental_car_card(payload))
        return cards

    # ---------- activities ----------
    async def _activity_cards(self, plan: TripPlan) -> List[ResultCard]:
        location = primary_destination(plan)
        if not location:
            return []
        try:
            suggestions = await asyncio.wait_for(
                self._activities.suggest(location, plan.dates.start_date, "day"),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("Activity suggestions for %s failed, using placeholders: %s", location, e)
            suggestions = []
        if not suggestions:
            suggestions = placeholder_activities(location, plan.dates.start_date)
        return [self._aggregator.activity_card(item, location=location) for item in suggestions]
