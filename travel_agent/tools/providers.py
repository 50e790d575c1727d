from __future__ import annotations

import hashlib
import json
import logging
import random
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Protocol

from travel_agent.agent import prompts
from travel_agent.agent.llm import CompletionService, parse_json_reply
from travel_agent.agent.schemas import ConversationTurn, MappedSearchRequest, ResultCard
from travel_agent.tools.cards import CardAggregator
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)

# -------------------------
# Errors
# -------------------------
class ProviderError(Exception):
    """Raised by a search provider with its own diagnostic message."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

class FlightProviderError(ProviderError):
    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None) -> None:
        provider = provider or settings.FLIGHT_PROVIDER_MARKER
        if provider not in message:
            message = f"{provider} error: {message}"
        super().__init__(message, provider, status_code)

# -------------------------
# Collaborator contracts
# -------------------------
class FlightSearchProvider(Protocol):
    async def search(self, request: MappedSearchRequest) -> List[ResultCard]: ...

class HotelSearchProvider(Protocol):
    async def search(self, request: MappedSearchRequest) -> Dict[str, Any]:
        """Raw payload with a ``data`` list of ``{hotel, offers}`` items."""
        ...

class PlaceSearchProvider(Protocol):
    async def search(self, request: MappedSearchRequest) -> List[Dict[str, Any]]: ...

class ActivitySuggester(Protocol):
    async def suggest(self, location: str, date: Optional[str], time_of_day: str = "day") -> List[Dict[str, Any]]: ...

# -------------------------
# Deterministic mock providers
# -------------------------
_AIRLINES = ["United", "Delta", "American", "Air France", "Lufthansa", "British Airways", "KLM", "JetBlue"]
_HOTEL_NAMES = ["Grand Central Hotel", "Riverside Suites", "Old Town Inn", "Harbor View", "Park Plaza", "Boutique Maison"]
_PLACE_KINDS = ["Museum", "Market", "Gardens", "Cathedral", "Viewpoint", "Food Hall"]

def _stable_rng(seed_text: str) -> random.Random:
    digest = hashlib.sha256(seed_text.encode("utf-8")).hexdigest()
    seed = int(digest[:16], 16)
    return random.Random(seed)

class MockFlightProvider:
    """Deterministic flight provider for demos and tests. Replace with a real flight API."""

    def __init__(self, aggregator: Optional[CardAggregator] = None, results: int = 5) -> None:
        self._aggregator = aggregator or CardAggregator()
        self._results = results

    async def search(self, request: MappedSearchRequest) -> List[ResultCard]:
        dep = request.get("departure")
        arr = request.get("arrival")
        outbound = request.get("outboundDate")
        if not dep or not arr or not outbound:
            raise FlightProviderError("departure, arrival and outboundDate are required", status_code=400)
        if dep == arr:
            raise FlightProviderError(f"departure and arrival are the same airport ({dep})", status_code=400)

        rng = _stable_rng(json.dumps(request.params, sort_keys=True, default=str))
        adults = int(request.get("adults") or 1)
        cards: List[ResultCard] = []
        for i in range(self._results):
            stops = rng.choice([0, 0, 1])
            hour = rng.randint(6, 21)
            minutes = rng.randint(90, 780)
            segments = [{
                "departure_airport": {"id": dep, "time": f"{outbound} {hour:02d}:{rng.choice([0, 15, 30, 45]):02d}"},
                "arrival_airport": {"id": arr if not stops else "HUB"},
                "airline": rng.choice(_AIRLINES),
                "flight_number": f"{rng.choice('UADLBK')}{rng.choice('ANLAJ')} {rng.randint(100, 9999)}",
            }]
            if stops:
                segments.append({
                    "departure_airport": {"id": "HUB"},
                    "arrival_airport": {"id": arr},
                    "airline": segments[0]["airline"],
                    "flight_number": f"{segments[0]['flight_number'][:2]} {rng.randint(100, 9999)}",
                })
            payload = {
                "flights": segments,
                "price": round(rng.uniform(180, 1400) * adults, 2),
                "total_duration": minutes,
                "carbon_emissions": {"this_flight": rng.randint(90_000, 900_000)} if rng.random() > 0.3 else None,
                "booking_token": f"tok_{hashlib.sha1(f'{dep}{arr}{outbound}{i}'.encode()).hexdigest()[:12]}",
            }
            cards.append(self._aggregator.flight_card(payload, currency=request.get("currency") or "USD"))
        return cards

class MockHotelProvider:
    """Deterministic hotel provider returning the raw ``{data: [{hotel, offers}]}`` shape."""

    async def search(self, request: MappedSearchRequest) -> Dict[str, Any]:
        city = request.get("cityCode")
        check_in = request.get("checkInDate")
        check_out = request.get("checkOutDate")
        if not city:
            return {"data": []}
        rng = _stable_rng(json.dumps(request.params, sort_keys=True, default=str))
        data = []
        for i, name in enumerate(rng.sample(_HOTEL_NAMES, k=len(_HOTEL_NAMES))):
            hotel = {
                "hotelId": f"{city}{i:03d}",
                "name": f"{name} {city}",
                "cityCode": city,
                "rating": rng.randint(2, 5),
                "latitude": round(rng.uniform(-60, 60), 4),
                "longitude": round(rng.uniform(-120, 120), 4),
            }
            offers = []
            # roughly a third of hotels have no bookable offer
            if rng.random() > 0.33:
                offers.append({
                    "id": f"OFF{city}{i:03d}",
                    "checkInDate": check_in,
                    "checkOutDate": check_out,
                    "price": {"total": f"{rng.uniform(90, 650):.2f}", "currency": request.get("currency") or "USD"},
                    "room": {"description": {"text": rng.choice(["Standard room", "Deluxe king", "Twin room"])}},
                })
            data.append({"type": "hotel-offers", "hotel": hotel, "offers": offers})
        return {"data": data}

class MockPlaceProvider:
    async def search(self, request: MappedSearchRequest) -> List[Dict[str, Any]]:
        location = str(request.get("location") or "")
        query = str(request.get("query") or "")
        rng = _stable_rng(location + "|" + query)
        places = []
        for kind in rng.sample(_PLACE_KINDS, k=4):
            name = f"{location.title() or 'City'} {kind}".strip()
            places.append({
                "name": name,
                "place_id": hashlib.md5(name.encode("utf-8")).hexdigest()[:16],
                "formatted_address": f"{rng.randint(1, 200)} Main St, {location.title()}",
                "geometry": {"location": {"lat": round(rng.uniform(-60, 60), 5), "lng": round(rng.uniform(-120, 120), 5)}},
                "rating": round(rng.uniform(3.5, 5.0), 1),
                "price_level": rng.randint(1, 3),
                "types": [request.get("type") or "tourist_attraction"],
            })
        return places

# -------------------------
# Activity suggestions
# -------------------------
class CompletionActivitySuggester:
    """Asks the completion service for activity ideas as a JSON array."""

    def __init__(self, completion: CompletionService, temperature: float = 0.7, max_tokens: int = 1500) -> None:
        self._completion = completion
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def suggest(self, location: str, date: Optional[str], time_of_day: str = "day") -> List[Dict[str, Any]]:
        reply = await self._completion.complete(
            system=prompts.ACTIVITY_SYSTEM,
            messages=[ConversationTurn(role="user", text=prompts.activity_prompt(location, date, time_of_day))],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        data = parse_json_reply(reply)
        if isinstance(data, dict):
            data = data.get("activities") or []
        if not isinstance(data, list):
            raise ValueError("activity suggestions must be a JSON array")
        return [item for item in data if isinstance(item, dict) and item.get("title")]

def placeholder_activities(location: str, start_date: Optional[str] = None) -> List[Dict[str, Any]]:
    """Fixed suggestions used when the activity collaborator fails or returns nothing."""
    when = start_date or (date.today() + timedelta(days=1)).isoformat()
    slug = hashlib.md5(location.encode("utf-8")).hexdigest()[:6]
    ideas = [
        ("Guided walking tour", "Get oriented with a local guide", "Morning"),
        ("Local food tasting", "Sample regional specialties", "Afternoon"),
        ("Scenic viewpoint at sunset", "Catch the best views around", "Evening"),
    ]
    return [
        {
            "id": f"activity_placeholder_{slug}_{i}",
            "title": f"{title} in {location}",
            "subtitle": subtitle,
            "timing": f"{when} · {timing}",
            "price": None,
            "bookingUrl": None,
            "externalLinks": [{"label": "search", "url": f"https://www.google.com/search?q={title.replace(' ', '+')}+{location.replace(' ', '+')}"}],
            "placeholder": True,
        }
        for i, (title, subtitle, timing) in enumerate(ideas)
    ]
