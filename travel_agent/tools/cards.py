from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote_plus

from travel_agent.agent.schemas import (
    ActivityCard,
    CardMetadata,
    Endpoint,
    FlightCard,
    PlaceCard,
    Price,
    RentalCarCard,
    ResultCard,
    Route,
)

NOT_AVAILABLE = "N/A"
PRICE_ON_REQUEST = "Price on request"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _stable_id(prefix: str, payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str)
    return f"{prefix}_{hashlib.md5(raw.encode('utf-8')).hexdigest()[:10]}"


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = re.search(r"\d+(?:[.,]\d+)?", str(value))
    if not m:
        return None
    try:
        return float(m.group().replace(",", "."))
    except ValueError:
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _offer_total(offer: Dict[str, Any]) -> Tuple[Optional[float], Optional[str]]:
    """(total, currency) of a hotel offer; a bare number or string price is the total."""
    price = offer.get("price")
    if isinstance(price, dict):
        currency = price.get("currency")
        return _as_float(price.get("total")), currency if isinstance(currency, str) else None
    return _as_float(price), None


def _price(amount: Any, currency: Optional[str], placeholder: str) -> Price:
    value = _as_float(amount)
    currency = (currency or "USD").upper()
    if value is None:
        return Price(amount=None, currency=currency, display=placeholder)
    return Price(amount=value, currency=currency, display=f"{value:,.2f} {currency}")


def calculate_flight_confidence(flight: Dict[str, Any]) -> float:
    confidence = 0.5
    if flight.get("price"):
        confidence += 0.2
    if flight.get("total_duration"):
        confidence += 0.1
    if flight.get("carbon_emissions"):
        confidence += 0.1
    if flight.get("departure_token") or flight.get("booking_token"):
        confidence += 0.1
    return round(min(confidence, 1.0), 2)


class CardAggregator:
    """Normalizes provider payloads into result cards.

    Every ``*_card`` method accepts partial payloads and always returns a card;
    missing prices and ratings become placeholders instead of dropping the card.
    """

    def __init__(self, provider_names: Optional[Dict[str, str]] = None) -> None:
        self._providers = {
            "flight": "SerpAPI",
            "hotel": "Amadeus",
            "place": "GooglePlaces",
            "activity": "ActivitySuggestions",
            "rental_car": "Placeholder",
        }
        self._providers.update(provider_names or {})

    def to_card(self, payload: Dict[str, Any], card_type: str) -> ResultCard:
        builders = {
            "flight": self.flight_card,
            "hotel": self.hotel_card,
            "place": self.place_card,
            "activity": self.activity_card,
            "rental_car": self.rental_car_card,
        }
        builder = builders.get(card_type)
        if builder is None:
            raise ValueError(f"Unknown card type: {card_type!r}")
        return builder(payload or {})

    # ---------- flights ----------
    def flight_card(self, payload: Dict[str, Any], currency: str = "USD") -> FlightCard:
        segments = [s for s in (payload.get("flights") or []) if isinstance(s, dict)]
        first = segments[0] if segments else {}
        last = segments[-1] if segments else {}
        dep = _as_dict(first.get("departure_airport"))
        arr = _as_dict(last.get("arrival_airport"))

        airlines = []
        for seg in segments:
            name = seg.get("airline")
            if name and name not in airlines:
                airlines.append(name)
        stops = max(len(segments) - 1, 0)
        stops_text = "Nonstop" if stops == 0 else f"{stops} stop{'s' if stops > 1 else ''}"
        route = f"{dep.get('id') or '?'} → {arr.get('id') or '?'}"

        duration = payload.get("total_duration")
        token = payload.get("booking_token") or payload.get("departure_token")
        query = quote_plus(f"flights from {dep.get('id', '')} to {arr.get('id', '')} {(dep.get('time') or '')[:10]}".strip())
        return FlightCard(
            id=_stable_id("flight", payload),
            title=", ".join(airlines) or "Flight",
            subtitle=f"{route} · {stops_text}",
            price=_price(payload.get("price"), currency, NOT_AVAILABLE),
            departure_time=dep.get("time"),
            arrival_time=arr.get("time"),
            duration=duration if isinstance(duration, int) else None,
            location=Route(
                from_=Endpoint(code=dep.get("id"), name=dep.get("name")),
                to=Endpoint(code=arr.get("id"), name=arr.get("name")),
            ),
            details={
                "segments": segments,
                "layovers": payload.get("layovers") or [],
                "carbonEmissions": payload.get("carbon_emissions"),
            },
            essential_details={
                "stops": stops,
                "duration": duration if duration else NOT_AVAILABLE,
                "flightNumbers": [s.get("flight_number") for s in segments if s.get("flight_number")],
            },
            external_links={"booking": f"https://www.google.com/travel/flights?q={query}"},
            metadata=CardMetadata(
                provider=self._providers["flight"],
                confidence=calculate_flight_confidence(payload),
                timestamp=_now(),
                booking_token=token,
            ),
        )

    # ---------- hotels ----------
    def hotel_card(self, payload: Dict[str, Any]) -> PlaceCard:
        hotel = _as_dict(payload.get("hotel"))
        offers = [o for o in (payload.get("offers") or []) if isinstance(o, dict)]
        name = str(hotel.get("name") or "Hotel")

        best: Optional[Dict[str, Any]] = None
        best_total: Optional[float] = None
        best_currency: Optional[str] = None
        for offer in offers:
            total, currency = _offer_total(offer)
            if total is None:
                continue
            if best_total is None or total < best_total:
                best, best_total, best_currency = offer, total, currency

        if best is not None:
            price = _price(best_total, best_currency, PRICE_ON_REQUEST)
            confidence = 0.8
        else:
            price = Price(amount=None, currency="USD", display=PRICE_ON_REQUEST)
            confidence = 0.4

        rating = _as_float(hotel.get("rating"))
        address = hotel.get("address")
        if isinstance(address, dict):
            lines = address.get("lines") or []
            if not isinstance(lines, list):
                lines = [lines]
            address = ", ".join(str(x) for x in lines + [address.get("cityName")] if x)
        elif address is not None and not isinstance(address, str):
            address = None
        city = str(hotel.get("cityCode") or "")
        room = _as_dict(_as_dict(_as_dict(best).get("room")).get("description"))
        return PlaceCard(
            id=_stable_id("hotel", {"hotel": hotel.get("hotelId") or name, "offer": (best or {}).get("id")}),
            type="hotel",
            title=name,
            subtitle=f"{city} · {rating:g}★" if rating else (city or NOT_AVAILABLE),
            price=price,
            rating=rating,
            location=Endpoint(
                code=city or None,
                name=name,
                address=address or None,
                lat=_as_float(hotel.get("latitude")),
                lng=_as_float(hotel.get("longitude")),
            ),
            details={
                "hotelId": hotel.get("hotelId"),
                "offers": offers,
                "checkInDate": (best or {}).get("checkInDate"),
                "checkOutDate": (best or {}).get("checkOutDate"),
                "room": room.get("text"),
            },
            essential_details={"offerCount": len(offers), "rating": rating if rating else NOT_AVAILABLE},
            external_links={"booking": f"https://www.google.com/travel/hotels?q={quote_plus(name + ' ' + city)}"},
            metadata=CardMetadata(provider=self._providers["hotel"], confidence=confidence, timestamp=_now()),
        )

    def hotel_cards(self, payload: Any, limit: Optional[int] = None) -> List[PlaceCard]:
        """Cards for a raw hotel provider payload; malformed payloads give no cards."""
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            return []
        cards = [self.hotel_card(item) for item in data if isinstance(item, dict)]
        return cards[:limit] if limit is not None else cards

    # ---------- places ----------
    def place_card(self, payload: Dict[str, Any]) -> PlaceCard:
        name = payload.get("name") or "Place"
        loc = _as_dict(_as_dict(payload.get("geometry")).get("location"))
        rating = _as_float(payload.get("rating"))
        address = payload.get("formatted_address") or payload.get("vicinity")
        level = payload.get("price_level")
        links = {"maps": f"https://www.google.com/maps/search/?api=1&query={quote_plus(name + ' ' + (address or ''))}"}
        if payload.get("website"):
            links["website"] = payload["website"]
        return PlaceCard(
            id=_stable_id("place", payload.get("place_id") or payload),
            type="place",
            title=name,
            subtitle=address or NOT_AVAILABLE,
            price=Price(amount=None, currency="USD", display="$" * int(level) if isinstance(level, int) and level > 0 else NOT_AVAILABLE),
            rating=rating,
            location=Endpoint(name=name, address=address, lat=_as_float(loc.get("lat")), lng=_as_float(loc.get("lng"))),
            details={"types": payload.get("types") or [], "placeId": payload.get("place_id")},
            essential_details={"rating": rating if rating else NOT_AVAILABLE},
            external_links=links,
            metadata=CardMetadata(
                provider=self._providers["place"],
                confidence=0.7 if rating else 0.5,
                timestamp=_now(),
            ),
        )

    # ---------- activities ----------
    def activity_card(self, payload: Dict[str, Any], location: Optional[str] = None) -> ActivityCard:
        title = payload.get("title") or "Activity"
        links: Dict[str, str] = {}
        for link in payload.get("externalLinks") or []:
            if isinstance(link, dict) and link.get("url"):
                links[str(link.get("label") or "link")] = str(link["url"])
        if payload.get("bookingUrl"):
            links["booking"] = str(payload["bookingUrl"])
        raw_price = payload.get("price")
        return ActivityCard(
            id=str(payload.get("id") or _stable_id("activity", {"title": title, "location": location})),
            title=title,
            subtitle=payload.get("subtitle") or "",
            price=_price(raw_price, "USD", str(raw_price) if raw_price else NOT_AVAILABLE),
            timing=payload.get("timing"),
            location=Endpoint(name=location),
            details={"timing": payload.get("timing"), "placeholder": bool(payload.get("placeholder"))},
            essential_details={"timing": payload.get("timing") or NOT_AVAILABLE},
            external_links=links,
            metadata=CardMetadata(
                provider=self._providers["activity"],
                confidence=0.3 if payload.get("placeholder") else 0.6,
                timestamp=_now(),
            ),
        )

    # ---------- ground transport ----------
    def rental_car_card(self, payload: Dict[str, Any]) -> RentalCarCard:
        company = payload.get("company") or "Rental car"
        vehicle = payload.get("vehicle_class") or "Standard"
        pickup = payload.get("pickup")
        dropoff = payload.get("dropoff") or pickup
        query = quote_plus(f"car rental {pickup or ''}")
        return RentalCarCard(
            id=str(payload.get("id") or _stable_id("car", payload)),
            title=f"{company} · {vehicle}",
            subtitle=f"Pick up {pickup or NOT_AVAILABLE} · Drop off {dropoff or NOT_AVAILABLE}",
            price=_price(payload.get("daily_rate"), payload.get("currency"), PRICE_ON_REQUEST),
            location=Route(from_=Endpoint(code=pickup), to=Endpoint(code=dropoff)),
            details={
                "perDay": True,
                "placeholder": True,
                "tripOrigin": payload.get("trip_origin"),
                "tripDestination": payload.get("trip_destination") or dropoff,
            },
            essential_details={"vehicleClass": vehicle},
            external_links={"booking": f"https://www.google.com/search?q={query}"},
            metadata=CardMetadata(provider=self._providers["rental_car"], confidence=0.2, timestamp=_now()),
        )


def ensure_unique_ids(cards: Iterable[ResultCard]) -> List[ResultCard]:
    """Suffix repeated card ids so ids stay unique within one response."""
    used = set()
    out: List[ResultCard] = []
    for card in cards:
        new_id, n = card.id, 1
        while new_id in used:
            new_id = f"{card.id}-{n}"
            n += 1
        used.add(new_id)
        if new_id != card.id:
            card = card.model_copy(update={"id": new_id})
        out.append(card)
    return out
