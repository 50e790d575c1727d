from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from travel_agent.agent import prompts
from travel_agent.agent.llm import CompletionService, parse_json_reply
from travel_agent.agent.schemas import (
    ConversationTurn,
    ExtractedParameters,
    TransportationLeg,
    TripDates,
    TripPlan,
)
from travel_agent.policy.validation import parse_iso_date
from travel_agent.tools.locations import find_location_code, is_location_code, normalize_location
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)

TRIP_CLARIFICATION = (
    "I'd love to help plan your multi-stop trip! Could you tell me where you're starting from "
    "and the places you want to visit, in order? Travel dates help too."
)
PLACEHOLDER_LEAD_DAYS = 14
PLACEHOLDER_TRIP_DAYS = 5


class TripPlanParseError(ValueError):
    """A strategy could not build a usable plan from the request."""


class TripPlanStrategy(Protocol):
    name: str

    async def plan(
        self,
        message: str,
        params: Optional[ExtractedParameters],
        history: Sequence[ConversationTurn],
        time_context: Optional[str],
    ) -> TripPlan: ...


def placeholder_dates(today: date) -> TripDates:
    start = today + timedelta(days=PLACEHOLDER_LEAD_DAYS)
    return TripDates(start_date=start.isoformat(), end_date=(start + timedelta(days=PLACEHOLDER_TRIP_DAYS)).isoformat())


def _message_codes(message: str) -> List[str]:
    return re.findall(r"\b[A-Z]{3}\b", message or "")


def _restore_code(value: Optional[str], codes: Sequence[str]) -> Optional[str]:
    """Map a place the model renamed back to the airport code the user typed."""
    if not value:
        return value
    value = value.strip()
    if value.upper() in codes:
        return value.upper()
    normalized = normalize_location(value)
    if normalized in codes:
        return normalized
    return value


def _legs_from_sequence(stops: Sequence[str], mode: str = "flight") -> List[TransportationLeg]:
    return [TransportationLeg(mode=mode, from_=a, to=b) for a, b in zip(stops, stops[1:]) if a != b]


# -------------------------
# Strategy 1: completion service
# -------------------------
class CompletionTripPlanStrategy:
    name = "completion"

    def __init__(
        self,
        completion: CompletionService,
        today: Optional[Callable[[], date]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._completion = completion
        self._today = today or date.today
        self._temperature = temperature if temperature is not None else settings.EXTRACTION_TEMPERATURE
        self._max_tokens = max_tokens or settings.LLM_MAX_TOKENS

    async def plan(
        self,
        message: str,
        params: Optional[ExtractedParameters],
        history: Sequence[ConversationTurn],
        time_context: Optional[str],
    ) -> TripPlan:
        payload = params.to_payload() if params is not None else {}
        reply = await self._completion.complete(
            system=prompts.with_time_context(prompts.TRIP_PLAN_SYSTEM, time_context),
            messages=[*history, ConversationTurn(role="user", text=prompts.trip_plan_user_prompt(message, payload))],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        try:
            data = parse_json_reply(reply)
        except ValueError as e:
            raise TripPlanParseError(f"Trip plan reply is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise TripPlanParseError("Trip plan reply is not a JSON object")
        return self._build(message, data)

    def _build(self, message: str, data: Dict[str, Any]) -> TripPlan:
        codes = _message_codes(message)
        origin = _restore_code(data.get("origin"), codes)
        final = _restore_code(data.get("finalDestination"), codes)
        if not origin or not final:
            raise TripPlanParseError("Trip plan is missing an origin or final destination")

        stops: List[str] = []
        for raw in data.get("intermediateStops") or []:
            if not isinstance(raw, str) or not raw.strip():
                continue
            stop = _restore_code(raw, codes)
            if stop != origin and stop not in stops:
                stops.append(stop)

        legs: List[TransportationLeg] = []
        for raw in data.get("transportationLegs") or []:
            if not isinstance(raw, dict) or not raw.get("from") or not raw.get("to"):
                continue
            legs.append(
                TransportationLeg(
                    mode=str(raw.get("mode") or "flight").lower(),
                    from_=_restore_code(str(raw["from"]), codes),
                    to=_restore_code(str(raw["to"]), codes),
                )
            )
        if not legs:
            sequence = [origin, *stops]
            if sequence[-1] != final:
                sequence.append(final)
            legs = _legs_from_sequence(sequence + [origin])

        raw_dates = data.get("dates") if isinstance(data.get("dates"), dict) else {}
        start = raw_dates.get("startDate")
        end = raw_dates.get("endDate")
        start_d = parse_iso_date(start) if isinstance(start, str) else None
        end_d = parse_iso_date(end) if isinstance(end, str) else None
        if start_d is None:
            dates = placeholder_dates(self._today())
        elif end_d is None or end_d < start_d:
            dates = TripDates(start_date=start_d.isoformat(), end_date=(start_d + timedelta(days=PLACEHOLDER_TRIP_DAYS)).isoformat())
        else:
            dates = TripDates(start_date=start_d.isoformat(), end_date=end_d.isoformat())

        activities = [str(a) for a in (data.get("activities") or []) if a]
        return TripPlan(
            is_valid=True,
            origin=origin,
            final_destination=final,
            intermediate_stops=stops,
            transportation_legs=legs,
            activities=activities,
            dates=dates,
            source=self.name,
        )


# -------------------------
# Strategy 2: named road-trip patterns
# -------------------------
@dataclass(frozen=True)
class RoadTripPattern:
    """Fly into a hub airport, drive to a landmark, drive back, fly home."""

    name: str
    hub: str
    hub_aliases: Tuple[str, ...]
    landmark: str
    landmark_aliases: Tuple[str, ...]
    activities: Tuple[str, ...] = ()

    def matches(self, message: str) -> bool:
        lowered = (message or "").lower()
        has_hub = self.hub in _message_codes(message) or any(a in lowered for a in self.hub_aliases)
        has_landmark = any(a in lowered for a in self.landmark_aliases)
        return has_hub and has_landmark


ROCKY_MOUNTAIN_ROAD_TRIP = RoadTripPattern(
    name="rocky_mountain_road_trip",
    hub="DEN",
    hub_aliases=("denver",),
    landmark="Rocky Mountain National Park",
    landmark_aliases=("rocky mountain", "rmnp"),
    activities=("hiking", "scenic drive", "wildlife viewing"),
)

ROAD_TRIP_PATTERNS: Tuple[RoadTripPattern, ...] = (ROCKY_MOUNTAIN_ROAD_TRIP,)


class RoadTripPatternStrategy:
    """Rule-based fallback recognising a fixed set of named road trips.

    Only the patterns listed in ``patterns`` are understood; this is not a general
    multi-stop parser.
    """

    name = "road_trip_pattern"

    def __init__(
        self,
        patterns: Sequence[RoadTripPattern] = ROAD_TRIP_PATTERNS,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._patterns = tuple(patterns)
        self._today = today or date.today

    async def plan(
        self,
        message: str,
        params: Optional[ExtractedParameters],
        history: Sequence[ConversationTurn] = (),
        time_context: Optional[str] = None,
    ) -> TripPlan:
        for pattern in self._patterns:
            if not pattern.matches(message):
                continue
            origin = self._origin(message, params, pattern)
            if origin is None:
                raise TripPlanParseError(f"Matched {pattern.name} but found no origin")
            hub, landmark = pattern.hub, pattern.landmark
            return TripPlan(
                is_valid=True,
                origin=origin,
                final_destination=hub,
                intermediate_stops=[hub, landmark],
                transportation_legs=[
                    TransportationLeg(mode="flight", from_=origin, to=hub),
                    TransportationLeg(mode="drive", from_=hub, to=landmark),
                    TransportationLeg(mode="drive", from_=landmark, to=hub),
                    TransportationLeg(mode="flight", from_=hub, to=origin),
                ],
                activities=list(pattern.activities),
                dates=placeholder_dates(self._today()),
                source=f"{self.name}:{pattern.name}",
            )
        raise TripPlanParseError("No known road-trip pattern in message")

    @staticmethod
    def _origin(message: str, params: Optional[ExtractedParameters], pattern: RoadTripPattern) -> Optional[str]:
        if params is not None and params.departure:
            code = normalize_location(params.departure)
            if is_location_code(code) and code != pattern.hub:
                return code
        return find_location_code(message, exclude=(pattern.hub,))


# -------------------------
# Parser
# -------------------------
class TripPlanParser:
    """Tries each strategy in order; the first plan wins.

    With the default strategies the completion service is asked first and the
    road-trip patterns are the fallback. When every strategy fails the result is
    an invalid plan carrying a clarification message.
    """

    def __init__(self, strategies: Sequence[TripPlanStrategy]) -> None:
        self._strategies = tuple(strategies)

    @classmethod
    def default(cls, completion: CompletionService, today: Optional[Callable[[], date]] = None) -> "TripPlanParser":
        return cls([CompletionTripPlanStrategy(completion, today=today), RoadTripPatternStrategy(today=today)])

    async def parse(
        self,
        message: str,
        params: Optional[ExtractedParameters] = None,
        history: Sequence[ConversationTurn] = (),
        time_context: Optional[str] = None,
    ) -> TripPlan:
        for strategy in self._strategies:
            try:
                plan = await strategy.plan(message, params, history, time_context)
            except Exception as e:
                logger.warning("Trip plan strategy %s failed: %s", strategy.name, e)
                continue
            logger.info(
                "Trip plan via %s: %s -> %s via %s",
                strategy.name, plan.origin, plan.final_destination, plan.intermediate_stops,
            )
            return plan
        return TripPlan(is_valid=False, clarification_message=TRIP_CLARIFICATION)
