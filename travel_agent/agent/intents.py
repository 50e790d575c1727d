"""Supported intents and their prompt configuration.

The five built-in intents form a closed table. ``register_intent`` is the one
extension point: it adds (or replaces) an entry at runtime, and the router sends
any label without a dedicated handler to the general-question handler.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

FLIGHT_SEARCH = "flight_search"
HOTEL_SEARCH = "hotel_search"
PLACE_SEARCH = "place_search"
TRIP_PLANNING = "trip_planning"
GENERAL_QUESTION = "general_question"


@dataclass(frozen=True)
class IntentConfig:
    description: str
    required_params: Tuple[str, ...] = ()
    examples: Tuple[str, ...] = field(default_factory=tuple)


_BUILTIN_INTENTS: Dict[str, IntentConfig] = {
    FLIGHT_SEARCH: IntentConfig(
        description="User wants to search for flights between cities",
        required_params=("departure", "destination", "outboundDate"),
        examples=("Find flights from NYC to Paris", "Book a flight to Tokyo"),
    ),
    HOTEL_SEARCH: IntentConfig(
        description="User wants to find a hotel or place to stay for specific dates",
        required_params=("destination", "checkInDate", "checkOutDate"),
        examples=("Find a hotel in Rome from 2030-05-01 to 2030-05-04", "Where can I stay in Lisbon next weekend?"),
    ),
    PLACE_SEARCH: IntentConfig(
        description="User wants to find places like restaurants, attractions, activities",
        required_params=("destination", "query"),
        examples=("Show me restaurants in Barcelona", "Things to do in Kyoto"),
    ),
    TRIP_PLANNING: IntentConfig(
        description="User wants a multi-stop or multi-leg trip planned (flights, stays, driving legs, activities)",
        required_params=("destinations",),
        examples=(
            "Plan a trip from MSN to Denver, then drive to Rocky Mountain National Park",
            "I want to visit Paris and then Rome in June",
        ),
    ),
    GENERAL_QUESTION: IntentConfig(
        description="General travel questions or conversations",
        required_params=(),
        examples=("What's the best time to visit Japan?", "Tell me about travel insurance"),
    ),
}

_registry: Dict[str, IntentConfig] = dict(_BUILTIN_INTENTS)


def register_intent(
    name: str,
    description: str,
    required_params: Optional[List[str]] = None,
    examples: Optional[List[str]] = None,
) -> IntentConfig:
    config = IntentConfig(
        description=description,
        required_params=tuple(required_params or ()),
        examples=tuple(examples or ()),
    )
    _registry[name] = config
    return config


def reset_intents() -> None:
    """Drop runtime registrations and restore the built-in table."""
    _registry.clear()
    _registry.update(_BUILTIN_INTENTS)


def get_intent_config(name: Optional[str]) -> Optional[IntentConfig]:
    if not name:
        return None
    return _registry.get(name)


def supported_intents() -> List[str]:
    return list(_registry.keys())


def is_valid_intent(name: object) -> bool:
    return isinstance(name, str) and name in _registry


def coerce_intent(name: object) -> str:
    """Return ``name`` when it is a supported label, else ``general_question``."""
    if isinstance(name, str):
        cleaned = name.strip().strip('"').strip("'").strip().lower()
        if cleaned in _registry:
            return cleaned
    return GENERAL_QUESTION
