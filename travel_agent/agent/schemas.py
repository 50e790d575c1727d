from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from travel_agent.agent.intents import GENERAL_QUESTION, coerce_intent

class CamelModel(BaseModel):
    # LLM output and provider payloads use camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

# -------------------------
# Conversation
# -------------------------
class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str

class ConversationContext(BaseModel):
    """Per-conversation state owned by the caller and passed into every message."""
    conversation_id: Optional[str] = None
    timezone_override: Optional[str] = None
    original_message: Optional[str] = None

# -------------------------
# Extraction / validation / mapping
# -------------------------
PassengerCount = Union[int, float, str]

class ExtractedParameters(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    intent: str = GENERAL_QUESTION
    departure: Optional[str] = None
    destination: Optional[str] = None
    outbound_date: Optional[str] = None
    return_date: Optional[str] = None
    adults: Optional[PassengerCount] = None
    children: Optional[PassengerCount] = None
    travel_class: Optional[str] = None
    currency: Optional[str] = None
    query: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    destinations: List[str] = Field(default_factory=list)
    location: Optional[Any] = None

    @field_validator("intent", mode="before")
    @classmethod
    def _known_intent(cls, v: Any) -> str:
        return coerce_intent(v)

    @field_validator("destinations", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(x) for x in v if x]

class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

class MappedSearchRequest(BaseModel):
    """Provider-shaped request: provider field names, defaults applied, codes normalized."""
    model_config = ConfigDict(frozen=True)

    intent: str
    params: Dict[str, Any] = Field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)

    def as_params(self) -> Dict[str, Any]:
        return {"intent": self.intent, **self.params}

# -------------------------
# Trip planning
# -------------------------
class TransportationLeg(CamelModel):
    mode: str = "flight"
    from_: str = Field(alias="from")
    to: str

class TripDates(CamelModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None

class TripPlan(CamelModel):
    is_valid: bool = False
    origin: Optional[str] = None
    final_destination: Optional[str] = None
    intermediate_stops: List[str] = Field(default_factory=list)
    transportation_legs: List[TransportationLeg] = Field(default_factory=list)
    activities: List[str] = Field(default_factory=list)
    dates: TripDates = Field(default_factory=TripDates)
    clarification_message: Optional[str] = None
    # which parsing strategy produced the plan
    source: Optional[str] = None

# -------------------------
# Result cards
# -------------------------
class Price(CamelModel):
    amount: Optional[float] = None
    currency: str = "USD"
    # placeholder shown when no bookable amount exists
    display: Optional[str] = None

class CardMetadata(CamelModel):
    provider: str
    confidence: float = 0.5
    timestamp: str
    booking_token: Optional[str] = None

class Endpoint(CamelModel):
    code: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

class Route(CamelModel):
    from_: Optional[Endpoint] = Field(default=None, alias="from")
    to: Optional[Endpoint] = None

class _CardBase(CamelModel):
    id: str
    title: str
    subtitle: str = ""
    price: Price = Field(default_factory=Price)
    details: Dict[str, Any] = Field(default_factory=dict)
    essential_details: Dict[str, Any] = Field(default_factory=dict)
    external_links: Dict[str, str] = Field(default_factory=dict)
    metadata: CardMetadata

class FlightCard(_CardBase):
    type: Literal["flight"] = "flight"
    location: Route = Field(default_factory=Route)
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    duration: Optional[int] = None  # minutes

class PlaceCard(_CardBase):
    type: Literal["place", "hotel"] = "place"
    location: Endpoint = Field(default_factory=Endpoint)
    rating: Optional[float] = None

class RentalCarCard(_CardBase):
    type: Literal["rental_car"] = "rental_car"
    location: Route = Field(default_factory=Route)

class ActivityCard(_CardBase):
    type: Literal["activity"] = "activity"
    location: Endpoint = Field(default_factory=Endpoint)
    timing: Optional[str] = None

ResultCard = Annotated[
    Union[FlightCard, PlaceCard, RentalCarCard, ActivityCard],
    Field(discriminator="type"),
]

# -------------------------
# Envelope
# -------------------------
class ResponseEnvelope(CamelModel):
    type: Literal["response", "response_with_cards", "clarification", "error"]
    message: str
    cards: List[ResultCard] = Field(default_factory=list)
    parameters: ExtractedParameters = Field(default_factory=ExtractedParameters)
