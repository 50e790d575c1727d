from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from travel_agent.agent import intents
from travel_agent.agent.schemas import ExtractedParameters, MappedSearchRequest, ValidationResult
from travel_agent.policy.validation import DATE_PATTERN, TRAVEL_CLASSES
from travel_agent.tools.locations import normalize_location, to_city_code

logger = logging.getLogger(__name__)


class MappingError(ValueError):
    """Extracted parameters cannot be turned into a provider request."""

    def __init__(self, message: str, intent: Optional[str] = None) -> None:
        super().__init__(message)
        self.intent = intent


@dataclass(frozen=True)
class ProviderMapping:
    # extracted name -> provider name; provider names map to themselves so a
    # mapped request can be mapped again without change
    field_map: Tuple[Tuple[str, str], ...]
    defaults: Dict[str, Any] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    # provider field -> normalizer
    normalizers: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)


PROVIDER_MAPPINGS: Dict[str, ProviderMapping] = {
    intents.FLIGHT_SEARCH: ProviderMapping(
        field_map=(
            ("departure", "departure"),
            ("arrival", "arrival"),
            ("destination", "arrival"),
            ("outboundDate", "outboundDate"),
            ("returnDate", "returnDate"),
            ("adults", "adults"),
            ("children", "children"),
            ("travelClass", "travelClass"),
            ("currency", "currency"),
            ("gl", "gl"),
            ("hl", "hl"),
        ),
        defaults={
            "adults": 1,
            "children": 0,
            "travelClass": "economy",
            "currency": "USD",
            "gl": "us",  # country interface, required by the provider
            "hl": "en",  # language interface, required by the provider
        },
        required=("departure", "arrival", "outboundDate", "adults", "gl", "hl"),
        normalizers={"departure": normalize_location, "arrival": normalize_location},
    ),
    intents.HOTEL_SEARCH: ProviderMapping(
        field_map=(
            ("cityCode", "cityCode"),
            ("destination", "cityCode"),
            ("checkInDate", "checkInDate"),
            ("checkOutDate", "checkOutDate"),
            ("adults", "adults"),
            ("roomQuantity", "roomQuantity"),
            ("currency", "currency"),
        ),
        defaults={"adults": 1, "roomQuantity": 1, "currency": "USD"},
        required=("cityCode", "checkInDate", "checkOutDate", "adults"),
        normalizers={"cityCode": to_city_code},
    ),
    intents.PLACE_SEARCH: ProviderMapping(
        field_map=(
            ("location", "location"),
            ("destination", "location"),
            ("query", "query"),
            ("radius", "radius"),
            ("type", "type"),
        ),
        defaults={"radius": 5000, "type": "tourist_attraction"},
        required=("query",),
    ),
}

ParamsLike = Union[ExtractedParameters, Mapping[str, Any], MappedSearchRequest]


def _as_dict(params: Optional[ParamsLike]) -> Dict[str, Any]:
    if params is None:
        return {}
    if isinstance(params, MappedSearchRequest):
        return params.as_params()
    if isinstance(params, ExtractedParameters):
        return params.to_payload()
    return dict(params)


def _coerce_count(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return fallback


class ParameterMapper:
    """Turns extracted parameters into provider-shaped requests.

    Steps, in order: rename fields through the intent's table, normalize
    location fields to codes, fill defaults, re-check formats, then reject
    requests still missing a field the provider requires.
    """

    def __init__(self, mappings: Optional[Dict[str, ProviderMapping]] = None) -> None:
        self._mappings = mappings or PROVIDER_MAPPINGS

    def supported_intents(self) -> List[str]:
        return list(self._mappings.keys())

    def map_to_provider_request(self, intent: Optional[str], params: Optional[ParamsLike]) -> MappedSearchRequest:
        source = _as_dict(params)
        declared = source.get("intent")
        if not declared:
            raise MappingError("Parameters missing or invalid - no intent specified", intent)
        intent = intent or declared
        mapping = self._mappings.get(intent)
        if mapping is None:
            raise MappingError(f"No provider mapping available for intent: {intent}", intent)

        mapped: Dict[str, Any] = {}
        for src, dst in mapping.field_map:
            value = source.get(src)
            if value is None or value == "":
                continue
            normalizer = mapping.normalizers.get(dst)
            mapped[dst] = normalizer(value) if normalizer else value

        for key, default in mapping.defaults.items():
            if mapped.get(key) is None:
                mapped[key] = default

        self._post_process(intent, mapped)
        missing = [key for key in mapping.required if mapped.get(key) in (None, "")]
        if missing:
            raise MappingError(f"Missing required parameter: {', '.join(missing)}", intent)
        return MappedSearchRequest(intent=intent, params=mapped)

    def _post_process(self, intent: str, mapped: Dict[str, Any]) -> None:
        for key in ("outboundDate", "returnDate", "checkInDate", "checkOutDate"):
            value = mapped.get(key)
            if value is not None and (not isinstance(value, str) or not DATE_PATTERN.match(value)):
                raise MappingError(f"Invalid {key} format: {value}. Must be YYYY-MM-DD", intent)

        if "adults" in mapped:
            mapped["adults"] = _coerce_count(mapped["adults"], 1)
        if "children" in mapped:
            mapped["children"] = _coerce_count(mapped["children"], 0)
        if "roomQuantity" in mapped:
            mapped["roomQuantity"] = _coerce_count(mapped["roomQuantity"], 1)

        travel_class = mapped.get("travelClass")
        if travel_class is not None:
            lowered = str(travel_class).strip().lower()
            if lowered not in TRAVEL_CLASSES:
                logger.warning("travelClass %r not supported - defaulting to economy", travel_class)
                lowered = "economy"
            mapped["travelClass"] = lowered

        if isinstance(mapped.get("currency"), str):
            mapped["currency"] = mapped["currency"].strip().upper()

        if intent == intents.PLACE_SEARCH and not mapped.get("query") and isinstance(mapped.get("location"), str):
            mapped["query"] = f"things to do in {mapped['location']}"

    def validate_mapping_result(self, request: MappedSearchRequest) -> ValidationResult:
        """Check a mapped request against the provider's own requirements."""
        errors: List[str] = []
        warnings: List[str] = []
        mapping = self._mappings.get(request.intent)
        if mapping is None:
            return ValidationResult(is_valid=False, errors=[f"No provider mapping for intent: {request.intent}"])

        params = request.params
        for key in mapping.required:
            if params.get(key) in (None, ""):
                errors.append(f"Missing required parameter: {key}")

        for key in ("outboundDate", "returnDate", "checkInDate", "checkOutDate"):
            value = params.get(key)
            if value and not DATE_PATTERN.match(str(value)):
                errors.append(f"{key} must be in YYYY-MM-DD format")

        adults = params.get("adults")
        if adults is not None and not 1 <= adults <= 9:
            errors.append("adults must be between 1 and 9")
        children = params.get("children")
        if children is not None and not 0 <= children <= 8:
            errors.append("children must be between 0 and 8")
        if params.get("travelClass") and params["travelClass"] not in TRAVEL_CLASSES:
            warnings.append("travelClass should be economy, business, or first - defaulting to economy")

        suggestions: List[str] = []
        if errors:
            suggestions = [
                "Please check that all required travel information is provided",
                "Dates should be in YYYY-MM-DD format",
                "Passenger counts should be reasonable numbers",
            ]
        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions)
