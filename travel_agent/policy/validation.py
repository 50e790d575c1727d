from __future__ import annotations

import re
from datetime import date
from typing import Callable, List, Optional

from travel_agent.agent import intents
from travel_agent.agent.schemas import ExtractedParameters, ValidationResult

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TRAVEL_CLASSES = ("economy", "business", "first")

def parse_iso_date(value: str) -> Optional[date]:
    """Return the date for a calendar-valid ``YYYY-MM-DD`` string, else None."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None

def _is_whole_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()

def format_validation_errors(errors: List[str]) -> str:
    """Format validation errors into a user-facing message."""
    if not errors:
        return ""
    if len(errors) == 1:
        return f"I need more information: {errors[0]}"
    return "I need more information:\n" + "\n".join(f"• {e}" for e in errors)

class ParameterValidator:
    """Per-intent validation of extracted parameters.

    Errors block the search (``is_valid`` is False); warnings never do and are
    paired with a value the mapper corrects on its own.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None) -> None:
        self._today = today or date.today

    def validate(self, intent: str, params: Optional[ExtractedParameters]) -> ValidationResult:
        if intent == intents.FLIGHT_SEARCH:
            return self.validate_flight(params)
        if intent == intents.HOTEL_SEARCH:
            return self.validate_hotel(params)
        if intent == intents.PLACE_SEARCH:
            return self.validate_place(params)
        if intent == intents.TRIP_PLANNING:
            return self.validate_trip(params)
        return self.validate_general(params)

    # ---------- flights ----------
    def validate_flight(self, params: Optional[ExtractedParameters]) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []

        if params is None:
            return ValidationResult(
                is_valid=False,
                errors=["No parameters provided"],
                suggestions=["Please provide your travel details"],
            )

        if not params.intent:
            errors.append("Intent not specified")
        elif params.intent != intents.FLIGHT_SEARCH:
            warnings.append(f"Expected flight_search intent, got: {params.intent}")

        if not params.departure or not params.departure.strip():
            errors.append("Departure location is required")
            suggestions.append("Please specify where you want to fly from")

        if not params.destination or not params.destination.strip():
            errors.append("Destination location is required")
            suggestions.append("Please specify where you want to fly to")

        outbound = None
        if not params.outbound_date:
            errors.append("Departure date is required")
            suggestions.append("Please specify when you want to travel (YYYY-MM-DD format)")
        elif not DATE_PATTERN.match(params.outbound_date):
            errors.append("Departure date must be in YYYY-MM-DD format")
            suggestions.append("Example: 2030-12-25 for December 25, 2030")
        else:
            outbound = parse_iso_date(params.outbound_date)
            if outbound is None:
                errors.append("Departure date is not a valid calendar date (YYYY-MM-DD)")
            elif outbound < self._today():
                warnings.append("Departure date appears to be in the past")

        if params.return_date:
            if not DATE_PATTERN.match(params.return_date):
                errors.append("Return date must be in YYYY-MM-DD format")
            else:
                returning = parse_iso_date(params.return_date)
                if returning is None:
                    errors.append("Return date is not a valid calendar date (YYYY-MM-DD)")
                elif outbound is not None and returning <= outbound:
                    errors.append("Return date must be after departure date")

        if params.adults is not None:
            if not _is_whole_number(params.adults) or not 1 <= params.adults <= 9:
                errors.append("Number of adults must be between 1 and 9")

        if params.children is not None:
            if not _is_whole_number(params.children) or not 0 <= params.children <= 8:
                errors.append("Number of children must be between 0 and 8")

        if params.travel_class and params.travel_class.lower() not in TRAVEL_CLASSES:
            warnings.append("Travel class should be economy, business, or first - will default to economy")

        if params.adults is None and not errors:
            warnings.append("Number of passengers not specified - will default to 1 adult")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions)

    # ---------- places / hotels ----------
    def validate_place(self, params: Optional[ExtractedParameters]) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []

        if params is None:
            return ValidationResult(is_valid=False, errors=["No parameters provided"])

        if not params.destination and not params.query:
            errors.append("Either destination or search query is required")
            suggestions.append("Please specify what type of place you're looking for and where")

        if params.location is not None:
            loc = params.location
            if not isinstance(loc, dict) or loc.get("lat") is None or loc.get("lng") is None:
                warnings.append("Location coordinates invalid - will use text-based search")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions)

    def validate_hotel(self, params: Optional[ExtractedParameters]) -> ValidationResult:
        # Missing stay dates are handled by the hotel handler's own clarification path
        base = self.validate_place(params)
        if params is None:
            return base
        errors = list(base.errors)
        check_in = check_out = None
        if params.check_in_date:
            check_in = parse_iso_date(params.check_in_date)
            if check_in is None:
                errors.append("Check-in date must be a valid YYYY-MM-DD date")
        if params.check_out_date:
            check_out = parse_iso_date(params.check_out_date)
            if check_out is None:
                errors.append("Check-out date must be a valid YYYY-MM-DD date")
        if check_in and check_out and check_out <= check_in:
            errors.append("Check-out date must be after check-in date")
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=list(base.warnings),
            suggestions=list(base.suggestions),
        )

    # ---------- trips / general ----------
    def validate_trip(self, params: Optional[ExtractedParameters]) -> ValidationResult:
        # The trip plan parser decides whether the destination set is resolvable
        warnings: List[str] = []
        if params is not None and not params.destinations and not params.destination:
            warnings.append("No destinations extracted - the trip plan parser will read them from the message")
        return ValidationResult(is_valid=True, warnings=warnings)

    def validate_general(self, params: Optional[ExtractedParameters]) -> ValidationResult:
        warnings: List[str] = []
        if params is None:
            warnings.append("No parameters provided")
        elif params.intent != intents.GENERAL_QUESTION:
            warnings.append(f"Expected general_question intent, got: {params.intent}")
        return ValidationResult(is_valid=True, warnings=warnings)
