from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Tuple

CODE_PATTERN = re.compile(r"^[A-Z]{3}$")

# City name (lowercase) -> primary airport code
CITY_TO_AIRPORT = {
    "nyc": "JFK",
    "new york": "JFK",
    "new york city": "JFK",
    "paris": "CDG",
    "london": "LHR",
    "los angeles": "LAX",
    "chicago": "ORD",
    "san francisco": "SFO",
    "miami": "MIA",
    "dallas": "DFW",
    "houston": "IAH",
    "atlanta": "ATL",
    "boston": "BOS",
    "seattle": "SEA",
    "denver": "DEN",
    "las vegas": "LAS",
    "phoenix": "PHX",
    "washington": "IAD",
    "tokyo": "NRT",
    "osaka": "KIX",
    "seoul": "ICN",
    "amsterdam": "AMS",
    "frankfurt": "FRA",
    "rome": "FCO",
    "milan": "MXP",
    "madrid": "MAD",
    "barcelona": "BCN",
    "berlin": "BER",
    "munich": "MUC",
    "vienna": "VIE",
    "dublin": "DUB",
    "dubai": "DXB",
    "singapore": "SIN",
    "hong kong": "HKG",
    "bangkok": "BKK",
    "sydney": "SYD",
    "melbourne": "MEL",
    "toronto": "YYZ",
    "vancouver": "YVR",
    "montreal": "YUL",
    "portugal": "LIS",
    "lisbon": "LIS",
    "porto": "OPO",
    "madison": "MSN",
    "milwaukee": "MKE",
}

# Airport code -> city code used by hotel providers
AIRPORT_TO_CITY = {
    "JFK": "NYC", "LGA": "NYC", "EWR": "NYC",
    "ORD": "CHI", "MDW": "CHI",
    "IAH": "HOU",
    "IAD": "WAS", "DCA": "WAS", "BWI": "WAS",
    "SJC": "SFO", "OAK": "SFO",
    "DAL": "DFW",
    "LHR": "LON", "LGW": "LON", "STN": "LON", "LTN": "LON",
    "CDG": "PAR", "ORY": "PAR",
    "FCO": "ROM", "CIA": "ROM",
    "MXP": "MIL", "LIN": "MIL",
    "ARN": "STO",
    "NRT": "TYO", "HND": "TYO",
    "KIX": "OSA",
    "ICN": "SEL",
    "PEK": "BJS", "PVG": "SHA",
    "CGK": "JKT",
    "YYZ": "YTO", "YUL": "YMQ",
    "GRU": "SAO", "GIG": "RIO", "EZE": "BUE",
}

KNOWN_CODES = frozenset(CITY_TO_AIRPORT.values()) | frozenset(AIRPORT_TO_CITY) | frozenset(AIRPORT_TO_CITY.values())


def is_location_code(value: Any) -> bool:
    return isinstance(value, str) and bool(CODE_PATTERN.match(value.strip()))


def normalize_location(location: Any) -> Any:
    """City name or code -> 3-letter airport code.

    Known city names map through the table, bare codes pass through uppercased,
    and anything else comes back trimmed and uppercased. Never invents a code.
    Non-string input is returned unchanged.
    """
    if not isinstance(location, str):
        return location
    cleaned = location.strip()
    code = CITY_TO_AIRPORT.get(cleaned.lower())
    if code:
        return code
    return cleaned.upper()


def to_city_code(location: Any) -> Any:
    normalized = normalize_location(location)
    if isinstance(normalized, str):
        return AIRPORT_TO_CITY.get(normalized, normalized)
    return normalized


def find_location_code(text: str, exclude: Iterable[str] = ()) -> Optional[str]:
    """First airport code or known city mentioned in free text, skipping ``exclude`` codes.

    Uppercase tokens only count when they are known airport or city codes, so
    currencies and acronyms (USD, EUR, USA) are never taken for a location.
    """
    skip = {c.upper() for c in exclude}
    for token in re.findall(r"\b[A-Z]{3}\b", text or ""):
        if token not in KNOWN_CODES:
            continue
        code = normalize_location(token)
        if code not in skip:
            return code
    lowered = (text or "").lower()
    best: Optional[Tuple[int, str]] = None
    for city, code in CITY_TO_AIRPORT.items():
        if code in skip:
            continue
        m = re.search(rf"\b{re.escape(city)}\b", lowered)
        if m and (best is None or m.start() < best[0]):
            best = (m.start(), code)
    return best[1] if best else None
