# =============================================================================
# PROMPTS
# =============================================================================
# Extraction  → intent + parameter bag (pure JSON)
# Reclassify  → intent label only, used when extraction output is unusable
# Trip plan   → ordered multi-leg plan (pure JSON)
# Synthesis   → results / clarification / multi-leg summary / general answer
# Helpers     → timezone detection, activity suggestions
# =============================================================================
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from travel_agent.agent import intents

ASSISTANT_SYSTEM = """You are an intelligent travel planning assistant. Your role is to:
1. Extract travel parameters from natural language requests
2. Help users plan trips by understanding their preferences
3. Provide helpful suggestions when information is incomplete
4. Maintain a conversational and friendly tone

Always be helpful and ask clarifying questions when needed."""


def with_time_context(system: str, time_context: Optional[str]) -> str:
    return f"{system}\n\n{time_context}" if time_context else system


# ---------- extraction ----------
def extraction_prompt() -> str:
    """Built on every call so runtime-registered intents are included."""
    names = intents.supported_intents()
    descriptions = "\n".join(f"- {name}: {intents.get_intent_config(name).description}" for name in names)
    examples = "\n".join(
        f"{name} examples: {', '.join(intents.get_intent_config(name).examples)}"
        for name in names
        if intents.get_intent_config(name).examples
    )
    return f"""Extract travel parameters from the user's message. Return ONLY a valid JSON object (no markdown formatting) with these fields:

INTENT (choose one):
{descriptions}

PARAMETERS:
- intent: one of the supported intents above
- departure: departure city or 3-letter airport code (if mentioned) - REQUIRED for flights
- destination: destination city or 3-letter airport code (if mentioned) - REQUIRED for flights
- outboundDate: departure date in YYYY-MM-DD format (if mentioned) - REQUIRED for flights
- returnDate: return date in YYYY-MM-DD format (if mentioned) - optional for round trips
- adults: number of adult passengers - integer between 1-9
- children: number of child passengers (optional) - integer between 0-8
- travelClass: economy/business/first - optional
- currency: price currency preference (optional)
- query: for place searches, the type of place they're looking for
- checkInDate / checkOutDate: hotel stay dates in YYYY-MM-DD format
- destinations: for trip planning, every place mentioned in travel order

EXAMPLES:
{examples}

Resolve relative dates ("next Friday", "tomorrow") against the current user time.
Only include fields that are clearly mentioned or can be reasonably inferred.
If the intent is unclear, use "general_question".

IMPORTANT: Return only valid JSON without any markdown code block formatting or explanatory text."""


def classification_prompt() -> str:
    lines = "\n".join(f"- {name}: {intents.get_intent_config(name).description}" for name in intents.supported_intents())
    return f"""Classify this travel-related message into one of these intents:
{lines}

Respond with only the intent name."""


# ---------- trip planning ----------
TRIP_PLAN_SYSTEM = """You turn a multi-destination travel request into a structured trip plan.
Return ONLY a valid JSON object (no markdown formatting):

{
  "origin": "where the traveler starts",
  "finalDestination": "the last main destination before returning",
  "intermediateStops": ["every stop in travel order, excluding origin"],
  "transportationLegs": [{"mode": "flight|drive|train|bus|ferry", "from": "...", "to": "..."}],
  "activities": ["activities the user mentioned"],
  "dates": {"startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"}
}

Rules:
1. Any 3-letter airport code in the message (e.g. MSN, DEN) MUST be copied verbatim. Never rename a code to a city name.
2. Use the city name when no code is given.
3. Landmarks (national parks, monuments) are stops, never airports.
4. If the user gave no dates, choose a plausible range starting soon after the current user time.
5. If the request has no identifiable origin or destination, return {"origin": null, "finalDestination": null}.

IMPORTANT: Return only valid JSON without any markdown code block formatting or explanatory text."""


def trip_plan_user_prompt(message: str, params: Dict[str, Any]) -> str:
    return f"""User request: "{message}"
Parameters extracted so far: {json.dumps(params, ensure_ascii=False, default=str)}

Produce the trip plan."""


# ---------- synthesis ----------
RESULTS_SYSTEM = """You are a helpful travel assistant. The user made a request and you found search results.
Generate a conversational response that:
1. Acknowledges their request
2. Briefly describes what you found
3. Encourages them to look at the results cards
4. Offers to help with next steps

Keep it conversational and helpful. The actual search results will be displayed as cards below your message."""


def results_user_prompt(message: str, params: Dict[str, Any], result_count: int) -> str:
    return f"""User request: "{message}"
Parameters extracted: {json.dumps(params, ensure_ascii=False, default=str)}
Number of results found: {result_count}

Generate a helpful response."""


CLARIFICATION_SYSTEM = """You are a helpful travel assistant. The user made a request but you need more information to help them effectively.
Generate a conversational response that:
1. Acknowledges what you understood from their request
2. Asks for the specific missing information needed
3. Provides examples or suggestions to help them
4. Maintains a friendly, helpful tone

Be specific about what information you need. Focus on the missing parameters."""


def clarification_user_prompt(message: str, intent: str, params: Dict[str, Any], missing: Iterable[str], problems: Iterable[str] = ()) -> str:
    problem_lines = list(problems)
    extra = f"\nProblems found: {'; '.join(problem_lines)}" if problem_lines else ""
    return f"""User request: "{message}"
Intent: {intent}
Parameters I extracted: {json.dumps(params, ensure_ascii=False, default=str)}
Missing required parameters: {', '.join(missing)}{extra}

What clarifying questions should I ask to help them better?"""


TRIP_SUMMARY_SYSTEM = """You are a helpful travel assistant presenting a multi-leg trip plan.
Summarize the itinerary in order (origin, each stop, return), mention how each leg is travelled,
and point the user to the flight, hotel, rental car and activity cards below.
Keep it short, warm and skimmable. Do not invent prices or times that are not in the data."""


def trip_summary_user_prompt(message: str, plan: Dict[str, Any], counts: Dict[str, int]) -> str:
    return f"""User request: "{message}"
Trip plan: {json.dumps(plan, ensure_ascii=False, default=str)}
Results found: {json.dumps(counts)}

Write the itinerary summary."""


GENERAL_SYSTEM = ASSISTANT_SYSTEM + """

Answer the user's travel question directly. If the question is not about travel,
answer briefly and offer to help plan a trip."""


# ---------- helpers ----------
TIMEZONE_SYSTEM = """Analyze the user message and extract any timezone information mentioned. Return ONLY a valid JSON object (no markdown formatting) with this structure:

{
  "timezone": "IANA_timezone_name_or_null"
}

Rules:
1. If a timezone is mentioned, convert it to a valid IANA timezone name (e.g., "PST" → "America/Los_Angeles", "EST" → "America/New_York")
2. If no timezone is mentioned, return {"timezone": null}
3. Common abbreviations: PST/PDT→America/Los_Angeles, MST/MDT→America/Denver, CST/CDT→America/Chicago, EST/EDT→America/New_York
4. UTC offsets: UTC+8→Asia/Shanghai, UTC-5→America/New_York, UTC+0→UTC
5. If timezone is ambiguous or invalid, return {"timezone": null}

IMPORTANT: Return only valid JSON without any markdown code block formatting or explanatory text."""

ACTIVITY_SYSTEM = "You respond only with valid JSON."


def activity_prompt(location: str, date: Optional[str], time_of_day: str) -> str:
    when = f" on {date}" if date else ""
    return (
        f"You are a helpful travel assistant. Suggest 5 fun activities for a traveler in {location}{when} "
        f"during the {time_of_day}. For each activity, also provide a realistic booking website URL where "
        "travelers can book this activity. Return pure JSON array, each object with "
        "id,title,subtitle,timing,price(optional),bookingUrl(string),externalLinks(array label+url)."
    )


def missing_params(intent: str, params: Dict[str, Any]) -> List[str]:
    """Required parameters of ``intent`` absent from ``params`` (camelCase keys)."""
    config = intents.get_intent_config(intent)
    if config is None:
        return []
    # a place search needs a destination or a query, not both
    either = ("destination", "query") if intent == intents.PLACE_SEARCH else ()
    missing = []
    for name in config.required_params:
        if name in either:
            if not any(params.get(n) for n in either):
                missing.append(name)
        elif not params.get(name):
            missing.append(name)
    return missing
