from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from travel_agent.agent import prompts
from travel_agent.agent.llm import CompletionService, parse_json_reply
from travel_agent.agent.schemas import ConversationTurn
from travel_agent.utils.config import settings

logger = logging.getLogger(__name__)

_ABBREVIATIONS = {
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "GMT": "UTC",
    "UTC": "UTC",
    "Z": "UTC",
}
_OFFSET = re.compile(r"^(?:UTC|GMT)\s*([+-])\s*(\d{1,2})$", re.IGNORECASE)


def _zone(name: str) -> Optional[ZoneInfo]:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def normalize_timezone(value: object) -> Optional[str]:
    """Canonical IANA name for ``value``, or None when it is not a usable timezone.

    Accepts IANA names, common US abbreviations and whole-hour ``UTC±N`` offsets.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    cleaned = value.strip()

    alias = _ABBREVIATIONS.get(cleaned.upper())
    if alias:
        return alias

    m = _OFFSET.match(cleaned)
    if m:
        sign, hours = m.group(1), int(m.group(2))
        if hours == 0:
            return "UTC"
        if hours > 14:
            return None
        # Etc/GMT zones use the inverted POSIX sign
        return f"Etc/GMT{'-' if sign == '+' else '+'}{hours}"

    return cleaned if _zone(cleaned) is not None else None


def resolve_timezone(override: Optional[str], frontend_timezone: Optional[str], default: Optional[str] = None) -> str:
    """Priority: per-conversation override > frontend timezone > configured default > UTC."""
    for candidate in (override, frontend_timezone, default or settings.DEFAULT_TIMEZONE):
        name = normalize_timezone(candidate)
        if name:
            return name
    return "UTC"


def format_user_time(moment: datetime) -> str:
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment:%Y %I:%M:%S %p}"


def build_time_context(
    override: Optional[str] = None,
    frontend_timezone: Optional[str] = None,
    now: Optional[Union[datetime, Callable[[], datetime]]] = None,
    default: Optional[str] = None,
) -> str:
    tz_name = resolve_timezone(override, frontend_timezone, default)
    zone = _zone(tz_name) or timezone.utc
    if callable(now):
        now = now()
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return f"Current user time: {format_user_time(moment.astimezone(zone))} ({tz_name})"


# -------------------------
# Detection
# -------------------------
class TimezoneDetector(Protocol):
    async def detect(self, message: str) -> Optional[str]: ...


class CompletionTimezoneDetector:
    """Asks the completion service whether the message names a timezone."""

    def __init__(self, completion: CompletionService, temperature: float = 0.1, max_tokens: int = 60) -> None:
        self._completion = completion
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def detect(self, message: str) -> Optional[str]:
        if not message or not message.strip():
            return None
        reply = await self._completion.complete(
            system=prompts.TIMEZONE_SYSTEM,
            messages=[ConversationTurn(role="user", text=message)],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        try:
            data = parse_json_reply(reply)
        except ValueError:
            logger.debug("Timezone detection reply was not JSON: %r", reply)
            return None
        detected = data.get("timezone") if isinstance(data, dict) else None
        if not detected:
            return None
        normalized = normalize_timezone(detected)
        if normalized is None:
            logger.warning("Timezone detection returned an invalid timezone: %s", detected)
        return normalized
