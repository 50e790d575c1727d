from datetime import datetime, timezone

import pytest

from travel_agent.agent.llm import CompletionError
from travel_agent.agent.time_context import (
    CompletionTimezoneDetector,
    build_time_context,
    normalize_timezone,
    resolve_timezone,
)

from conftest import TIMEZONE

NOON_IN_NEW_YORK = datetime(2030, 1, 15, 17, 30, 5, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("America/New_York", "America/New_York"),
        (" Europe/Paris ", "Europe/Paris"),
        ("PST", "America/Los_Angeles"),
        ("edt", "America/New_York"),
        ("Z", "UTC"),
        ("UTC+5", "Etc/GMT-5"),
        ("GMT-3", "Etc/GMT+3"),
        ("UTC+0", "UTC"),
        ("UTC+15", None),
        ("Mars/Olympus_Mons", None),
        ("", None),
        (None, None),
        (5, None),
    ],
)
def test_normalize_timezone(raw, expected):
    assert normalize_timezone(raw) == expected


def test_resolution_priority():
    assert resolve_timezone("Asia/Tokyo", "Europe/Paris", "UTC") == "Asia/Tokyo"
    assert resolve_timezone(None, "Europe/Paris", "UTC") == "Europe/Paris"
    assert resolve_timezone("not a zone", None, "America/Chicago") == "America/Chicago"
    assert resolve_timezone(None, None, "bogus") == "UTC"


def test_time_context_format():
    text = build_time_context(frontend_timezone="America/New_York", now=NOON_IN_NEW_YORK)
    assert text == "Current user time: Tuesday, January 15, 2030 12:30:05 PM (America/New_York)"


def test_override_wins_over_frontend():
    text = build_time_context(override="Asia/Tokyo", frontend_timezone="America/New_York", now=NOON_IN_NEW_YORK)
    assert text == "Current user time: Wednesday, January 16, 2030 02:30:05 AM (Asia/Tokyo)"


def test_naive_now_is_treated_as_utc():
    text = build_time_context(now=lambda: datetime(2030, 1, 15, 9, 0, 0), default="UTC")
    assert text == "Current user time: Tuesday, January 15, 2030 09:00:00 AM (UTC)"


async def test_detector_normalizes_reply(completion):
    completion.on_json(TIMEZONE, {"timezone": "PST"})
    assert await CompletionTimezoneDetector(completion).detect("I'm in California, PST") == "America/Los_Angeles"
    call = completion.calls_for(TIMEZONE)[0]
    assert call["temperature"] == 0.1


@pytest.mark.parametrize("reply", ['{"timezone": null}', "no timezone here", '{"timezone": "Atlantis"}'])
async def test_detector_returns_none_without_a_usable_zone(completion, reply):
    completion.on(TIMEZONE, reply)
    assert await CompletionTimezoneDetector(completion).detect("Find flights to Paris") is None


async def test_detector_skips_blank_messages(completion):
    assert await CompletionTimezoneDetector(completion).detect("   ") is None
    assert completion.calls == []


async def test_detector_propagates_completion_errors(completion):
    completion.on(TIMEZONE, CompletionError("down"))
    with pytest.raises(CompletionError):
        await CompletionTimezoneDetector(completion).detect("I'm in Tokyo")
