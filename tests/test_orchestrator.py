import asyncio

import pytest

from travel_agent.agent.orchestrator import TripOrchestrator, primary_destination
from travel_agent.agent.schemas import TransportationLeg, TripDates, TripPlan

from conftest import FakeActivitySuggester, FakeFlightProvider, FakeHotelProvider


def road_trip_plan(**kw):
    data = dict(
        is_valid=True,
        origin="MSN",
        final_destination="DEN",
        intermediate_stops=["DEN", "Rocky Mountain National Park"],
        transportation_legs=[
            TransportationLeg(mode="flight", from_="MSN", to="DEN"),
            TransportationLeg(mode="drive", from_="DEN", to="Rocky Mountain National Park"),
        ],
        dates=TripDates(start_date="2030-06-01", end_date="2030-06-06"),
    )
    data.update(kw)
    return TripPlan(**data)


def orchestrator(flights=None, hotels=None, activities=None, **kw):
    return TripOrchestrator(
        flights or FakeFlightProvider(),
        hotels or FakeHotelProvider(),
        activities or FakeActivitySuggester(),
        **kw,
    )


class SlowHotelProvider(FakeHotelProvider):
    async def search(self, request):
        await asyncio.sleep(5)
        return await super().search(request)


async def test_full_trip_fans_out_to_every_step():
    flights, hotels, activities = FakeFlightProvider(), FakeHotelProvider(), FakeActivitySuggester()
    results = await orchestrator(flights, hotels, activities).execute(road_trip_plan())

    # outbound and return, each capped at three cards
    assert len(results.flights) == 6
    legs = [(r.get("departure"), r.get("arrival"), r.get("outboundDate")) for r in flights.requests]
    assert sorted(legs) == [("DEN", "MSN", "2030-06-06"), ("MSN", "DEN", "2030-06-01")]

    # the landmark is not a code, so only Denver gets a hotel search
    assert [r.get("cityCode") for r in hotels.requests] == ["DEN"]
    assert len(results.hotels) == 2

    assert [c.title.split(" · ")[0] for c in results.rental_cars] == ["Enterprise", "Hertz", "Avis"]
    assert all(c.location.from_.code == "DEN" for c in results.rental_cars)
    assert all((c.details["tripOrigin"], c.details["tripDestination"]) == ("MSN", "DEN") for c in results.rental_cars)

    assert activities.calls == [("Rocky Mountain National Park", "2030-06-01", "day")]
    assert [c.title for c in results.activities] == ["Bear Lake hike", "Trail Ridge Road drive"]
    assert results.counts() == {"flights": 6, "hotels": 2, "rentalCars": 3, "activities": 2}
    assert len(results.all_cards()) == 13


async def test_hotel_offers_with_bare_prices_still_give_cards():
    payload = {"data": [{"hotel": {"name": "Inn", "cityCode": "DEN"}, "offers": [{"id": "o", "price": "99"}]}]}
    results = await orchestrator(hotels=FakeHotelProvider(payloads={"DEN": payload})).execute(road_trip_plan())
    assert len(results.hotels) == 1
    assert results.hotels[0].price.amount == 99.0


async def test_failing_hotel_city_only_empties_that_step():
    plan = road_trip_plan(
        origin="JFK",
        final_destination="FCO",
        intermediate_stops=["CDG", "FCO"],
        transportation_legs=[],
    )
    hotels = FakeHotelProvider(failing=["PAR"])
    results = await orchestrator(hotels=hotels).execute(plan)
    assert sorted(r.get("cityCode") for r in hotels.requests) == ["PAR", "ROM"]
    assert {c.location.code for c in results.hotels} == {"ROM"}
    assert results.flights
    assert results.activities


async def test_failing_flight_provider_leaves_other_steps():
    results = await orchestrator(flights=FakeFlightProvider(error=RuntimeError("down"))).execute(road_trip_plan())
    assert results.flights == []
    assert results.hotels
    assert results.rental_cars
    assert results.activities


async def test_slow_step_times_out_alone():
    results = await orchestrator(hotels=SlowHotelProvider(), timeout_seconds=0.05).execute(road_trip_plan())
    assert results.hotels == []
    assert len(results.flights) == 6


async def test_return_flight_skipped_when_trip_ends_at_origin():
    flights = FakeFlightProvider()
    plan = road_trip_plan(origin="DEN", final_destination="DEN", intermediate_stops=["SEA"])
    results = await orchestrator(flights=flights).execute(plan)
    assert [(r.get("departure"), r.get("arrival")) for r in flights.requests] == [("DEN", "SEA")]
    assert len(results.flights) == 3


async def test_flights_need_airport_codes():
    flights = FakeFlightProvider()
    plan = road_trip_plan(origin="Somewhere Far Away", intermediate_stops=[])
    results = await orchestrator(flights=flights).execute(plan)
    assert flights.requests == []
    assert results.flights == []


async def test_city_names_are_normalized_before_searching():
    flights = FakeFlightProvider()
    plan = road_trip_plan(origin="Chicago", final_destination="Paris", intermediate_stops=[])
    await orchestrator(flights=flights).execute(plan)
    assert ("ORD", "CDG") in [(r.get("departure"), r.get("arrival")) for r in flights.requests]


@pytest.mark.parametrize("failure", [RuntimeError("model down"), None])
async def test_activity_placeholders_when_suggester_fails_or_is_empty(failure):
    suggester = FakeActivitySuggester(items=[], error=failure)
    results = await orchestrator(activities=suggester).execute(road_trip_plan())
    assert len(results.activities) == 3
    assert all(c.details["placeholder"] for c in results.activities)
    assert all("Rocky Mountain National Park" in c.title for c in results.activities)


async def test_slow_suggester_falls_back_to_placeholders():
    class SlowSuggester(FakeActivitySuggester):
        async def suggest(self, location, date, time_of_day="day"):
            await asyncio.sleep(5)
            return []

    results = await orchestrator(activities=SlowSuggester(), timeout_seconds=0.05).execute(road_trip_plan())
    assert len(results.activities) == 3


def test_primary_destination_prefers_non_airport_stop():
    assert primary_destination(road_trip_plan()) == "Rocky Mountain National Park"
    assert primary_destination(road_trip_plan(intermediate_stops=["DEN"])) == "DEN"
