import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from geo_math import ETA_ARRIVED, ETA_STOPPED, ETA_UNKNOWN
from location_store import LocationRecord, LocationStore
from query_service import QueryService, route_with_locations_to_dict
from route_registry import SAMPLE_ROUTES, RouteRegistry
from search_service import SearchService
from tracking_errors import InvalidQuery, NotFound


BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _setup(*records):
    registry = RouteRegistry.from_dicts(SAMPLE_ROUTES)
    store = LocationStore()

    async def load():
        for r in records:
            await store.put(r)

    asyncio.run(load())
    return QueryService(store, registry, clock=lambda: BASE), SearchService(store, registry)


def _at(vid, lat, lon, speed, route_id="ROUTE_001"):
    return LocationRecord.build(vid, lat, lon, speed, route_id, BASE)


def test_get_one_missing_raises_not_found():
    queries, _ = _setup()
    with pytest.raises(NotFound):
        asyncio.run(queries.get_one("BUS_101"))


def test_list_routes_joins_current_locations():
    bus = _at("BUS_101", 11.16, 77.6, 20)
    queries, _ = _setup(bus)
    listing = asyncio.run(queries.list_routes_with_locations())

    assert [route.route_id for route, _ in listing] == ["ROUTE_001", "ROUTE_002"]
    route, buses = listing[0]
    assert buses == [("BUS_101", bus), ("BUS_102", None)]

    payload = route_with_locations_to_dict(listing[0])
    assert payload["name"] == "City Center - Airport"
    assert payload["buses"][0]["location"]["device_id"] == "BUS_101"
    assert payload["buses"][1] == {"id": "BUS_102", "location": None}


def test_health_counts_tracked_buses():
    queries, _ = _setup(_at("BUS_101", 0, 0, 0), _at("BUS_201", 0, 0, 0, "ROUTE_002"))
    assert asyncio.run(queries.health()) == {
        "status": "OK",
        "timestamp": "2024-01-01T00:00:00.000Z",
        "totalBuses": 2,
    }


@pytest.mark.parametrize(
    "origin, destination",
    [("city", "airport"), ("Airport", "City"), ("MARKET", "univ"), ("airport", "airport")],
)
def test_search_matches_stop_names_case_insensitively(origin, destination):
    _, search = _setup()
    results = asyncio.run(search.search(origin, destination))
    assert [r.route_id for r in results] == ["ROUTE_001"]


def test_search_without_match_is_empty():
    _, search = _setup()
    assert asyncio.run(search.search("Nowhere", "Airport")) == []
    # both terms must match the same route
    assert asyncio.run(search.search("City Center", "Tech Park")) == []


@pytest.mark.parametrize("origin, destination", [(None, "Airport"), ("City", None), ("", "Airport"), ("City", "  ")])
def test_search_requires_both_terms(origin, destination):
    _, search = _setup()
    with pytest.raises(InvalidQuery):
        asyncio.run(search.search(origin, destination))


def test_search_computes_eta_to_final_stop():
    moving = _at("BUS_101", 11.1563, 77.5932, 30)
    _, search = _setup(moving)
    (result,) = asyncio.run(search.search("city", "airport"))

    assert result.route_name == "City Center - Airport"
    assert [b.vehicle_id for b in result.buses] == ["BUS_101", "BUS_102"]
    assert result.buses[0].eta == "9 minutes"
    assert result.buses[0].location == moving
    assert result.buses[1].eta == ETA_UNKNOWN
    assert result.buses[1].location is None

    payload = result.to_dict()
    assert payload["route_id"] == "ROUTE_001"
    assert payload["buses"][0]["route"] == "City Center - Airport"
    assert payload["buses"][1] == {"id": "BUS_102", "route": "City Center - Airport", "location": None, "eta": ETA_UNKNOWN}
    assert payload["stops"][-1] == {"name": "Airport", "lat": 11.1863, "lon": 77.6232}


def test_search_eta_sentinels():
    _, search = _setup(
        _at("BUS_201", 11.1463, 77.5832, 0, "ROUTE_002"),
        _at("BUS_202", 11.1713, 77.6132, 25, "ROUTE_002"),
    )
    (result,) = asyncio.run(search.search("railway", "tech"))
    assert [b.eta for b in result.buses] == [ETA_STOPPED, ETA_ARRIVED]
