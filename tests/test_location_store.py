import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from location_store import LocationRecord, LocationStore, VehicleStatus
from route_registry import SAMPLE_ROUTES, RouteRegistry


BASE = datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)


def _record(vid="BUS_101", lat=1.0, lon=2.0, speed=0.0, route_id=None, ts=BASE):
    return LocationRecord.build(vid, lat, lon, speed, route_id, ts)


def test_status_derived_from_speed():
    assert _record(speed=12.0).status is VehicleStatus.ACTIVE
    assert _record(speed=0.0).status is VehicleStatus.STOPPED


def test_put_replaces_whole_record():
    async def scenario():
        store = LocationStore()
        await store.put(_record(speed=40.0, route_id="ROUTE_001"))
        await store.put(_record(lat=5.0, lon=6.0, speed=0.0, route_id=None))
        return await store.get("BUS_101"), await store.all()

    record, records = asyncio.run(scenario())
    assert record.lat == 5.0
    assert record.route_id is None
    assert record.status is VehicleStatus.STOPPED
    assert len(records) == 1


def test_get_missing_returns_none():
    assert asyncio.run(LocationStore().get("nope")) is None


def test_for_each_mutable_only_replaces_returned_records():
    async def scenario():
        store = LocationStore()
        await store.put(_record("A", speed=10.0))
        await store.put(_record("B", speed=0.0))
        replaced = await store.for_each_mutable(
            lambda r: r.moved(r.lat + 1, r.lon, r.speed, r.updated_at) if r.is_active else None
        )
        return replaced, await store.get("A"), await store.get("B")

    replaced, a, b = asyncio.run(scenario())
    assert replaced == 1
    assert a.lat == 2.0
    assert b.lat == 1.0


def test_seed_from_registry_places_buses_at_first_stop():
    registry = RouteRegistry.from_dicts(SAMPLE_ROUTES)

    async def scenario():
        store = LocationStore()
        await store.put(_record("BUS_102", lat=9.0, lon=9.0, speed=25.0, route_id="ROUTE_001"))
        seeded = await store.seed_from_registry(registry, clock=lambda: BASE)
        return seeded, store

    seeded, store = asyncio.run(scenario())
    assert seeded == 3
    assert asyncio.run(store.count()) == 4
    bus = asyncio.run(store.get("BUS_201"))
    assert (bus.lat, bus.lon) == (11.1463, 77.5832)
    assert bus.route_id == "ROUTE_002"
    assert bus.status is VehicleStatus.STOPPED
    # existing telemetry is not overwritten
    assert asyncio.run(store.get("BUS_102")).lat == 9.0


def test_to_dict_external_shape():
    payload = _record(speed=35.0, route_id="ROUTE_001").to_dict()
    assert payload == {
        "device_id": "BUS_101",
        "lat": 1.0,
        "lon": 2.0,
        "speed": 35.0,
        "route_id": "ROUTE_001",
        "updated": "2024-01-01T08:30:00.000Z",
        "status": "active",
    }


def test_concurrent_writers_on_different_keys():
    async def scenario():
        store = LocationStore()
        await asyncio.gather(
            *(store.put(_record(f"BUS_{i}", lat=float(i), speed=float(i))) for i in range(50))
        )
        return await store.all()

    records = asyncio.run(scenario())
    assert len(records) == 50
    assert {r.vehicle_id: r.lat for r in records}["BUS_7"] == 7.0


def test_seed_uses_owning_route_for_shared_vehicle():
    registry = RouteRegistry.from_dicts(
        [
            {"id": "A", "name": "A", "buses": ["BUS_1"], "stops": [{"name": "North", "lat": 1.0, "lon": 1.0}]},
            {"id": "B", "name": "B", "buses": ["BUS_1"], "stops": [{"name": "South", "lat": 2.0, "lon": 2.0}]},
        ]
    )
    store = LocationStore()
    assert asyncio.run(store.seed_from_registry(registry, clock=lambda: BASE)) == 1
    bus = asyncio.run(store.get("BUS_1"))
    assert (bus.lat, bus.route_id) == (1.0, "A")
