from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from location_store import LocationRecord, LocationStore, isoformat_ms, utcnow
from route_registry import RouteDefinition, RouteRegistry
from tracking_errors import NotFound


RouteWithLocations = Tuple[RouteDefinition, List[Tuple[str, Optional[LocationRecord]]]]


def route_with_locations_to_dict(entry: RouteWithLocations) -> Dict[str, Any]:
    route, buses = entry
    payload = route.to_dict()
    payload["buses"] = [
        {"id": vid, "location": record.to_dict() if record is not None else None}
        for vid, record in buses
    ]
    return payload


class QueryService:
    """Read-only views over the LocationStore and RouteRegistry."""

    def __init__(
        self,
        store: LocationStore,
        registry: RouteRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.clock = clock

    async def get_one(self, vehicle_id: str) -> LocationRecord:
        record = await self.store.get(vehicle_id)
        if record is None:
            raise NotFound("Bus not found")
        return record

    async def get_all(self) -> List[LocationRecord]:
        return await self.store.all()

    async def list_routes_with_locations(self) -> List[RouteWithLocations]:
        result: List[RouteWithLocations] = []
        for route in self.registry.all_routes():
            buses: List[Tuple[str, Optional[LocationRecord]]] = []
            for vid in route.vehicle_ids:
                buses.append((vid, await self.store.get(vid)))
            result.append((route, buses))
        return result

    async def health(self) -> Dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": isoformat_ms(self.clock()),
            "totalBuses": await self.store.count(),
        }


__all__ = ["QueryService", "RouteWithLocations", "route_with_locations_to_dict"]
