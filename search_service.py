from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from geo_math import ETA_UNKNOWN, eta
from location_store import LocationRecord, LocationStore
from route_registry import RouteDefinition, RouteRegistry, Stop
from tracking_errors import InvalidQuery


@dataclass
class BusResult:
    vehicle_id: str
    route_name: str
    location: Optional[LocationRecord]
    eta: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.vehicle_id,
            "route": self.route_name,
            "location": self.location.to_dict() if self.location is not None else None,
            "eta": self.eta,
        }


@dataclass
class RouteResult:
    route_id: str
    route_name: str
    buses: List[BusResult] = field(default_factory=list)
    stops: List[Stop] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "route_id": self.route_id,
            "route_name": self.route_name,
            "buses": [b.to_dict() for b in self.buses],
            "stops": [s.to_dict() for s in self.stops],
        }


def route_matches(route: RouteDefinition, origin: str, destination: str) -> bool:
    """Both terms must appear (case-insensitive substring) somewhere in the stop names."""
    names = [name.lower() for name in route.stop_names()]
    origin_l = origin.lower()
    destination_l = destination.lower()
    return any(origin_l in n for n in names) and any(destination_l in n for n in names)


def eta_to_final_stop(route: RouteDefinition, record: Optional[LocationRecord]) -> str:
    final = route.final_stop
    if record is None or final is None:
        return ETA_UNKNOWN
    return eta(record.lat, record.lon, final.lat, final.lon, record.speed)


class SearchService:
    def __init__(self, store: LocationStore, registry: RouteRegistry):
        self.store = store
        self.registry = registry

    async def search(self, origin: Optional[str], destination: Optional[str]) -> List[RouteResult]:
        if not origin or not origin.strip() or not destination or not destination.strip():
            raise InvalidQuery("Missing from or to parameter")

        results: List[RouteResult] = []
        for route in self.registry.all_routes():
            if not route_matches(route, origin, destination):
                continue
            buses: List[BusResult] = []
            for vid in route.vehicle_ids:
                record = await self.store.get(vid)
                buses.append(
                    BusResult(
                        vehicle_id=vid,
                        route_name=route.name,
                        location=record,
                        eta=eta_to_final_stop(route, record),
                    )
                )
            results.append(
                RouteResult(
                    route_id=route.route_id,
                    route_name=route.name,
                    buses=buses,
                    stops=list(route.stops),
                )
            )
        return results


__all__ = ["BusResult", "RouteResult", "SearchService", "eta_to_final_stop", "route_matches"]
