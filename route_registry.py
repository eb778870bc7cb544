from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import json
import math
import os


DEFAULT_ROUTES_CONFIG_PATH = Path(os.getenv("ROUTES_CONFIG_PATH", "config/routes.json"))


@dataclass(frozen=True)
class Stop:
    """A named stop on a route."""
    name: str
    lat: float
    lon: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "lat": self.lat, "lon": self.lon}


@dataclass
class RouteDefinition:
    """
    A fixed route: ordered stops (origin first, destination last) and the
    vehicles assigned to service it.
    """
    route_id: str
    name: str
    stops: List[Stop] = field(default_factory=list)
    vehicle_ids: List[str] = field(default_factory=list)

    @property
    def origin(self) -> Optional[Stop]:
        return self.stops[0] if self.stops else None

    @property
    def final_stop(self) -> Optional[Stop]:
        return self.stops[-1] if self.stops else None

    def stop_names(self) -> List[str]:
        return [s.name for s in self.stops]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.route_id,
            "name": self.name,
            "buses": list(self.vehicle_ids),
            "stops": [s.to_dict() for s in self.stops],
        }


SAMPLE_ROUTES: List[Dict[str, Any]] = [
    {
        "id": "ROUTE_001",
        "name": "City Center - Airport",
        "buses": ["BUS_101", "BUS_102"],
        "stops": [
            {"name": "City Center", "lat": 11.1563, "lon": 77.5932},
            {"name": "Main Market", "lat": 11.1663, "lon": 77.6032},
            {"name": "University", "lat": 11.1763, "lon": 77.6132},
            {"name": "Airport", "lat": 11.1863, "lon": 77.6232},
        ],
    },
    {
        "id": "ROUTE_002",
        "name": "Railway Station - Tech Park",
        "buses": ["BUS_201", "BUS_202"],
        "stops": [
            {"name": "Railway Station", "lat": 11.1463, "lon": 77.5832},
            {"name": "Shopping Mall", "lat": 11.1513, "lon": 77.5932},
            {"name": "Hospital", "lat": 11.1613, "lon": 77.6032},
            {"name": "Tech Park", "lat": 11.1713, "lon": 77.6132},
        ],
    },
]


def _parse_stop(raw: Any) -> Optional[Stop]:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    lat = raw.get("lat")
    lon = raw.get("lon", raw.get("lng"))
    if not name or lat is None or lon is None:
        return None
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return None
    return Stop(name=str(name).strip(), lat=lat_f, lon=lon_f)


def parse_route(raw: Any) -> Optional[RouteDefinition]:
    """Build a RouteDefinition from a catalogue entry, or None if it is unusable."""
    if not isinstance(raw, dict):
        return None
    route_id = raw.get("id") or raw.get("route_id")
    if route_id is None or not str(route_id).strip():
        return None
    stops: List[Stop] = []
    for stop_raw in raw.get("stops") or []:
        stop = _parse_stop(stop_raw)
        if stop is None:
            print(f"[routes] skipping malformed stop on {route_id}: {stop_raw!r}")
            continue
        stops.append(stop)
    vehicle_ids: List[str] = []
    buses_raw = raw.get("buses") or raw.get("vehicle_ids") or []
    if not isinstance(buses_raw, (list, tuple)):
        print(f"[routes] ignoring non-list buses on {route_id}: {buses_raw!r}")
        buses_raw = []
    for vid in buses_raw:
        if vid is None:
            continue
        vid_str = str(vid).strip()
        if vid_str and vid_str not in vehicle_ids:
            vehicle_ids.append(vid_str)
    return RouteDefinition(
        route_id=str(route_id).strip(),
        name=str(raw.get("name") or route_id),
        stops=stops,
        vehicle_ids=vehicle_ids,
    )


class RouteRegistry:
    """Read-mostly catalogue of routes, keyed by route id in insertion order."""

    def __init__(self, routes: Optional[Iterable[RouteDefinition]] = None):
        self._routes: Dict[str, RouteDefinition] = {}
        for route in routes or []:
            if route.route_id in self._routes:
                print(f"[routes] duplicate route id {route.route_id}; keeping first")
                continue
            self._routes[route.route_id] = route

    @classmethod
    def from_dicts(cls, entries: Iterable[Any]) -> "RouteRegistry":
        routes: List[RouteDefinition] = []
        for entry in entries:
            route = parse_route(entry)
            if route is None:
                print(f"[routes] skipping malformed route entry: {entry!r}")
                continue
            routes.append(route)
        return cls(routes)

    @classmethod
    def from_config(cls, path: Path = DEFAULT_ROUTES_CONFIG_PATH) -> "RouteRegistry":
        """Load the route catalogue from JSON, falling back to the sample routes."""
        if path.exists():
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
                entries = raw.get("routes") if isinstance(raw, dict) else raw
                if isinstance(entries, list):
                    registry = cls.from_dicts(entries)
                    print(f"[routes] loaded {len(registry)} routes from {path}")
                    return registry
                print(f"[routes] {path} has no route list; using sample routes")
            except (OSError, ValueError) as exc:
                print(f"[routes] failed to load config {path}: {exc}")
        return cls.from_dicts(SAMPLE_ROUTES)

    def __len__(self) -> int:
        return len(self._routes)

    def get_route(self, route_id: str) -> Optional[RouteDefinition]:
        return self._routes.get(route_id)

    def all_routes(self) -> List[RouteDefinition]:
        return list(self._routes.values())

    def find_route_for_vehicle(self, vehicle_id: str) -> Optional[str]:
        # Linear scan; a vehicle listed on several routes belongs to the first.
        for route_id, route in self._routes.items():
            if vehicle_id in route.vehicle_ids:
                return route_id
        return None

    def vehicle_ids(self) -> List[str]:
        seen: List[str] = []
        for route in self._routes.values():
            for vid in route.vehicle_ids:
                if vid not in seen:
                    seen.append(vid)
        return seen


__all__ = [
    "DEFAULT_ROUTES_CONFIG_PATH",
    "RouteDefinition",
    "RouteRegistry",
    "SAMPLE_ROUTES",
    "Stop",
    "parse_route",
]
