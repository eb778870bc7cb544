"""In-memory store of the latest known location per vehicle."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from route_registry import RouteRegistry


class VehicleStatus(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"

    @classmethod
    def from_speed(cls, speed: float) -> "VehicleStatus":
        return cls.ACTIVE if speed > 0 else cls.STOPPED


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_ms(dt: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LocationRecord:
    """Latest telemetry sample for one vehicle. Replaced whole on every write."""
    vehicle_id: str
    lat: float
    lon: float
    speed: float
    route_id: Optional[str]
    updated_at: datetime
    status: VehicleStatus

    @classmethod
    def build(
        cls,
        vehicle_id: str,
        lat: float,
        lon: float,
        speed: float,
        route_id: Optional[str],
        updated_at: datetime,
    ) -> "LocationRecord":
        return cls(
            vehicle_id=vehicle_id,
            lat=lat,
            lon=lon,
            speed=speed,
            route_id=route_id,
            updated_at=updated_at,
            status=VehicleStatus.from_speed(speed),
        )

    @property
    def is_active(self) -> bool:
        return self.status is VehicleStatus.ACTIVE

    def moved(self, lat: float, lon: float, speed: float, updated_at: datetime) -> "LocationRecord":
        return replace(
            self,
            lat=lat,
            lon=lon,
            speed=speed,
            updated_at=updated_at,
            status=VehicleStatus.from_speed(speed),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.vehicle_id,
            "lat": self.lat,
            "lon": self.lon,
            "speed": self.speed,
            "route_id": self.route_id,
            "updated": isoformat_ms(self.updated_at),
            "status": self.status.value,
        }


class LocationStore:
    """
    Mapping of vehicle id -> LocationRecord.

    A single asyncio.Lock guards the map; records are immutable so a reader
    always sees a value fully written by some earlier put().
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._records: Dict[str, LocationRecord] = {}

    async def put(self, record: LocationRecord) -> LocationRecord:
        async with self._lock:
            self._records[record.vehicle_id] = record
            return record

    async def get(self, vehicle_id: str) -> Optional[LocationRecord]:
        async with self._lock:
            return self._records.get(vehicle_id)

    async def all(self) -> List[LocationRecord]:
        async with self._lock:
            return list(self._records.values())

    async def count(self) -> int:
        async with self._lock:
            return len(self._records)

    async def for_each_mutable(
        self, fn: Callable[[LocationRecord], Optional[LocationRecord]]
    ) -> int:
        """Apply fn to every record; a non-None return replaces the stored record.

        Returns the number of records replaced.
        """
        replaced = 0
        async with self._lock:
            for vehicle_id, record in list(self._records.items()):
                updated = fn(record)
                if updated is None or updated is record:
                    continue
                self._records[vehicle_id] = updated
                replaced += 1
        return replaced

    async def seed_from_registry(
        self,
        registry: "RouteRegistry",
        clock: Callable[[], datetime] = utcnow,
    ) -> int:
        """Place every assigned vehicle without a record at its route's first stop."""
        seeded = 0
        now = clock()
        async with self._lock:
            for vehicle_id in registry.vehicle_ids():
                if vehicle_id in self._records:
                    continue
                route_id = registry.find_route_for_vehicle(vehicle_id)
                route = registry.get_route(route_id) if route_id is not None else None
                origin = route.origin if route is not None else None
                if origin is None:
                    continue
                self._records[vehicle_id] = LocationRecord.build(
                    vehicle_id=vehicle_id,
                    lat=origin.lat,
                    lon=origin.lon,
                    speed=0.0,
                    route_id=route_id,
                    updated_at=now,
                )
                seeded += 1
        return seeded


__all__ = ["LocationRecord", "LocationStore", "VehicleStatus", "isoformat_ms", "utcnow"]
