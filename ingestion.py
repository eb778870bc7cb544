from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional
import math
import re

from location_store import LocationRecord, LocationStore, utcnow
from route_registry import RouteRegistry
from tracking_errors import InvalidCoordinate


# Leading decimal number, optionally signed, with optional exponent.
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_float(value: Any) -> Optional[float]:
    """Parse a telemetry number the way lenient device firmware sends them.

    Accepts ints/floats and numeric strings, including strings with trailing
    junk (``"12.5km"`` -> 12.5). Returns None for anything unparsable or
    non-finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        match = _FLOAT_PREFIX_RE.match(value.strip())
        if match is None:
            return None
        try:
            parsed = float(match.group(0))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


class IngestionService:
    """Validates telemetry samples and writes them to the LocationStore."""

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

    def build_record(
        self,
        vehicle_id: Any,
        lat: Any,
        lon: Any,
        speed: Any = None,
    ) -> LocationRecord:
        if vehicle_id is None or not str(vehicle_id).strip() or lat is None or lon is None:
            raise InvalidCoordinate("Missing required fields: device_id, lat, lon")
        parsed_lat = parse_float(lat)
        parsed_lon = parse_float(lon)
        if parsed_lat is None or parsed_lon is None:
            raise InvalidCoordinate("Invalid latitude or longitude values")

        parsed_speed = parse_float(speed)
        if parsed_speed is None or parsed_speed <= 0:
            parsed_speed = 0.0

        device_id = str(vehicle_id).strip()
        return LocationRecord.build(
            vehicle_id=device_id,
            lat=parsed_lat,
            lon=parsed_lon,
            speed=parsed_speed,
            route_id=self.registry.find_route_for_vehicle(device_id),
            updated_at=self.clock(),
        )

    async def ingest(
        self,
        vehicle_id: Any,
        lat: Any,
        lon: Any,
        speed: Any = None,
    ) -> LocationRecord:
        # Validation happens before the store is touched.
        record = self.build_record(vehicle_id, lat, lon, speed)
        await self.store.put(record)
        print(
            f"[ingest] GPS update {record.vehicle_id} lat={record.lat} lon={record.lon} "
            f"speed={record.speed} km/h route={record.route_id or '-'}"
        )
        return record


__all__ = ["IngestionService", "parse_float"]
