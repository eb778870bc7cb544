"""
Simulated GPS motion for vehicles that are marked active.

Stands in for real hardware during demos: every tick nudges each active
vehicle's position by roughly 100 m and wobbles its speed. Stopped vehicles
are never touched.
"""

from __future__ import annotations

import asyncio
import math
import os
import random
from datetime import datetime, timedelta
from typing import Callable, Optional

from location_store import LocationRecord, LocationStore, utcnow


SIMULATION_INTERVAL_S = float(os.getenv("SIMULATION_INTERVAL_S", "8"))
POSITION_JITTER_DEG = float(os.getenv("SIMULATION_POSITION_JITTER_DEG", "0.0005"))
SPEED_JITTER_KMH = float(os.getenv("SIMULATION_SPEED_JITTER_KMH", "5"))

_MIN_TIME_STEP = timedelta(microseconds=1)


class SimulationEngine:
    def __init__(
        self,
        store: LocationStore,
        *,
        interval_s: float = SIMULATION_INTERVAL_S,
        position_jitter_deg: float = POSITION_JITTER_DEG,
        speed_jitter_kmh: float = SPEED_JITTER_KMH,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.interval_s = interval_s
        self.position_jitter_deg = position_jitter_deg
        self.speed_jitter_kmh = speed_jitter_kmh
        self.rng = rng or random.Random()
        self.clock = clock
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    def perturb(self, record: LocationRecord, now: datetime) -> Optional[LocationRecord]:
        if not record.is_active:
            return None
        j = self.position_jitter_deg
        lat = record.lat + self.rng.uniform(-j, j)
        lon = record.lon + self.rng.uniform(-j, j)
        speed = max(0.0, record.speed + self.rng.uniform(-self.speed_jitter_kmh, self.speed_jitter_kmh))

        # Non-finite values are a bug upstream; keep the last good sample instead.
        if not math.isfinite(lat):
            lat = record.lat if math.isfinite(record.lat) else 0.0
        if not math.isfinite(lon):
            lon = record.lon if math.isfinite(record.lon) else 0.0
        if not math.isfinite(speed):
            speed = 0.0

        updated_at = now
        if updated_at <= record.updated_at:
            updated_at = record.updated_at + _MIN_TIME_STEP
        return record.moved(lat=lat, lon=lon, speed=speed, updated_at=updated_at)

    async def tick(self) -> int:
        """Run one simulation pass. Returns the number of vehicles moved."""
        now = self.clock()
        moved = await self.store.for_each_mutable(lambda rec: self.perturb(rec, now))
        self.ticks += 1
        if moved:
            print(f"[simulation] tick {self.ticks}: moved {moved} active vehicles")
        return moved

    async def run(self) -> None:
        print(f"[simulation] started interval={self.interval_s}s")
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                print(f"[simulation] tick error: {e}")
            await asyncio.sleep(self.interval_s)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        # One task only, so ticks never overlap.
        if self.running:
            return self._task
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        print("[simulation] stopped")


__all__ = [
    "POSITION_JITTER_DEG",
    "SIMULATION_INTERVAL_S",
    "SPEED_JITTER_KMH",
    "SimulationEngine",
]
