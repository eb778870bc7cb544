"""
Fleet Tracking Service: Bus Location API (FastAPI)

Purpose
=======
Receive GPS telemetry from on-board devices (ESP32 units POST their position),
keep the latest known location of every bus in memory, and answer live
lookups and "which bus gets me from A to B" searches with an ETA.

Key features
------------
- POST /api/locations accepts JSON or form-encoded telemetry.
- Per-bus, all-bus and per-route location views.
- Route search by departure/destination stop name with ETA to the final stop.
- Background simulation keeps active buses moving when no hardware reports.

Run
---
$ uvicorn app:app --reload --port 3000

Environment
-----------
- PYTHON >= 3.10
- pip install fastapi uvicorn httpx
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import json
import os
import socket
from urllib.parse import parse_qsl

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from ingestion import IngestionService
from location_store import LocationStore
from query_service import QueryService, route_with_locations_to_dict
from route_registry import DEFAULT_ROUTES_CONFIG_PATH, RouteRegistry
from search_service import SearchService
from simulation import SimulationEngine
from tracking_errors import TrackingError


# ---------------------------
# Config
# ---------------------------
PORT = int(os.getenv("PORT", "3000"))
SIMULATION_ENABLED = os.getenv("SIMULATION_ENABLED", "1").strip().lower() not in {"0", "false", "no", "off"}
SEED_INITIAL_LOCATIONS = os.getenv("SEED_INITIAL_LOCATIONS", "1").strip().lower() not in {"0", "false", "no", "off"}


class State:
    def __init__(self, registry: Optional[RouteRegistry] = None):
        self.registry = registry if registry is not None else RouteRegistry.from_config(DEFAULT_ROUTES_CONFIG_PATH)
        self.store = LocationStore()
        self.ingestion = IngestionService(self.store, self.registry)
        self.queries = QueryService(self.store, self.registry)
        self.search = SearchService(self.store, self.registry)
        self.simulation = SimulationEngine(self.store)


state = State()

# ---------------------------
# App
# ---------------------------
app = FastAPI(title="Fleet Tracking Service")


@app.exception_handler(TrackingError)
async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _local_ip_address() -> str:
    """Best-effort LAN address so devices on the same network can reach us."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packets are sent for a UDP connect; it just selects an interface.
        sock.connect(("10.255.255.255", 1))
        address = sock.getsockname()[0]
    except OSError:
        address = "localhost"
    finally:
        sock.close()
    if address.startswith("127."):
        return "localhost"
    return address


def _print_banner() -> None:
    ip = _local_ip_address()
    base = f"http://{ip}:{PORT}"
    print("[startup] Fleet Tracking Service backend")
    print(f"[startup] backend running at http://localhost:{PORT} (network: {base})")
    print(f"[startup] POST GPS data:      {base}/api/locations")
    print(f"[startup] get bus location:   {base}/api/locations/BUS_101")
    print(f"[startup] get all locations:  {base}/api/locations")
    print(f"[startup] health check:       {base}/api/health")
    print('[startup] example body: {"device_id": "BUS_101", "lat": 11.1863, "lon": 77.6232, "speed": 35}')


@app.on_event("startup")
async def init_tracking() -> None:
    if SEED_INITIAL_LOCATIONS:
        seeded = await state.store.seed_from_registry(state.registry)
        print(f"[startup] seeded {seeded} buses at their first stop")
    _print_banner()
    if SIMULATION_ENABLED:
        state.simulation.start()


@app.on_event("shutdown")
async def shutdown_tracking() -> None:
    await state.simulation.stop()


async def _read_payload(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


# ---------------------------
# Routes
# ---------------------------
@app.get("/api/health")
async def health():
    return await state.queries.health()


@app.post("/api/locations")
async def post_location(request: Request):
    payload = await _read_payload(request)
    record = await state.ingestion.ingest(
        payload.get("device_id"),
        payload.get("lat"),
        payload.get("lon"),
        payload.get("speed"),
    )
    return {
        "success": True,
        "message": "Location updated successfully",
        "data": record.to_dict(),
    }


@app.get("/api/locations/{device_id}")
async def get_location(device_id: str):
    record = await state.queries.get_one(device_id)
    return record.to_dict()


@app.get("/api/locations")
async def get_locations():
    return [r.to_dict() for r in await state.queries.get_all()]


@app.get("/api/routes")
async def get_routes():
    return [route_with_locations_to_dict(entry) for entry in await state.queries.list_routes_with_locations()]


@app.get("/api/search")
async def search_routes(
    origin: Optional[str] = Query(None, alias="from"),
    destination: Optional[str] = Query(None, alias="to"),
):
    results = await state.search.search(origin, destination)
    return [r.to_dict() for r in results]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
