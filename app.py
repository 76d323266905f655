"""
Traffic Feed Service: Query API (FastAPI)

Purpose
=======
Aggregate NE Travel Data traffic feeds (incidents, accidents, events) with
user-submitted reports, and answer nearby and preference-filtered queries
for the mobile client.

Key features
------------
- Concurrent refresh of the three feed categories; a failed category keeps
  its previously cached records.
- Radius queries returned closest first.
- Preference filtering with per-severity incident toggles.
- Google encoded polyline decoding for route display.

Run
---
$ uvicorn app:app --reload --port 8080

Environment
-----------
- PYTHON >= 3.10
- pip install fastapi uvicorn httpx
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import asyncio, os

from fastapi import Body, FastAPI, HTTPException, Query

from geo_filter import DEFAULT_NEARBY_RADIUS_M, distance_m
from traffic_errors import DecodeError, InvalidArgument
from traffic_records import TrafficRecord
from traffic_service import TrafficService
from travel_data_client import TravelDataClient

# ---------------------------
# Config
# ---------------------------
TRAFFIC_REFRESH_S = float(os.getenv("TRAFFIC_REFRESH_S", "300"))
TRAFFIC_MIN_REFRESH_S = float(os.getenv("TRAFFIC_MIN_REFRESH_S", "15"))
NEARBY_RADIUS_M = float(os.getenv("NEARBY_RADIUS_M", str(DEFAULT_NEARBY_RADIUS_M)))

# ---------------------------
# App & state
# ---------------------------
app = FastAPI(title="Traffic Feed Service")


def _get_service() -> TrafficService:
    service: Optional[TrafficService] = getattr(app.state, "traffic_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="traffic service not configured")
    return service


def _serialize(records: List[TrafficRecord]) -> List[Dict[str, Any]]:
    return [record.to_dict() for record in records]


@app.on_event("startup")
async def init_traffic_service() -> None:
    try:
        client = TravelDataClient.from_env()
    except RuntimeError as exc:
        print(f"[travel_data] client not configured: {exc}")
        client = None
    app.state.traffic_service = TrafficService(client, min_interval_s=TRAFFIC_MIN_REFRESH_S)


@app.on_event("shutdown")
async def shutdown_traffic_service() -> None:
    task = getattr(app.state, "refresh_task", None)
    if task is not None:
        task.cancel()
    service = getattr(app.state, "traffic_service", None)
    if service is not None:
        await service.aclose()


# ---------------------------
# Startup background updater
# ---------------------------
async def _refresh_loop(service: TrafficService, interval_s: float) -> None:
    while True:
        try:
            await service.refresh(force=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            print(f"[refresh_loop] error: {e}")
        await asyncio.sleep(interval_s)


@app.on_event("startup")
async def start_refresh_loop() -> None:
    service = getattr(app.state, "traffic_service", None)
    if service is None or TRAFFIC_REFRESH_S <= 0:
        return
    app.state.refresh_task = asyncio.create_task(_refresh_loop(service, TRAFFIC_REFRESH_S))


# ---------------------------
# Health
# ---------------------------
@app.get("/v1/health")
async def health():
    service = _get_service()
    last = service.last_result
    snapshot = service.snapshot()
    return {
        "ok": last is not None and last.ok,
        "last_refresh_ts": last.finished_at if last else None,
        "errors": {k: str(v) for k, v in last.errors.items()} if last else {},
        "version": snapshot.version,
        "counts": snapshot.counts(),
    }


# ---------------------------
# REST: Traffic
# ---------------------------
@app.post("/api/traffic/refresh")
async def refresh_traffic(force: bool = Query(False)):
    service = _get_service()
    result = await service.refresh(force=force)
    return result.to_dict()


@app.get("/api/traffic")
async def list_traffic():
    snapshot = _get_service().snapshot()
    return {"version": snapshot.version, "items": _serialize(snapshot.all())}


@app.get("/api/traffic/nearby")
async def nearby_traffic(
    lat: float = Query(...),
    lng: float = Query(...),
    radius_m: float = Query(NEARBY_RADIUS_M),
):
    service = _get_service()
    try:
        found = service.nearby(lat, lng, radius_m, closest_first=True)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    items = []
    for record in found:
        entry = record.to_dict()
        entry["distance_m"] = round(distance_m((lat, lng), record), 1)
        items.append(entry)
    return {"radius_m": radius_m, "items": items}


@app.post("/api/traffic/visible")
async def visible_traffic(payload: Optional[Dict[str, Any]] = Body(None)):
    service = _get_service()
    traffic, reports = service.apply_preferences(payload or {})
    return {"traffic": _serialize(traffic), "reports": _serialize(reports)}


# ---------------------------
# REST: User reports
# ---------------------------
@app.post("/api/reports")
async def add_report(payload: Dict[str, Any] = Body(...)):
    service = _get_service()
    record = service.add_user_report(payload)
    return {"ok": True, "report": record.to_dict()}


# ---------------------------
# REST: Routes
# ---------------------------
@app.get("/api/polyline/decode")
async def decode_route(encoded: str = Query(...)):
    try:
        points = TrafficService.decode_polyline(encoded)
    except DecodeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"points": [[p.latitude, p.longitude] for p in points]}
