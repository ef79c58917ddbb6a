"""
FastAPI zone risk endpoints.

Endpoints:
    GET  /api/v1/zones/{zone_id}/risk            — Published state for a zone
    POST /api/v1/zones/{zone_id}/refresh         — Manual full refresh
    GET  /api/v1/dashboard/summary               — City-wide roll-up over zones
    POST /api/v1/connectivity/{status}           — Publish online / offline
    GET  /api/v1/stations                        — River gauge catalog
    GET  /api/v1/stations/{station_id}/history   — Record floods at a gauge
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Query, Request

from floodwatch.api.schemas import (
    ConnectivityResponse,
    ConnectivityStatus,
    DashboardSummaryResponse,
    RefreshResponse,
    StationHistoryResponse,
    StationResponse,
    ZoneStateResponse,
)
from floodwatch.core.config import Settings, get_settings
from floodwatch.core.errors import FloodWatchError, NotFoundError
from floodwatch.hydrology.stations import all_stations, get_zone, historical_flood_data
from floodwatch.risk.aggregator import UnifiedAggregator
from floodwatch.scheduler.events import ConnectivityEvent, ConnectivityMonitor
from floodwatch.scheduler.refresh_scheduler import RefreshScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["zones"])


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def _scheduler_for(request: Request, zone_id: str) -> RefreshScheduler:
    if get_zone(zone_id) is None:
        raise NotFoundError("Zone", zone_id=zone_id)
    schedulers: Dict[str, RefreshScheduler] = getattr(request.app.state, "schedulers", {})
    scheduler = schedulers.get(zone_id)
    if scheduler is None:
        raise NotFoundError("Zone", zone_id=zone_id)
    return scheduler


# ---------------------------------------------------------------------------
# Zones
# ---------------------------------------------------------------------------


@router.get("/zones/{zone_id}/risk", response_model=ZoneStateResponse)
async def get_zone_risk(zone_id: str, request: Request):
    scheduler = _scheduler_for(request, zone_id)
    snap = scheduler.snapshot
    return ZoneStateResponse(
        zone_id=zone_id,
        state=snap.state.value,
        loading=snap.loading,
        error=snap.error,
        last_updated=snap.last_updated.isoformat() if snap.last_updated else None,
        is_offline=snap.offline,
        icon=scheduler.current_icon(),
        description=scheduler.current_description(),
        description_local=scheduler.current_description("as"),
        weather=snap.weather.to_dict() if snap.weather else None,
        water_level=snap.water_level.to_dict() if snap.water_level else None,
        zone_risks=[r.to_dict() for r in snap.zone_risks],
        active_warnings=[w.to_dict() for w in scheduler.active_warnings()],
    )


@router.post("/zones/{zone_id}/refresh", response_model=RefreshResponse)
async def refresh_zone(zone_id: str, request: Request):
    """Run a non-silent full refresh and report whether it was applied."""
    scheduler = _scheduler_for(request, zone_id)
    applied = await scheduler.refresh(silent=False)
    snap = scheduler.snapshot
    return RefreshResponse(
        zone_id=zone_id,
        applied=applied,
        state=snap.state.value,
        error=snap.error,
    )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@router.get("/dashboard/summary", response_model=DashboardSummaryResponse)
async def dashboard_summary(
    request: Request,
    zones: Optional[str] = Query(None, description="Comma-separated zone ids; defaults to all monitored zones"),
):
    """Fresh aggregation over several zones, rolled up for a city view."""
    settings = _settings_for(request)
    zone_ids = [z.strip() for z in zones.split(",") if z.strip()] if zones else list(settings.MONITORED_ZONES)
    for zone_id in zone_ids:
        if get_zone(zone_id) is None:
            raise NotFoundError("Zone", zone_id=zone_id)

    aggregator: Optional[UnifiedAggregator] = getattr(request.app.state, "aggregator", None)
    if aggregator is None:
        raise FloodWatchError(
            "Aggregator not started", status_code=503, error_code="SERVICE_UNAVAILABLE",
        )

    summary = (await aggregator.dashboard_summary(zone_ids)).to_dict()
    return DashboardSummaryResponse(
        temperature=summary["temperature"],
        rainfall=summary["rainfall"],
        wind_speed=summary["windSpeed"],
        rainy_zones=summary["rainyZones"],
        warnings=summary["warnings"],
        warnings_list=summary["warningsList"],
        zones=summary["zones"],
        last_updated=summary["lastUpdated"],
        degraded_zones=summary["degradedZones"],
    )


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


@router.post("/connectivity/{status}", response_model=ConnectivityResponse)
async def set_connectivity(status: ConnectivityStatus, request: Request):
    monitor: ConnectivityMonitor = request.app.state.monitor
    reached = monitor.publish(ConnectivityEvent(status.value))
    return ConnectivityResponse(status=status, subscribers=reached)


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------


@router.get("/stations", response_model=List[StationResponse])
async def list_stations(request: Request):
    settings = _settings_for(request)
    return [
        StationResponse(
            id=s["id"],
            name=s["name"],
            name_local=s["nameAssamese"],
            district=s["district"],
            danger_level=s["dangerLevel"],
            highest_flood_level=s["highestFloodLevel"],
            highest_flood_date=s["highestFloodDate"],
            baseline_level=s["currentLevel"],
            latitude=s["coords"]["lat"],
            longitude=s["coords"]["lng"],
            zones=s["zones"],
        )
        for s in all_stations(settings.BASELINE_DANGER_RATIO)
    ]


@router.get("/stations/{station_id}/history", response_model=StationHistoryResponse)
async def station_history(station_id: str):
    data = historical_flood_data(station_id)
    if data is None:
        raise NotFoundError("Station", station_id=station_id)
    return StationHistoryResponse(
        station_id=data["stationId"],
        danger_level=data["dangerLevel"],
        highest_flood_level=data["highestFloodLevel"],
        highest_flood_date=data["highestFloodDate"],
        flood_history=data["floodHistory"],
    )
