"""
Pydantic response schemas for the zone risk API.

Nested weather / water level records are passed through as the camelCase
dicts produced by the domain dataclasses; only the envelope is typed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ConnectivityStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ZoneStateResponse(BaseModel):
    """Published state of one zone's scheduler."""
    zone_id: str
    state: str = Field(..., description="cold | cached | live | stale_offline")
    loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[str] = None
    is_offline: bool = False
    icon: str = "cloud"
    description: str = "Unknown"
    description_local: str = Field("অজ্ঞাত", description="Assamese condition text")
    weather: Optional[Dict[str, Any]] = None
    water_level: Optional[Dict[str, Any]] = None
    zone_risks: List[Dict[str, Any]] = []
    active_warnings: List[Dict[str, Any]] = []


class RefreshResponse(BaseModel):
    zone_id: str
    applied: bool = Field(..., description="False when the refresh failed or was superseded")
    state: str
    error: Optional[str] = None


class DashboardSummaryResponse(BaseModel):
    """City-wide roll-up over several zones."""
    temperature: float = Field(..., description="Average across zones, °C")
    rainfall: float = Field(..., description="Summed rain intensity, mm/h")
    wind_speed: float = Field(..., description="Maximum across zones, m/s")
    rainy_zones: int = Field(..., description="Zones raining above 5 mm/h")
    warnings: int = 0
    warnings_list: List[Dict[str, Any]] = []
    zones: List[Dict[str, Any]] = []
    last_updated: str
    degraded_zones: List[str] = []


class ConnectivityResponse(BaseModel):
    status: ConnectivityStatus
    subscribers: int


class StationResponse(BaseModel):
    id: str
    name: str
    name_local: str
    district: str
    danger_level: float
    highest_flood_level: float
    highest_flood_date: str
    baseline_level: float
    latitude: float
    longitude: float
    zones: List[str] = []


class StationHistoryResponse(BaseModel):
    station_id: str
    danger_level: float
    highest_flood_level: float
    highest_flood_date: str
    flood_history: List[Dict[str, Any]] = []
