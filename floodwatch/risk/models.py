"""
models.py — Risk-layer records: water level estimates, zone risks,
unified weather results and the persisted cache entry.

Serialised keys are camelCase because the presentation layer consumes
them directly (see UnifiedWeatherResult.to_dict).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from floodwatch.ingestion.models import (
    ForecastEntry,
    WeatherSnapshot,
    WeatherWarning,
    parse_timestamp,
    utcnow,
)


class WaterLevelStatus(str, Enum):
    """Gauge status tiers in ascending order of level/danger ratio."""
    NORMAL = "normal"
    ALERT = "alert"
    WARNING = "warning"
    DANGER = "danger"


class Trend(str, Enum):
    STABLE = "stable"
    MODERATE = "moderate"
    RISING = "rising"
    CRITICAL = "critical"


class RiskTier(str, Enum):
    """Weather and combined zone risk: low < medium < high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class WaterLevelEstimate:
    """River level at a zone's governing station, observed or modelled."""
    station: str
    station_local: str
    current_level: float
    danger_level: float
    highest_flood_level: float
    status: WaterLevelStatus
    status_local: str
    trend: Trend
    rainfall_24h: float
    estimated_rise: float
    time_to_peak_h: int
    last_updated: datetime
    is_estimated: bool = True
    source: str = "Calculated from rainfall correlation"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "station": self.station,
            "stationAssamese": self.station_local,
            "currentLevel": self.current_level,
            "dangerLevel": self.danger_level,
            "highestFloodLevel": self.highest_flood_level,
            "status": self.status.value,
            "statusAssamese": self.status_local,
            "trend": self.trend.value,
            "rainfall24h": self.rainfall_24h,
            "estimatedRise": self.estimated_rise,
            "timeToPeak": self.time_to_peak_h,
            "lastUpdated": self.last_updated.isoformat(),
            "isEstimated": self.is_estimated,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaterLevelEstimate":
        return cls(
            station=data["station"],
            station_local=data["stationAssamese"],
            current_level=float(data["currentLevel"]),
            danger_level=float(data["dangerLevel"]),
            highest_flood_level=float(data["highestFloodLevel"]),
            status=WaterLevelStatus(data["status"]),
            status_local=data["statusAssamese"],
            trend=Trend(data["trend"]),
            rainfall_24h=float(data["rainfall24h"]),
            estimated_rise=float(data["estimatedRise"]),
            time_to_peak_h=int(data["timeToPeak"]),
            last_updated=parse_timestamp(data["lastUpdated"]) or utcnow(),
            is_estimated=bool(data.get("isEstimated", True)),
            source=data.get("source", ""),
        )


@dataclass
class ZoneRisk:
    zone_id: str
    district: str
    water_level: WaterLevelEstimate
    weather_risk: RiskTier
    overall_risk: RiskTier
    recommended_action: Dict[str, str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zoneId": self.zone_id,
            "district": self.district,
            "waterLevel": self.water_level.to_dict(),
            "weatherRisk": self.weather_risk.value,
            "overallRisk": self.overall_risk.value,
            "recommendedAction": dict(self.recommended_action),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ZoneRisk":
        return cls(
            zone_id=data["zoneId"],
            district=data["district"],
            water_level=WaterLevelEstimate.from_dict(data["waterLevel"]),
            weather_risk=RiskTier(data["weatherRisk"]),
            overall_risk=RiskTier(data["overallRisk"]),
            recommended_action=dict(data["recommendedAction"]),
        )


@dataclass
class UnifiedWeatherResult:
    """
    Merged output of one aggregation call.

    ``degraded_sources`` names the pipelines ("current", "forecast",
    "warnings") that fell back during the call; ``is_fallback`` is set
    when the current conditions themselves are synthetic.
    """
    current: WeatherSnapshot
    forecast: List[ForecastEntry]
    warnings: List[WeatherWarning]
    zone_id: str
    risk_level: RiskTier
    updated_at: datetime
    is_fallback: bool = False
    degraded_sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current.to_dict(),
            "forecast": [f.to_dict() for f in self.forecast],
            "warnings": [w.to_dict() for w in self.warnings],
            "zoneId": self.zone_id,
            "riskLevel": self.risk_level.value,
            "updatedAt": self.updated_at.isoformat(),
            "isFallback": self.is_fallback,
            "degradedSources": list(self.degraded_sources),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnifiedWeatherResult":
        return cls(
            current=WeatherSnapshot.from_dict(data["current"]),
            forecast=[ForecastEntry.from_dict(f) for f in data.get("forecast", [])],
            warnings=[WeatherWarning.from_dict(w) for w in data.get("warnings", [])],
            zone_id=data["zoneId"],
            risk_level=RiskTier(data.get("riskLevel", "low")),
            updated_at=parse_timestamp(data.get("updatedAt")) or utcnow(),
            is_fallback=bool(data.get("isFallback", False)),
            degraded_sources=list(data.get("degradedSources", [])),
        )


@dataclass
class DashboardSummary:
    """
    City-wide roll-up over several zones.

    ``temperature`` is the zone average, ``rainfall`` the summed rain
    intensity, ``wind_speed`` the zone maximum. ``rainy_zones`` counts
    zones raining above the heavy-rain threshold.
    """
    temperature: float
    rainfall: float
    wind_speed: float
    rainy_zones: int
    active_warnings: List[WeatherWarning]
    zones: List[Dict[str, Any]]
    updated_at: datetime
    degraded_zones: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "rainfall": self.rainfall,
            "windSpeed": self.wind_speed,
            "rainyZones": self.rainy_zones,
            "warnings": len(self.active_warnings),
            "warningsList": [w.to_dict() for w in self.active_warnings],
            "zones": [dict(z) for z in self.zones],
            "lastUpdated": self.updated_at.isoformat(),
            "degradedZones": list(self.degraded_zones),
        }


@dataclass
class CacheEntry:
    """Last-known-good state for one zone, persisted across restarts."""
    zone_id: str
    weather: UnifiedWeatherResult
    water_level: WaterLevelEstimate
    zone_risks: List[ZoneRisk]
    captured_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zoneId": self.zone_id,
            "weather": self.weather.to_dict(),
            "waterLevel": self.water_level.to_dict(),
            "risks": [r.to_dict() for r in self.zone_risks],
            "timestamp": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            zone_id=data["zoneId"],
            weather=UnifiedWeatherResult.from_dict(data["weather"]),
            water_level=WaterLevelEstimate.from_dict(data["waterLevel"]),
            zone_risks=[ZoneRisk.from_dict(r) for r in data.get("risks", [])],
            captured_at=parse_timestamp(data.get("timestamp")) or utcnow(),
        )

    @classmethod
    def try_from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CacheEntry"]:
        """Decode a stored record; None when absent or not decodable."""
        if not data:
            return None
        try:
            return cls.from_dict(data)
        except (KeyError, TypeError, ValueError):
            return None
