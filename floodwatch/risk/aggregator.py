"""
aggregator.py — Unified weather aggregation and per-zone risk.

Pipeline
========

    ┌────────────┐  ┌────────────┐  ┌────────────┐
    │  current   │  │  forecast  │  │  warnings  │   asyncio.gather
    └─────┬──────┘  └─────┬──────┘  └─────┬──────┘
          │ fail → fixed  │ fail → random │ fail → []
          │   snapshot    │   forecast    │
          └───────────────┼───────────────┘
                          ▼
               merge + weather risk score
                          ▼
                 UnifiedWeatherResult
                          ▼
          calculate_zone_risks (rain × 24 per zone)

The three pipelines run concurrently and fail independently: a timeout
on the forecast never discards a good current snapshot. ``aggregate``
never raises. When the merge itself fails the whole result is the
fallback result with risk ``low``.

The aggregator holds no per-zone state; the refresh scheduler owns that.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from floodwatch.core.config import Settings, get_settings
from floodwatch.core.errors import ClassificationError
from floodwatch.hydrology.stations import get_zone, station_for_zone, zone_coordinates
from floodwatch.hydrology.water_level import WaterLevelEstimator
from floodwatch.ingestion.fallback import fallback_forecast, fallback_snapshot
from floodwatch.ingestion.models import WeatherWarning, utcnow
from floodwatch.ingestion.providers import fetch_current, fetch_forecast, fetch_warnings
from floodwatch.ingestion.source_client import SourceClient
from floodwatch.risk.classifier import (
    classify_weather_risk,
    combine_zone_risk,
    recommended_action,
)
from floodwatch.risk.models import (
    DashboardSummary,
    RiskTier,
    UnifiedWeatherResult,
    WaterLevelEstimate,
    ZoneRisk,
)

logger = logging.getLogger(__name__)

PIPELINE_CURRENT = "current"
PIPELINE_FORECAST = "forecast"
PIPELINE_WARNINGS = "warnings"
ALL_PIPELINES = [PIPELINE_CURRENT, PIPELINE_FORECAST, PIPELINE_WARNINGS]

# Rain intensity (mm/h) is scaled to a 24-hour total for the estimator.
HOURS_PER_DAY = 24

# Zones raining harder than this (mm/h) count as rainy on the dashboard.
RAINY_ZONE_THRESHOLD = 5.0


class UnifiedAggregator:
    """
    Fetches, merges and classifies weather for a zone.

    Usage:
        aggregator = UnifiedAggregator(settings)
        result = await aggregator.aggregate("jalukbari")
        risks = aggregator.calculate_zone_risks(result)
        await aggregator.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[SourceClient] = None,
        estimator: Optional[WaterLevelEstimator] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or SourceClient()
        self.estimator = estimator or WaterLevelEstimator(self.settings.BASELINE_DANGER_RATIO)
        self.rng = rng or random.Random()
        self._clock = clock or utcnow

    async def close(self) -> None:
        await self.client.close()

    # ── Full aggregation ──

    async def aggregate(self, zone_id: str) -> UnifiedWeatherResult:
        """Run all three pipelines for a zone and merge. Never raises."""
        now = self._clock()
        coordinates = zone_coordinates(zone_id)

        current, forecast, warnings = await asyncio.gather(
            fetch_current(self.client, self.settings, coordinates, now),
            fetch_forecast(self.client, self.settings, coordinates, now),
            fetch_warnings(self.client, self.settings),
            return_exceptions=True,
        )

        degraded: List[str] = []
        for name, outcome in zip(ALL_PIPELINES, (current, forecast, warnings)):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                degraded.append(name)
                logger.warning(
                    "Pipeline %s fell back for %s: %s", name, zone_id, outcome,
                    extra={"zone_id": zone_id, "pipeline": name},
                )

        try:
            if PIPELINE_CURRENT in degraded:
                current = fallback_snapshot(zone_id, now)
            if PIPELINE_FORECAST in degraded:
                forecast = fallback_forecast(self.settings.FORECAST_HORIZON, now, self.rng)
            if PIPELINE_WARNINGS in degraded:
                warnings = []

            result = UnifiedWeatherResult(
                current=current,
                forecast=list(forecast),
                warnings=list(warnings),
                zone_id=zone_id,
                risk_level=classify_weather_risk(current, warnings, now),
                updated_at=now,
                is_fallback=PIPELINE_CURRENT in degraded,
                degraded_sources=degraded,
            )
        except (ClassificationError, TypeError, ValueError, AttributeError) as e:
            logger.error(
                "Merge failed for %s, publishing fallback: %s", zone_id, e,
                extra={"zone_id": zone_id},
            )
            return self.fallback_result(zone_id, now)

        logger.info(
            "Aggregated %s: risk=%s degraded=%s",
            zone_id, result.risk_level.value, ",".join(degraded) or "none",
            extra={"zone_id": zone_id, "risk_level": result.risk_level.value},
        )
        return result

    def fallback_result(self, zone_id: str, now: Optional[datetime] = None) -> UnifiedWeatherResult:
        """Fully synthetic result: fallback weather, no warnings, risk low."""
        now = now or self._clock()
        return UnifiedWeatherResult(
            current=fallback_snapshot(zone_id, now),
            forecast=fallback_forecast(self.settings.FORECAST_HORIZON, now, self.rng),
            warnings=[],
            zone_id=zone_id,
            risk_level=RiskTier.LOW,
            updated_at=now,
            is_fallback=True,
            degraded_sources=list(ALL_PIPELINES),
        )

    async def aggregate_zones(self, zone_ids: Iterable[str]) -> Dict[str, UnifiedWeatherResult]:
        """Aggregate several zones concurrently (dashboard view)."""
        zone_ids = list(dict.fromkeys(zone_ids))
        results = await asyncio.gather(*(self.aggregate(z) for z in zone_ids))
        return dict(zip(zone_ids, results))

    async def dashboard_summary(self, zone_ids: Iterable[str]) -> DashboardSummary:
        """
        Roll several zones up into one city-wide summary.

        Warnings are shared across zones, so they are de-duplicated and
        only those still active are counted. With no zones the summary
        reads 28 °C, dry and calm.
        """
        results = await self.aggregate_zones(zone_ids)
        now = self._clock()

        rows: List[Dict[str, object]] = []
        warnings: Dict[tuple, WeatherWarning] = {}
        for zone_id, result in results.items():
            zone = get_zone(zone_id)
            rows.append({
                "zoneId": zone_id,
                "zoneName": zone.name if zone else zone_id,
                "zoneNameAssamese": zone.name_local if zone else zone_id,
                "district": zone.district if zone else station_for_zone(zone_id).district,
                "temperature": result.current.temperature,
                "rainIntensity": result.current.rain_intensity,
                "windSpeed": result.current.wind_speed,
                "weatherCode": result.current.weather_code,
                "riskLevel": result.risk_level.value,
                "isFallback": result.is_fallback,
            })
            for warning in result.warnings:
                if warning.is_active(now):
                    warnings.setdefault((warning.district, warning.description, warning.onset), warning)

        currents = [r.current for r in results.values()]
        temperature = sum(c.temperature for c in currents) / len(currents) if currents else 28.0

        summary = DashboardSummary(
            temperature=round(temperature, 1),
            rainfall=round(sum(c.rain_intensity for c in currents), 1),
            wind_speed=round(max((c.wind_speed for c in currents), default=0.0), 1),
            rainy_zones=sum(1 for c in currents if c.rain_intensity > RAINY_ZONE_THRESHOLD),
            active_warnings=list(warnings.values()),
            zones=rows,
            updated_at=now,
            degraded_zones=[z for z, r in results.items() if r.is_fallback],
        )
        logger.info(
            "Dashboard summary over %d zones: rainy=%d warnings=%d",
            len(rows), summary.rainy_zones, len(summary.active_warnings),
        )
        return summary

    # ── Warnings-only path ──

    async def refresh_warnings(self, previous: UnifiedWeatherResult) -> UnifiedWeatherResult:
        """
        Substitute fresh warnings into ``previous`` and re-score its weather
        risk. Current and forecast are not re-fetched. On any failure the
        previous result is returned unchanged.
        """
        now = self._clock()
        try:
            warnings = await fetch_warnings(self.client, self.settings)
            risk = classify_weather_risk(previous.current, warnings, now)
        except Exception as e:
            logger.warning(
                "Warnings refresh failed for %s: %s", previous.zone_id, e,
                extra={"zone_id": previous.zone_id, "pipeline": PIPELINE_WARNINGS},
            )
            return previous

        return replace(
            previous,
            warnings=warnings,
            risk_level=risk,
            updated_at=now,
            degraded_sources=[s for s in previous.degraded_sources if s != PIPELINE_WARNINGS],
        )

    # ── Zone risks ──

    def water_level_for(self, zone_id: str, result: UnifiedWeatherResult) -> WaterLevelEstimate:
        """Estimate for one zone from the result's rain intensity."""
        rainfall_24h = result.current.rain_intensity * HOURS_PER_DAY
        return self.estimator.estimate(zone_id, rainfall_24h, now=self._clock())

    def calculate_zone_risks(self, result: UnifiedWeatherResult) -> List[ZoneRisk]:
        """
        Combined risk for every monitored zone.

        The weather risk is the result's tier for all zones; the water
        level is estimated per zone from the shared rainfall proxy.
        """
        risks: List[ZoneRisk] = []
        for zone_id in self.settings.MONITORED_ZONES:
            estimate = self.water_level_for(zone_id, result)
            overall = combine_zone_risk(estimate.status, result.risk_level)
            risks.append(ZoneRisk(
                zone_id=zone_id,
                district=station_for_zone(zone_id).district,
                water_level=estimate,
                weather_risk=result.risk_level,
                overall_risk=overall,
                recommended_action=recommended_action(overall),
            ))
        return risks
